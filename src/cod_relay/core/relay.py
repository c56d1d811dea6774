"""Order relay: turns a signed storefront submission into a Shopify draft order."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from pydantic import ValidationError

from cod_relay.core.errors import (
    BadRequest,
    DownstreamRejected,
    Forbidden,
    ServiceUnavailable,
    Unauthorized,
)
from cod_relay.core.models import OrderRequest
from cod_relay.core.oauth import validate_shop
from cod_relay.core.shopify import ShopifyAPIError, ShopifyClient
from cod_relay.core.signature import ParamValue, verify_signature
from cod_relay.core.store import CredentialStore

logger = logging.getLogger("relay")

COD_TAGS = ["COD", "COD-App"]
COD_FEE_TITLE = "Cash on Delivery"
DEFAULT_NOTE = "COD order"


@dataclass
class RelayResult:
    order_id: str
    invoice_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "orderId": self.order_id, "invoiceUrl": self.invoice_url}


def _money(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.01")))


def build_draft_order_input(order: OrderRequest) -> dict[str, Any]:
    """Map the storefront payload to a Shopify DraftOrderInput."""
    line_items: list[dict[str, Any]] = []
    for item in order.line_items:
        line: dict[str, Any] = {"quantity": item.quantity}
        if item.variant_id:
            line["variantId"] = item.variant_id
        else:
            line["title"] = item.title
            line["originalUnitPrice"] = _money(item.price or Decimal("0"))
        line_items.append(line)
    line_items.append(
        {"title": COD_FEE_TITLE, "quantity": 1, "originalUnitPrice": _money(order.cod_fee)}
    )

    draft: dict[str, Any] = {
        "lineItems": line_items,
        "note": order.note or DEFAULT_NOTE,
        "tags": list(COD_TAGS),
    }

    if order.customer:
        if order.customer.id:
            draft["purchasingEntity"] = {"customerId": order.customer.id}
        if order.customer.email:
            draft["email"] = order.customer.email
        if order.customer.phone:
            draft["phone"] = order.customer.phone

    if order.shipping_address:
        address = order.shipping_address.model_dump(by_alias=True, exclude_none=True)
        if address:
            # Recipient name falls back to the customer's
            if order.customer:
                if order.customer.first_name:
                    address.setdefault("firstName", order.customer.first_name)
                if order.customer.last_name:
                    address.setdefault("lastName", order.customer.last_name)
            draft["shippingAddress"] = address

    return draft


class OrderRelay:
    """
    Per-request pipeline for `POST /proxy/cod`.

    The order of checks is fixed: shop present, signature valid, payload valid,
    shop installed, then the downstream call. Nothing is persisted here.
    """

    def __init__(self, store: CredentialStore, client: ShopifyClient, api_secret: str) -> None:
        self.store = store
        self.client = client
        self.api_secret = api_secret

    def authenticate(self, params: Mapping[str, ParamValue]) -> str:
        """
        Verify the app proxy signature and return the shop it was issued for.

        Raises:
            BadRequest: If the shop parameter is missing or malformed.
            Forbidden: If the signature does not match.
        """
        raw_shop = params.get("shop")
        if raw_shop is not None and not isinstance(raw_shop, str):
            raw_shop = raw_shop[0] if len(raw_shop) == 1 else ""
        shop = validate_shop(raw_shop)

        if not verify_signature(params, self.api_secret):
            logger.warning("Rejected proxy request with bad signature: shop=%s", shop)
            raise Forbidden()
        return shop

    @staticmethod
    def parse_order(body: Any) -> OrderRequest:
        try:
            return OrderRequest.model_validate(body)
        except ValidationError as e:
            details = [
                {"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()
            ]
            raise BadRequest("Invalid order payload", code="invalid_payload", errors=details) from e

    def submit(self, shop: str, order: OrderRequest) -> RelayResult:
        """
        Create the draft order for an authenticated shop.

        Raises:
            Unauthorized: If the shop has no stored access token.
            StoreUnavailable: If the credential store cannot be reached.
            DownstreamRejected: If Shopify rejected the order.
            ServiceUnavailable: If Shopify could not be reached.
        """
        access_token = self.store.lookup(shop)
        if not access_token:
            logger.info("Proxy request for shop that is not installed: shop=%s", shop)
            raise Unauthorized()

        draft_order_input = build_draft_order_input(order)
        try:
            draft_order = self.client.create_draft_order(shop, access_token, draft_order_input)
        except ShopifyAPIError as e:
            logger.error(
                "Draft order failed for shop=%s: %s (status=%s)", shop, e, e.status_code
            )
            raise self._translate(e) from e

        logger.info("Draft order created for shop=%s: %s", shop, draft_order["id"])
        return RelayResult(order_id=draft_order["id"], invoice_url=draft_order.get("invoiceUrl"))

    @staticmethod
    def _translate(error: ShopifyAPIError) -> Exception:
        if error.status_code is None:
            return ServiceUnavailable("Shopify unavailable, try again later", code="shopify_unavailable")
        if error.user_errors:
            return DownstreamRejected(status_code=400, errors=error.errors)
        if 400 <= error.status_code < 500:
            return DownstreamRejected(status_code=error.status_code, errors=error.errors)
        return DownstreamRejected(status_code=502, errors=error.errors)
