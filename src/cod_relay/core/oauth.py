"""OAuth installation flow: redirect to Shopify, then exchange the code and store the token."""

import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlencode

from cod_relay.core.errors import AuthExchangeFailed, BadRequest
from cod_relay.core.settings import OAUTH_CALLBACK_PATH
from cod_relay.core.shopify import AccessGrant, ShopifyAPIError, ShopifyClient
from cod_relay.core.signature import ParamValue, verify_signature
from cod_relay.core.store import CredentialStore

logger = logging.getLogger("oauth")

SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9-]*(\.[a-z0-9-]+)+$")


def validate_shop(shop: str | None) -> str:
    """
    Return the normalized shop domain.

    Raises:
        BadRequest: If the shop is missing or is not a bare hostname.
    """
    shop = (shop or "").strip().lower()
    if not shop:
        raise BadRequest("Missing shop", code="missing_shop")
    if not SHOP_DOMAIN_RE.match(shop):
        raise BadRequest("Invalid shop", code="invalid_shop")
    return shop


def _first(value: ParamValue | None) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return value[0] if value else ""


@dataclass
class AuthorizationRequest:
    url: str
    state: str


class AuthorizationFlow:
    """
    Drives the two-step authorization code grant for offline tokens.

    `begin` never touches the store; `complete` writes exactly one row through
    `CredentialStore.upsert`, so a repeated callback just replaces the token.
    """

    def __init__(
        self,
        client: ShopifyClient,
        store: CredentialStore,
        api_key: str,
        api_secret: str,
        scopes: list[str],
    ) -> None:
        self.client = client
        self.store = store
        self.api_key = api_key
        self.api_secret = api_secret
        self.scopes = scopes

    def begin(self, shop: str | None, app_host: str) -> AuthorizationRequest:
        """
        Build the Shopify authorization URL for a shop.

        Args:
            shop (str | None): Shop domain from the install link.
            app_host (str): Externally reachable host of this app, for the callback address.

        Returns:
            AuthorizationRequest: Redirect URL and the state nonce to remember.
        """
        shop = validate_shop(shop)
        state = secrets.token_urlsafe(24)
        query = urlencode(
            {
                "client_id": self.api_key,
                "shop": shop,
                "scope": ",".join(self.scopes),
                "redirect_uri": f"https://{app_host}{OAUTH_CALLBACK_PATH}",
                "state": state,
            }
        )
        logger.info("Starting OAuth for shop=%s", shop)
        return AuthorizationRequest(url=f"https://{shop}/admin/oauth/authorize?{query}", state=state)

    def complete(
        self, params: Mapping[str, ParamValue], expected_state: str | None
    ) -> AccessGrant:
        """
        Handle the OAuth callback.

        Args:
            params: Callback query parameters (code, shop, state, hmac, timestamp, ...).
            expected_state: Nonce issued by `begin` for this browser, if any.

        Returns:
            AccessGrant: The stored grant.

        Raises:
            BadRequest: If shop or code is missing.
            AuthExchangeFailed: If the callback cannot be authenticated or the exchange fails.
            StoreUnavailable: If the token cannot be persisted.
        """
        shop = validate_shop(_first(params.get("shop")))
        code = _first(params.get("code"))
        if not code:
            raise BadRequest("Missing code", code="missing_code")

        state = _first(params.get("state"))
        if not expected_state or not hmac.compare_digest(state.encode(), expected_state.encode()):
            logger.warning("OAuth state mismatch for shop=%s", shop)
            raise AuthExchangeFailed()
        if not verify_signature(params, self.api_secret, signature_field="hmac"):
            logger.warning("OAuth callback hmac invalid for shop=%s", shop)
            raise AuthExchangeFailed()

        try:
            grant = self.client.exchange_code(shop, code)
        except ShopifyAPIError as e:
            logger.error(
                "Token exchange failed for shop=%s: %s (status=%s)", shop, e, e.status_code
            )
            raise AuthExchangeFailed() from e

        self.store.upsert(grant.shop, grant.access_token, grant.scopes)
        logger.info("Shop installed: shop=%s scopes=%s", grant.shop, ",".join(grant.scopes))
        return grant
