"""Thin Shopify Admin API client used by the OAuth flow and the order relay."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import requests  # type: ignore
from urllib3.exceptions import NewConnectionError

from cod_relay.core.settings import Settings

# Setup module-level logger
logger = logging.getLogger("shopify")

DRAFT_ORDER_CREATE = """
mutation draftOrderCreate($input: DraftOrderInput!) {
  draftOrderCreate(input: $input) {
    draftOrder {
      id
      invoiceUrl
    }
    userErrors {
      field
      message
    }
  }
}
"""


class ShopifyAPIError(Exception):
    """
    Raised when a Shopify call fails.

    Attributes:
        status_code (int | None): HTTP status, or None if no response was received.
        errors (Any): Error detail returned by Shopify, if any.
        user_errors (bool): True when Shopify rejected the input (GraphQL userErrors).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        errors: Any = None,
        user_errors: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors
        self.user_errors = user_errors


@dataclass
class AccessGrant:
    shop: str
    access_token: str
    scopes: list[str] = field(default_factory=list)


def _never_sent(error: requests.ConnectionError) -> bool:
    """
    True only when the connection could not be opened, so the request never left.

    Resets and disconnects after the request was written also surface as
    ConnectionError; those are not safe to resend.
    """
    if isinstance(error, requests.ConnectTimeout):
        return True
    reason = getattr(error.args[0], "reason", None) if error.args else None
    return isinstance(reason, NewConnectionError)


def _json_or_none(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class ShopifyClient:
    """
    Shopify Admin API client.

    One instance (and one connection pool) is shared by the whole process.
    Calls are bounded by a (connect, read) timeout and retried once, only when
    the connection itself could not be established.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        api_version: str,
        timeout: tuple[float, float] = (5.0, 15.0),
        max_retries: int = 1,
        retry_delay: float = 0.5,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_version = api_version
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShopifyClient":
        return cls(
            api_key=settings.shopify_api_key,
            api_secret=settings.shopify_api_secret,
            api_version=settings.shopify_api_version,
            timeout=settings.http_timeout,
        )

    def _post(self, url: str, payload: dict, headers: dict[str, str] | None = None) -> requests.Response:
        for attempt in range(self.max_retries + 1):
            try:
                return self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
            except requests.ConnectionError as e:
                if not _never_sent(e):
                    raise ShopifyAPIError(f"Connection to Shopify lost: {type(e).__name__}") from e
                if attempt == self.max_retries:
                    raise ShopifyAPIError(f"Could not connect to Shopify: {type(e).__name__}") from e
                logger.warning(
                    "Retry %d/%d for %s (connection error: %s)",
                    attempt + 1,
                    self.max_retries,
                    url,
                    type(e).__name__,
                )
                time.sleep(self.retry_delay)
            except requests.RequestException as e:
                raise ShopifyAPIError(f"Shopify request failed: {type(e).__name__}") from e
        raise ShopifyAPIError("Shopify request failed")

    def exchange_code(self, shop: str, code: str) -> AccessGrant:
        """
        Exchange an authorization code for an offline access token.

        Args:
            shop (str): Shop domain the code was issued for.
            code (str): One-time authorization code from the OAuth callback.

        Returns:
            AccessGrant: Shop, access token and granted scopes.

        Raises:
            ShopifyAPIError: If Shopify rejects the code or answers with something unusable.
        """
        response = self._post(
            f"https://{shop}/admin/oauth/access_token",
            {"client_id": self.api_key, "client_secret": self.api_secret, "code": code},
        )
        data = _json_or_none(response)
        if not response.ok:
            raise ShopifyAPIError(
                "Token exchange rejected", status_code=response.status_code, errors=data
            )
        if not isinstance(data, dict) or not data.get("access_token"):
            raise ShopifyAPIError("Token exchange returned no access_token", response.status_code)

        scopes = [s for s in str(data.get("scope") or "").split(",") if s]
        return AccessGrant(shop=shop, access_token=data["access_token"], scopes=scopes)

    def create_draft_order(
        self, shop: str, access_token: str, draft_order_input: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Create a draft order through the Admin GraphQL API.

        Returns:
            dict[str, Any]: The created draftOrder, with `id` and `invoiceUrl`.

        Raises:
            ShopifyAPIError: On HTTP errors, GraphQL errors or userErrors.
        """
        response = self._post(
            f"https://{shop}/admin/api/{self.api_version}/graphql.json",
            {"query": DRAFT_ORDER_CREATE, "variables": {"input": draft_order_input}},
            headers={"X-Shopify-Access-Token": access_token},
        )
        data = _json_or_none(response)
        if not response.ok:
            errors = data.get("errors", data) if isinstance(data, dict) else response.text
            raise ShopifyAPIError(
                "Draft order request failed", status_code=response.status_code, errors=errors
            )
        if not isinstance(data, dict):
            raise ShopifyAPIError("Invalid response from Shopify", status_code=response.status_code)
        if data.get("errors"):
            raise ShopifyAPIError(
                "Shopify returned GraphQL errors",
                status_code=response.status_code,
                errors=data["errors"],
            )

        result = (data.get("data") or {}).get("draftOrderCreate") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            raise ShopifyAPIError(
                "Shopify rejected the draft order",
                status_code=response.status_code,
                errors=user_errors,
                user_errors=True,
            )
        draft_order = result.get("draftOrder")
        if not draft_order or not draft_order.get("id"):
            raise ShopifyAPIError("Shopify returned no draft order", status_code=response.status_code)
        return draft_order
