"""Shopify plugin module.

This module provides the HTTP endpoints of the Shopify integration: the OAuth
installation flow (`/auth`, `/auth/callback`) and the app proxy endpoint
(`/proxy/cod`) that turns a signed storefront submission into a draft order.
"""

import json
import logging

import anyio
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from cod_relay.core.dependencies import resolve_app_host
from cod_relay.core.errors import BadRequest
from cod_relay.core.oauth import AuthorizationFlow
from cod_relay.core.relay import OrderRelay
from cod_relay.core.settings import OAUTH_CALLBACK_PATH, Settings
from cod_relay.core.signature import collect_query_params

# Setup module-level logger
logger = logging.getLogger("shopify")

STATE_COOKIE = "shopify_app_state"
STATE_COOKIE_MAX_AGE = 600


def create_shopify_router(
    settings: Settings,
    flow: AuthorizationFlow,
    relay: OrderRelay,
) -> APIRouter:
    """Create a router for the Shopify app."""

    router = APIRouter()

    @router.get("/auth")
    def initiate_oauth(request: Request, shop: str | None = None) -> RedirectResponse:
        """Initiate OAuth flow."""
        app_host = resolve_app_host(request, settings)
        authorization = flow.begin(shop, app_host)

        response = RedirectResponse(authorization.url, status_code=302)
        response.set_cookie(
            STATE_COOKIE,
            authorization.state,
            max_age=STATE_COOKIE_MAX_AGE,
            httponly=True,
            secure=True,
            samesite="lax",
        )
        return response

    @router.get(OAUTH_CALLBACK_PATH)
    def oauth_callback(request: Request) -> RedirectResponse:
        """
        Handle OAuth callback from Shopify.

        Verifies the state nonce and the callback hmac, exchanges the code for
        an offline token, stores it, and sends the merchant back to the Shopify
        admin.
        """
        params = collect_query_params(request.query_params.multi_items())
        grant = flow.complete(params, request.cookies.get(STATE_COOKIE))

        admin_url = f"https://{grant.shop}/admin/apps"
        logger.info("Redirecting shop=%s to %s", grant.shop, admin_url)
        response = RedirectResponse(admin_url, status_code=302)
        response.delete_cookie(STATE_COOKIE)
        return response

    @router.post("/proxy/cod")
    async def create_cod_order(request: Request) -> JSONResponse:
        """
        Create a cash-on-delivery draft order for a storefront submission.

        The signature is checked before the body is parsed and before the
        credential store or Shopify are touched.
        """
        params = collect_query_params(request.query_params.multi_items())
        shop = relay.authenticate(params)

        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BadRequest("Invalid JSON body", code="invalid_json") from e
        order = relay.parse_order(body)

        # Blocking store and HTTPS calls run in a worker thread; it is not
        # abandoned if the client disconnects.
        result = await anyio.to_thread.run_sync(relay.submit, shop, order)
        return JSONResponse(result.to_dict())

    return router
