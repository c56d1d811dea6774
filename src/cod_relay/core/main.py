"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, AsyncGenerator, Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from cod_relay.core.dependencies import get_settings
from cod_relay.core.errors import AppError
from cod_relay.core.oauth import AuthorizationFlow
from cod_relay.core.relay import OrderRelay
from cod_relay.core.settings import Settings
from cod_relay.core.shopify import ShopifyClient
from cod_relay.core.store import CredentialStore
from cod_relay.plugins.shopify import create_shopify_router

logger = logging.getLogger("api")

PRIVACY_HTML = """
<h1>Privacy Policy - COD</h1>
<p>We read products and customers and create draft orders on behalf of your shop.
We store only your shop's access token, in a secure database.</p>
<p>On uninstall, contact us to delete your data. No payment information is processed by this app.</p>
"""


# Request tracing middleware
class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Request tracing middleware."""

    async def dispatch(self, request: Request, call_next: Callable) -> Any:
        # Query strings carry signatures and OAuth codes, so only the path is logged
        logger.info("Request: %s %s", request.method, request.url.path)
        response = await call_next(request)
        logger.info(
            "Response status: %s %s -> %s", request.method, request.url.path, response.status_code
        )
        return response


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.status_code)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()]
    return JSONResponse(
        {"ok": False, "error": "Invalid request", "code": "bad_request", "errors": details},
        status_code=400,
    )


def create_app(
    settings: Settings | None = None,
    store: CredentialStore | None = None,
    client: ShopifyClient | None = None,
) -> FastAPI:
    """
    Build the application and every dependency it needs, once.

    Args:
        settings (Settings | None): Configuration; read from the environment when omitted.
        store (CredentialStore | None): Credential store; built from DATABASE_URL when omitted.
        client (ShopifyClient | None): Shopify client; built from settings when omitted.
    """
    settings = settings or get_settings()
    store = store or CredentialStore.from_url(settings.database_url)
    client = client or ShopifyClient.from_settings(settings)

    flow = AuthorizationFlow(
        client=client,
        store=store,
        api_key=settings.shopify_api_key,
        api_secret=settings.shopify_api_secret,
        scopes=settings.scope_list,
    )
    relay = OrderRelay(store=store, client=client, api_secret=settings.shopify_api_secret)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan for the FastAPI application."""
        logger.info("Initializing database...")
        try:
            store.create_tables()
            logger.info("Database initialized successfully!")
        except AppError:
            logger.error("Database initialization failed, continuing without it")
        yield

    app = FastAPI(
        title="COD Relay",
        description="Shopify app backend for cash-on-delivery draft orders",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.client = client

    app.add_middleware(RequestTracingMiddleware)
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]

    app.include_router(create_shopify_router(settings, flow, relay))

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        """Root endpoint."""
        return "COD App - OK"

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "time": datetime.now(UTC).isoformat()}

    @app.get("/privacy", response_class=HTMLResponse)
    async def privacy() -> str:
        return PRIVACY_HTML

    return app


def create_default_app() -> FastAPI:
    """Entry point for `uvicorn --factory cod_relay.core.main:create_default_app`."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    return create_app(settings)
