"""
Process-wide dependencies for the COD relay application.
"""

import logging
from functools import lru_cache

from fastapi import Request

from .settings import Settings

# Setup logger
logger = logging.getLogger("dependencies")


@lru_cache()
def get_settings() -> Settings:
    """
    Get the settings for the application.
    """
    settings = Settings()  # Reads vars from the environment and .env
    if not settings.shopify_api_key or not settings.shopify_api_secret:
        logger.error("Missing SHOPIFY_API_KEY / SHOPIFY_API_SECRET")
    logger.info("get_settings returning Settings with API version: %s", settings.shopify_api_version)
    return settings


def resolve_app_host(request: Request, settings: Settings) -> str:
    """
    Returns the externally reachable host of this app for the current request.

    X-Forwarded-Host is trusted only when it is in ALLOWED_FORWARDED_HOSTS;
    otherwise APP_URL wins, and the request's own host is the last resort.
    """
    forwarded = request.headers.get("x-forwarded-host", "").split(",")[0].strip().lower()
    if forwarded and forwarded in settings.allowed_host_list:
        return forwarded
    if forwarded:
        logger.warning("Ignoring untrusted X-Forwarded-Host: %s", forwarded)
    return settings.app_host or request.url.netloc
