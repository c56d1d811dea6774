"""
Settings for the COD relay application.
"""

from urllib.parse import urlsplit

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

SHOPIFY_API_VERSION = "2024-04"
DEFAULT_SCOPES = "read_products,read_customers,write_draft_orders"
OAUTH_CALLBACK_PATH = "/auth/callback"

load_dotenv()


class Settings(BaseSettings):
    """
    Settings for the Shopify app, read once at process start.
    """

    shopify_api_key: str = ""
    shopify_api_secret: str = ""
    shopify_api_version: str = SHOPIFY_API_VERSION
    app_url: str = ""
    database_url: str = "sqlite:///./cod_relay.db"
    scopes: str = DEFAULT_SCOPES
    allowed_forwarded_hosts: str = ""
    http_connect_timeout: float = 5.0
    http_read_timeout: float = 15.0
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def scope_list(self) -> list[str]:
        """Requested scopes, in configured order."""
        return [s.strip() for s in self.scopes.split(",") if s.strip()]

    @property
    def allowed_host_list(self) -> list[str]:
        """Forwarded hosts trusted for building the OAuth callback address."""
        return [
            h.strip().lower() for h in self.allowed_forwarded_hosts.split(",") if h.strip()
        ]

    @property
    def app_host(self) -> str:
        """Host part of APP_URL, or an empty string when it is not configured."""
        if not self.app_url:
            return ""
        url = self.app_url if "://" in self.app_url else f"https://{self.app_url}"
        return urlsplit(url).netloc

    @property
    def http_timeout(self) -> tuple[float, float]:
        """(connect, read) timeout for outbound Shopify calls."""
        return (self.http_connect_timeout, self.http_read_timeout)
