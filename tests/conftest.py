"""Shared fixtures: in-memory credential store, stubbed Shopify client, test app."""

from typing import Iterator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from cod_relay.core.main import create_app
from cod_relay.core.settings import Settings
from cod_relay.core.shopify import ShopifyClient
from cod_relay.core.store import CredentialStore

API_SECRET = "test_api_secret"


@pytest.fixture
def mock_settings() -> Settings:
    """Settings for testing."""
    return Settings(
        shopify_api_key="test_api_key",
        shopify_api_secret=API_SECRET,
        app_url="https://cod.example",
        database_url="sqlite://",
        scopes="read_products,read_customers,write_draft_orders",
        allowed_forwarded_hosts="cod-preview.example",
    )


@pytest.fixture
def store() -> CredentialStore:
    """Fresh in-memory credential store."""
    credential_store = CredentialStore.from_url("sqlite://")
    credential_store.create_tables()
    return credential_store


@pytest.fixture
def shopify_client() -> MagicMock:
    """Shopify client stand-in; no test ever reaches the network."""
    return MagicMock(spec=ShopifyClient)


@pytest.fixture
def http(
    mock_settings: Settings, store: CredentialStore, shopify_client: MagicMock
) -> Iterator[TestClient]:
    """HTTPS test client so the secure state cookie round-trips."""
    app = create_app(mock_settings, store=store, client=shopify_client)
    with TestClient(app, base_url="https://testserver") as client:
        yield client
