"""Test the Shopify Admin API client against a mocked requests session and local sockets."""

import socket
import threading
from typing import Iterator
from unittest.mock import MagicMock

import pytest
import requests  # type: ignore
from urllib3.exceptions import MaxRetryError, NewConnectionError, ProtocolError

from cod_relay.core.shopify import AccessGrant, ShopifyAPIError, ShopifyClient


def _response(status_code: int, body: object = None) -> MagicMock:
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.text = str(body)
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session: MagicMock) -> ShopifyClient:
    return ShopifyClient(
        api_key="key",
        api_secret="secret",
        api_version="2024-04",
        timeout=(1.0, 2.0),
        retry_delay=0,
        session=session,
    )


def test_exchange_code(client: ShopifyClient, session: MagicMock) -> None:
    session.post.return_value = _response(
        200, {"access_token": "shpat_123", "scope": "read_products,write_draft_orders"}
    )

    grant = client.exchange_code("demo.example", "code123")

    assert grant == AccessGrant(
        shop="demo.example",
        access_token="shpat_123",
        scopes=["read_products", "write_draft_orders"],
    )
    session.post.assert_called_once_with(
        "https://demo.example/admin/oauth/access_token",
        json={"client_id": "key", "client_secret": "secret", "code": "code123"},
        headers=None,
        timeout=(1.0, 2.0),
    )


def test_exchange_code_rejected(client: ShopifyClient, session: MagicMock) -> None:
    session.post.return_value = _response(400, {"error": "invalid_request"})
    with pytest.raises(ShopifyAPIError) as exc_info:
        client.exchange_code("demo.example", "used-code")
    assert exc_info.value.status_code == 400
    session.post.assert_called_once()


def test_exchange_code_without_token(client: ShopifyClient, session: MagicMock) -> None:
    session.post.return_value = _response(200, {"scope": "read_products"})
    with pytest.raises(ShopifyAPIError):
        client.exchange_code("demo.example", "code123")


def test_create_draft_order(client: ShopifyClient, session: MagicMock) -> None:
    session.post.return_value = _response(
        200,
        {
            "data": {
                "draftOrderCreate": {
                    "draftOrder": {"id": "gid://order/1", "invoiceUrl": "https://inv.example/1"},
                    "userErrors": [],
                }
            }
        },
    )

    draft_order = client.create_draft_order("demo.example", "shpat_123", {"note": "x"})

    assert draft_order == {"id": "gid://order/1", "invoiceUrl": "https://inv.example/1"}
    args, kwargs = session.post.call_args
    assert args[0] == "https://demo.example/admin/api/2024-04/graphql.json"
    assert kwargs["headers"] == {"X-Shopify-Access-Token": "shpat_123"}
    assert kwargs["json"]["variables"] == {"input": {"note": "x"}}


def test_create_draft_order_user_errors(client: ShopifyClient, session: MagicMock) -> None:
    user_errors = [{"field": ["lineItems"], "message": "Line items is invalid"}]
    session.post.return_value = _response(
        200, {"data": {"draftOrderCreate": {"draftOrder": None, "userErrors": user_errors}}}
    )
    with pytest.raises(ShopifyAPIError) as exc_info:
        client.create_draft_order("demo.example", "shpat_123", {})
    assert exc_info.value.user_errors
    assert exc_info.value.errors == user_errors


def test_create_draft_order_http_error_is_not_retried(
    client: ShopifyClient, session: MagicMock
) -> None:
    session.post.return_value = _response(503, {"errors": "Service unavailable"})
    with pytest.raises(ShopifyAPIError) as exc_info:
        client.create_draft_order("demo.example", "shpat_123", {})
    assert exc_info.value.status_code == 503
    assert exc_info.value.errors == "Service unavailable"
    session.post.assert_called_once()


def _refused() -> requests.ConnectionError:
    """ConnectionError as requests raises it when the TCP connect is refused."""
    reason = NewConnectionError(None, "Failed to establish a new connection: [Errno 111]")
    return requests.ConnectionError(MaxRetryError(None, "/graphql.json", reason=reason))


def test_refused_connection_is_retried_once(client: ShopifyClient, session: MagicMock) -> None:
    session.post.side_effect = [
        _refused(),
        _response(200, {"access_token": "shpat_123", "scope": ""}),
    ]
    grant = client.exchange_code("demo.example", "code123")
    assert grant.access_token == "shpat_123"
    assert session.post.call_count == 2


def test_connect_timeout_is_retried_once(client: ShopifyClient, session: MagicMock) -> None:
    session.post.side_effect = [
        requests.ConnectTimeout("connect timed out"),
        _response(200, {"access_token": "shpat_123", "scope": ""}),
    ]
    client.exchange_code("demo.example", "code123")
    assert session.post.call_count == 2


def test_refused_connection_gives_up_after_one_retry(
    client: ShopifyClient, session: MagicMock
) -> None:
    session.post.side_effect = _refused()
    with pytest.raises(ShopifyAPIError) as exc_info:
        client.create_draft_order("demo.example", "shpat_123", {})
    assert exc_info.value.status_code is None
    assert session.post.call_count == 2


def test_dropped_connection_is_not_retried(client: ShopifyClient, session: MagicMock) -> None:
    """A reset after the request was written may mean the order already exists."""
    session.post.side_effect = requests.ConnectionError(
        ProtocolError("Connection aborted.", ConnectionResetError(104, "reset"))
    )
    with pytest.raises(ShopifyAPIError) as exc_info:
        client.create_draft_order("demo.example", "shpat_123", {})
    assert exc_info.value.status_code is None
    session.post.assert_called_once()


def test_read_timeout_is_not_retried(client: ShopifyClient, session: MagicMock) -> None:
    session.post.side_effect = requests.ReadTimeout("slow")
    with pytest.raises(ShopifyAPIError):
        client.create_draft_order("demo.example", "shpat_123", {})
    session.post.assert_called_once()


@pytest.fixture
def hang_up_server() -> Iterator[tuple[int, list[bytes]]]:
    """Local server that reads each request and closes the socket without replying."""
    received: list[bytes] = []
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(5)
    listener.settimeout(1.0)

    def serve() -> None:
        for _ in range(2):
            try:
                conn, _ = listener.accept()
            except OSError:
                return
            with conn:
                data = conn.recv(65536)
                received.append(data.split(b"\r\n", 1)[0])

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield listener.getsockname()[1], received
    thread.join(timeout=3)
    listener.close()


def test_server_hang_up_sends_order_once(hang_up_server: tuple[int, list[bytes]]) -> None:
    port, received = hang_up_server
    client = ShopifyClient("key", "secret", "2024-04", timeout=(1.0, 2.0), retry_delay=0)

    with pytest.raises(ShopifyAPIError):
        client._post(f"http://127.0.0.1:{port}/graphql.json", {"query": "{}"})

    client.session.close()
    assert received == [b"POST /graphql.json HTTP/1.1"]


def test_refused_port_is_tried_twice() -> None:
    spare = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    spare.bind(("127.0.0.1", 0))
    port = spare.getsockname()[1]
    spare.close()

    session = MagicMock(wraps=requests.Session())
    client = ShopifyClient(
        "key", "secret", "2024-04", timeout=(1.0, 2.0), retry_delay=0, session=session
    )

    with pytest.raises(ShopifyAPIError) as exc_info:
        client._post(f"http://127.0.0.1:{port}/graphql.json", {"query": "{}"})

    assert exc_info.value.status_code is None
    assert session.post.call_count == 2
