"""Error taxonomy shared by the OAuth flow, the credential store and the order relay."""

from typing import Any


class AppError(Exception):
    """
    Base class for failures that are turned into an HTTP response.

    Attributes:
        status_code (int): HTTP status returned to the caller.
        code (str): Stable machine-readable error code.
        message (str): Public message; never contains secrets or raw upstream internals.
        errors (Any): Structured detail safe to show the caller, if any.
    """

    status_code: int = 500
    code: str = "internal_error"
    message: str = "Server error"

    def __init__(
        self, message: str | None = None, code: str | None = None, errors: Any = None
    ) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Render the error as the `{ok: false, ...}` response body."""
        body: dict[str, Any] = {"ok": False, "error": self.message, "code": self.code}
        if self.errors is not None:
            body["errors"] = self.errors
        return body


class BadRequest(AppError):
    status_code = 400
    code = "bad_request"
    message = "Bad request"


class Unauthorized(AppError):
    status_code = 401
    code = "shop_not_installed"
    message = "Shop not installed"


class Forbidden(AppError):
    status_code = 403
    code = "bad_signature"
    message = "Bad signature"


class AuthExchangeFailed(AppError):
    status_code = 500
    code = "auth_failed"
    message = "Authentication failed"


class ServiceUnavailable(AppError):
    status_code = 503
    code = "service_unavailable"
    message = "Service unavailable, try again later"


class StoreUnavailable(ServiceUnavailable):
    code = "store_unavailable"
    message = "Credential store unavailable, try again later"


class DownstreamRejected(AppError):
    """Shopify rejected the order; `errors` carries its own detail verbatim."""

    status_code = 502
    code = "downstream_rejected"
    message = "Shopify rejected the order"

    def __init__(
        self, message: str | None = None, status_code: int | None = None, errors: Any = None
    ) -> None:
        super().__init__(message, errors=errors)
        if status_code is not None:
            self.status_code = status_code
