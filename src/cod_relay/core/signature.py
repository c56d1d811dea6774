"""HMAC-SHA256 verification of Shopify-signed query strings.

Used for app proxy requests (`signature` parameter) and for the OAuth callback
(`hmac` parameter). Both are signed over the same canonical message: every
parameter except the signature itself, sorted by key, rendered as `key=value`
(multi-valued parameters joined with ",") and joined with "&".
"""

import hashlib
import hmac
import logging
from typing import Iterable, Mapping, Sequence, Union

logger = logging.getLogger("signature")

ParamValue = Union[str, Sequence[str]]


def collect_query_params(items: Iterable[tuple[str, str]]) -> dict[str, list[str]]:
    """
    Group raw (key, value) query pairs by key, keeping value order.

    Args:
        items: Pairs as yielded by `request.query_params.multi_items()`.

    Returns:
        dict[str, list[str]]: Every key mapped to all of its values.
    """
    params: dict[str, list[str]] = {}
    for key, value in items:
        params.setdefault(key, []).append(value)
    return params


def _render(value: ParamValue) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        raise TypeError("query parameter values must be str")
    parts = list(value)
    if not all(isinstance(p, str) for p in parts):
        raise TypeError("query parameter values must be str")
    return ",".join(parts)


def canonical_message(
    params: Mapping[str, ParamValue], signature_field: str = "signature"
) -> str:
    """Build the message Shopify signs for a query string."""
    rendered = {
        key: _render(value) for key, value in params.items() if key != signature_field
    }
    return "&".join(f"{key}={rendered[key]}" for key in sorted(rendered))


def compute_signature(
    params: Mapping[str, ParamValue], secret: str, signature_field: str = "signature"
) -> str:
    """Lowercase hex HMAC-SHA256 of the canonical message."""
    message = canonical_message(params, signature_field)
    return hmac.new(
        secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def verify_signature(
    params: Mapping[str, ParamValue], secret: str, signature_field: str = "signature"
) -> bool:
    """
    Check that `params` were signed with `secret`.

    Never raises: a missing signature, an unset secret or malformed input all
    count as a failed verification.
    """
    if not secret:
        logger.warning("Shared secret not set, rejecting signed request")
        return False
    try:
        supplied = params.get(signature_field)
        if supplied is None:
            return False
        supplied = _render(supplied)
        if not supplied:
            return False
        expected = compute_signature(params, secret, signature_field)
        return hmac.compare_digest(expected.encode("ascii"), supplied.encode("utf-8"))
    except (TypeError, ValueError, AttributeError) as e:
        logger.info("Malformed signed parameters: %s", type(e).__name__)
        return False
