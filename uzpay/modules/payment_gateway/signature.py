"""Signature engine for gateway request authentication.

Click signs with an MD5 digest over field values concatenated in a
protocol-fixed order followed by the secret key. Payme authenticates with
a basic-auth token derived from a fixed login and the merchant key.
"""

import base64
import hashlib
import hmac
from typing import Any, Iterable, Optional


def format_sign_value(value: Any) -> str:
    """Render a field value the way it appears in the signed string.

    Integral floats lose their trailing ``.0`` so that ``1000`` and
    ``1000.0`` sign identically, matching JSON number rendering.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def compute_hash_signature(ordered_fields: Iterable[Any], secret: str) -> str:
    """Compute a keyed MD5 signature.

    Args:
        ordered_fields: Field values in protocol order
        secret: Merchant secret key

    Returns:
        Lowercase hex digest
    """
    sign_string = "".join(format_sign_value(value) for value in ordered_fields)
    return hashlib.md5((sign_string + secret).encode("utf-8")).hexdigest()


def verify_hash_signature(
    ordered_fields: Iterable[Any],
    secret: str,
    signature: Optional[str],
) -> bool:
    """Check a received signature against the expected one."""
    if not signature:
        return False
    expected = compute_hash_signature(ordered_fields, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


def compute_auth_token(login: str, password: str) -> str:
    """Encode ``login:password`` into a reusable basic-auth credential."""
    return base64.b64encode(f"{login}:{password}".encode("utf-8")).decode("ascii")


def build_authorization_header(login: str, password: str) -> str:
    """Get the Authorization header value for a login/password pair."""
    return f"Basic {compute_auth_token(login, password)}"


def verify_authorization(authorization: Optional[str], login: str, password: str) -> bool:
    """Check an inbound Authorization header by exact comparison."""
    if not authorization:
        return False
    expected = build_authorization_header(login, password)
    return hmac.compare_digest(expected.encode("utf-8"), authorization.encode("utf-8"))
