"""
Checkout Token Service

Opaque 128-bit handles that address a checkout session in URLs in place of
internal order identifiers.
"""
import re
import secrets
from typing import Any

CHECKOUT_TOKEN_PATTERN = re.compile(r"^[a-f0-9]{32}$")


def generate_checkout_token() -> str:
    """Return 32 lowercase hex characters from the OS CSPRNG."""
    return secrets.token_hex(16)


def is_valid_checkout_token(token: Any) -> bool:
    """Exact-shape check; anything but 32 lowercase hex characters is rejected."""
    return isinstance(token, str) and CHECKOUT_TOKEN_PATTERN.fullmatch(token) is not None
