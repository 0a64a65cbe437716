"""
HMAC-SHA256 primitives and the constant-time comparison used for every
signature check in the service.
"""

import hashlib
import hmac
from typing import Union

# Domain separation label for deriving the initData secret from the bot token.
WEB_APP_DATA_LABEL = b"WebAppData"


def sign(key: bytes, message: bytes) -> bytes:
    """HMAC-SHA256 of ``message`` under ``key``."""
    return hmac.new(key, message, hashlib.sha256).digest()


def derive_secret_key(app_secret: bytes) -> bytes:
    return sign(WEB_APP_DATA_LABEL, app_secret)


def sign_check_string(app_secret: bytes, check_string: str) -> str:
    """Hex signature the host application attaches as ``hash``."""
    secret_key = derive_secret_key(app_secret)
    return sign(secret_key, check_string.encode("utf-8")).hex()


def constant_time_equals(expected: Union[str, bytes], presented: Union[str, bytes]) -> bool:
    """Compare two signatures without leaking where they differ.

    Unequal lengths are rejected before any byte is compared.
    """
    if isinstance(expected, str):
        expected = expected.encode("utf-8")
    if isinstance(presented, str):
        presented = presented.encode("utf-8")
    if len(expected) != len(presented):
        return False
    return hmac.compare_digest(expected, presented)
