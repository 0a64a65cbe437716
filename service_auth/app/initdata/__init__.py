"""
Embedded-client credential (initData) verification.

The host application signs the launch payload it hands to the embedded
client. The payload travels as a URL-encoded query string and is checked
here with a two-step HMAC-SHA256:

- secret = HMAC(key="WebAppData", msg=bot_token)
- hash   = hex(HMAC(key=secret, msg=check_string))

where check_string is the sorted, newline-joined ``key=value`` form of
every field except ``hash``. Every signature comparison in the service goes
through :func:`signer.constant_time_equals`.
"""

from .canonical import build_check_string, parse_credential
from .signer import constant_time_equals, derive_secret_key, sign, sign_check_string
from .verifier import InitDataVerifier

__all__ = [
    "InitDataVerifier",
    "build_check_string",
    "constant_time_equals",
    "derive_secret_key",
    "parse_credential",
    "sign",
    "sign_check_string",
]
