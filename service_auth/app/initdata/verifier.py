"""
initData verifier for the embedded-client scheme.
"""

import json
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from ascent_common.logging import get_logger

from ..models import Authenticated, ErrorKind, Principal, Rejected, VerificationResult
from .canonical import SIGNATURE_FIELD, MalformedCredentialError, build_check_string, parse_credential
from .signer import constant_time_equals, sign_check_string

SCHEME = "tma"
DEFAULT_MAX_AGE = 86400


class InitDataVerifier:
    """Validates host-signed initData and extracts the launching user.

    The verifier is pure CPU work plus one clock read; it never suspends.
    """

    def __init__(
        self,
        app_secret: Optional[bytes],
        max_age: int = DEFAULT_MAX_AGE,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self._app_secret = app_secret or None
        self.max_age = max_age
        self._clock = clock
        self.logger = get_logger("auth.initdata")

    @property
    def configured(self) -> bool:
        return self._app_secret is not None

    def verify(
        self,
        raw: str,
        *,
        max_age: Optional[int] = None,
        require_user: bool = True,
        now: Optional[float] = None,
    ) -> VerificationResult:
        """Verify ``raw`` and return the authenticated principal or the rejection."""
        if self._app_secret is None:
            self.logger.error("initData verification attempted without a bot token")
            return Rejected(ErrorKind.SERVER_MISCONFIGURATION, "bot token not configured")

        try:
            pairs = parse_credential(raw)
        except MalformedCredentialError as exc:
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, f"unparsable initData: {exc}")

        fields = dict(pairs)
        presented = fields.get(SIGNATURE_FIELD)
        if not presented:
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, "initData has no hash field")

        expected = sign_check_string(self._app_secret, build_check_string(pairs))
        if not constant_time_equals(expected, presented):
            return self._reject(ErrorKind.SIGNATURE_MISMATCH, "initData hash mismatch")

        auth_date = _parse_auth_date(fields.get("auth_date"))
        if auth_date is None:
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, "initData auth_date missing or not an integer")

        limit = self.max_age if max_age is None else max_age
        current = self._clock() if now is None else now
        age = current - auth_date
        if age > limit:
            return self._reject(ErrorKind.EXPIRED, f"initData is {int(age)}s old, limit {limit}s")

        user = _decode_user(fields.get("user"))
        user_id = _user_id(user)
        if user_id is None and require_user:
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, "initData user missing or undecodable")

        try:
            issued_at = datetime.fromtimestamp(auth_date, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, "initData auth_date out of range")

        return Authenticated(Principal(
            user_id=user_id,
            scheme=SCHEME,
            issued_at=issued_at,
            user=user,
        ))

    def _reject(self, kind: ErrorKind, detail: str) -> Rejected:
        self.logger.info("initData rejected", reason=kind.value, detail=detail)
        return Rejected(kind, detail)


def _parse_auth_date(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _decode_user(value: Optional[str]) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    try:
        user = json.loads(value)
    except ValueError:
        return None
    return user if isinstance(user, dict) else None


def _user_id(user: Optional[Dict[str, Any]]) -> Optional[str]:
    if not user:
        return None
    user_id = user.get("id")
    # bool is an int subclass; reject it along with other non-identifiers
    if isinstance(user_id, bool) or not isinstance(user_id, (int, str)):
        return None
    user_id = str(user_id)
    return user_id or None
