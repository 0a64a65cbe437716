"""
Bearer token verification against the cached JWKS.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from jose import jwt
from jose.exceptions import JWTClaimsError, JWTError

from ascent_common.logging import get_logger

from ..jwks.client import SigningKeyCache
from ..models import Authenticated, ErrorKind, Principal, Rejected, VerificationResult

SCHEME = "bearer"


class TokenVerifier:
    """Validates signed tokens issued by the identity backend.

    The verification algorithm is the one declared by the key in the key
    set. The token header's ``alg`` is only compared against it; a token
    claiming any other algorithm is rejected before signature checking.
    """

    def __init__(
        self,
        key_cache: Optional[SigningKeyCache],
        *,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        leeway: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        self.key_cache = key_cache
        self.audience = audience
        self.issuer = issuer
        self.leeway = leeway
        self._clock = clock
        self.logger = get_logger("auth.validator")

    @property
    def configured(self) -> bool:
        return self.key_cache is not None

    async def verify(self, token: str) -> VerificationResult:
        """Verify ``token`` and return the authenticated principal or the rejection."""
        if self.key_cache is None:
            self.logger.error("Token verification attempted without an identity backend URL")
            return Rejected(ErrorKind.SERVER_MISCONFIGURATION, "identity backend not configured")

        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, "unreadable token header")

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, "token missing key ID")

        key = await self.key_cache.get_key(kid)
        if isinstance(key, Rejected):
            self.logger.info("Token rejected", reason=key.kind.value, kid=kid, detail=key.detail)
            return key

        header_alg = header.get("alg")
        if header_alg != key.algorithm:
            return self._reject(
                ErrorKind.SIGNATURE_MISMATCH,
                f"token alg {header_alg!r} does not match key {kid} alg {key.algorithm}",
            )

        try:
            claims = jwt.decode(
                token,
                key.public_key_material,
                algorithms=[key.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_aud": self.audience is not None,
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_at_hash": False,
                    "leeway": self.leeway,
                },
            )
        except JWTClaimsError as exc:
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, f"invalid claims: {exc}")
        except JWTError as exc:
            return self._reject(ErrorKind.SIGNATURE_MISMATCH, f"signature verification failed: {exc}")

        # exp and nbf are both judged against the injected clock.
        now = self._clock()
        expires = _numeric_claim(claims, "exp")
        if expires is _INVALID:
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, "exp claim is not numeric")
        if expires is not None and now - self.leeway >= expires:
            return self._reject(ErrorKind.EXPIRED, "token has expired")

        not_before = _numeric_claim(claims, "nbf")
        if not_before is _INVALID:
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, "nbf claim is not numeric")
        if not_before is not None and now + self.leeway < not_before:
            return self._reject(ErrorKind.EXPIRED, "token not yet valid (nbf)")

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            return self._reject(ErrorKind.MALFORMED_CREDENTIAL, "token payload missing subject")

        return Authenticated(Principal(
            user_id=subject,
            scheme=SCHEME,
            issued_at=_issued_at(claims),
        ))

    def _reject(self, kind: ErrorKind, detail: str) -> Rejected:
        self.logger.info("Token rejected", reason=kind.value, detail=detail)
        return Rejected(kind, detail)


_INVALID = object()


def _numeric_claim(claims: Dict[str, Any], name: str):
    value = claims.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return _INVALID
    return value


def _issued_at(claims: Dict[str, Any]) -> Optional[datetime]:
    issued_at = _numeric_claim(claims, "iat")
    if issued_at is None or issued_at is _INVALID:
        return None
    try:
        return datetime.fromtimestamp(issued_at, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
