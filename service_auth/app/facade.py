"""
Single authentication entry point for request handlers.
"""

from typing import Awaitable, Callable, Optional, Tuple

from fastapi import Request

from ascent_common.errors import AscentException, AuthenticationError, ConfigurationError
from ascent_common.logging import get_logger, set_user_context
from ascent_common.metrics import MetricsCollector

from .initdata.verifier import SCHEME as TMA_SCHEME, InitDataVerifier
from .models import ErrorKind, Principal, Rejected, VerificationResult
from .validation.token_validator import SCHEME as BEARER_SCHEME, TokenVerifier


def split_authorization(header: Optional[str]) -> Tuple[Optional[str], str]:
    """Split an Authorization header into ``(scheme, credential)``.

    The scheme is lowercased and is None unless it is one this service
    understands and carries a non-empty credential.
    """
    if not header:
        return None, ""
    scheme, _, credential = header.strip().partition(" ")
    scheme = scheme.lower()
    credential = credential.strip()
    if scheme not in (TMA_SCHEME, BEARER_SCHEME) or not credential:
        return None, ""
    return scheme, credential


def rejection_error(rejected: Rejected) -> AscentException:
    """HTTP-facing exception for a rejection; carries only the public message."""
    if rejected.kind is ErrorKind.SERVER_MISCONFIGURATION:
        return ConfigurationError(rejected.kind.public_message)
    return AuthenticationError(
        rejected.kind.public_message,
        code=rejected.kind.name,
        status_code=rejected.kind.status_code,
    )


class AuthenticationFacade:
    """Routes a request credential to the verifier for its scheme.

    ``Authorization: tma <initData>`` goes to the initData verifier and
    ``Authorization: Bearer <token>`` to the token verifier. Anything else
    is a missing credential.
    """

    def __init__(
        self,
        init_data_verifier: InitDataVerifier,
        token_verifier: TokenVerifier,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.init_data_verifier = init_data_verifier
        self.token_verifier = token_verifier
        self.metrics = metrics
        self.logger = get_logger("auth.facade")

    async def authenticate(
        self,
        authorization: Optional[str],
        *,
        max_age: Optional[int] = None,
        require_user: bool = True,
    ) -> VerificationResult:
        scheme, credential = split_authorization(authorization)
        if scheme is None:
            result: VerificationResult = Rejected(ErrorKind.MISSING_CREDENTIAL, "no recognizable Authorization header")
            self._record("none", result)
            return result

        try:
            if scheme == TMA_SCHEME:
                result = self.init_data_verifier.verify(credential, max_age=max_age, require_user=require_user)
            else:
                result = await self.token_verifier.verify(credential)
        except Exception as exc:
            # Library internals only; the message may echo credential bytes.
            self.logger.error("Unexpected error during verification", scheme=scheme, error_type=type(exc).__name__)
            kind = ErrorKind.KEY_FETCH_FAILED if scheme == BEARER_SCHEME else ErrorKind.MALFORMED_CREDENTIAL
            result = Rejected(kind, f"unexpected {type(exc).__name__}")

        self._record(scheme, result)
        if result.ok:
            set_user_context(result.principal.user_id)
        return result

    def _record(self, scheme: str, result: VerificationResult) -> None:
        if self.metrics is None:
            return
        outcome = "authenticated" if result.ok else result.kind.value
        self.metrics.increment_counter("auth_verifications_total", scheme=scheme, outcome=outcome)

    def require_principal(
        self,
        *,
        max_age: Optional[int] = None,
        require_user: bool = True,
    ) -> Callable[[Request], Awaitable[Principal]]:
        """FastAPI dependency yielding the verified Principal or raising the mapped rejection error."""

        async def _require_principal(request: Request) -> Principal:
            result = await self.authenticate(
                request.headers.get("Authorization"),
                max_age=max_age,
                require_user=require_user,
            )
            if isinstance(result, Rejected):
                raise rejection_error(result)
            return result.principal

        return _require_principal
