"""
Auth service for the Ascent access layer.
"""

from typing import Optional

from fastapi import Depends
from pydantic import BaseModel, ConfigDict, Field

from ascent_common.base_service import BaseService
from ascent_common.config import ServiceConfig
from ascent_common.errors import ValidationError

from .facade import AuthenticationFacade, rejection_error
from .initdata.verifier import InitDataVerifier
from .jwks.client import HttpKeySetSource, KeySetSource, SigningKeyCache
from .models import Principal, Rejected
from .validation.token_validator import TokenVerifier


class InitDataVerificationRequest(BaseModel):
    """Request model for initData verification."""

    model_config = ConfigDict(populate_by_name=True)

    init_data: str = Field(default="", alias="initData")


class PrincipalResponse(BaseModel):
    """Identity returned to an authenticated caller."""

    user_id: Optional[str] = None
    scheme: str
    issued_at: Optional[str] = None

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        return cls(
            user_id=principal.user_id,
            scheme=principal.scheme,
            issued_at=principal.issued_at.isoformat() if principal.issued_at else None,
        )


class AuthService(BaseService):
    """Auth service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, key_source: Optional[KeySetSource] = None):
        super().__init__("auth", 8010, config)

        missing = self.config.missing_auth_settings()
        if missing:
            # Affected schemes reject every request as misconfigured; nothing is bypassed.
            self.logger.error("Required auth settings missing", missing=missing)

        self.key_cache = self._build_key_cache(key_source)
        self.init_data_verifier = InitDataVerifier(
            self.config.bot_secret,
            self.config.init_data_max_age,
        )
        self.token_verifier = TokenVerifier(
            self.key_cache,
            audience=self.config.token_audience,
            issuer=self.config.token_issuer,
            leeway=self.config.token_leeway,
        )
        self.facade = AuthenticationFacade(
            self.init_data_verifier,
            self.token_verifier,
            metrics=self.metrics,
        )

        self._setup_auth_routes()

    def _build_key_cache(self, key_source: Optional[KeySetSource]) -> Optional[SigningKeyCache]:
        if key_source is None:
            if not self.config.jwks_url:
                return None
            key_source = HttpKeySetSource(self.config.jwks_url, http_timeout=self.config.jwks_fetch_timeout)

        return SigningKeyCache(
            key_source,
            ttl=self.config.jwks_cache_ttl,
            requests_per_minute=self.config.jwks_requests_per_minute,
            fetch_timeout=self.config.jwks_fetch_timeout,
            metrics=self.metrics,
        )

    def _setup_auth_routes(self):
        """Set up auth-specific routes."""

        require_principal = self.facade.require_principal()

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "auth",
                "message": "Ascent Access Layer - Auth Service",
                "version": "1.0.0"
            }

        @self.app.post("/auth/verify")
        async def verify_init_data(request: InitDataVerificationRequest):
            """Validate initData handed to the embedded client by the host application."""
            if not request.init_data:
                raise ValidationError("initData is missing")

            result = self.init_data_verifier.verify(request.init_data, require_user=False)
            if isinstance(result, Rejected):
                self.metrics.increment_counter("auth_verifications_total", scheme="tma", outcome=result.kind.value)
                raise rejection_error(result)

            self.metrics.increment_counter("auth_verifications_total", scheme="tma", outcome="authenticated")
            principal = result.principal
            return {
                "valid": True,
                "message": "HMAC validation successful.",
                **PrincipalResponse.from_principal(principal).model_dump(),
            }

        @self.app.get("/auth/me", response_model=PrincipalResponse)
        async def whoami(principal: Principal = Depends(require_principal)):
            """Return the identity behind the request's Authorization header."""
            return PrincipalResponse.from_principal(principal)

    async def startup(self) -> None:
        if self.key_cache is not None and self.config.jwks_warmup:
            await self.key_cache.warmup()

    async def shutdown(self) -> None:
        if self.key_cache is not None:
            await self.key_cache.close()

    async def _check_dependencies(self):
        """Check auth dependencies."""
        if self.key_cache is None:
            return {"jwks": "unconfigured"}
        return {"jwks": await self.key_cache.check_health()}


def create_app(config: Optional[ServiceConfig] = None, key_source: Optional[KeySetSource] = None):
    """Create FastAPI application."""
    service = AuthService(config, key_source)
    return service.app


if __name__ == "__main__":
    service = AuthService()
    service.run()
