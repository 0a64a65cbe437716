"""
Shared configuration management for the Ascent access layer.
"""

from typing import List, Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ASCENT_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Embedded-client (initData) scheme
    bot_token: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("ASCENT_BOT_TOKEN", "BOT_TOKEN"),
    )
    init_data_max_age: int = 86400

    # Identity backend (JWKS-signed bearer tokens)
    identity_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ASCENT_IDENTITY_BASE_URL", "SUPABASE_URL"),
    )
    jwks_path: str = "/.well-known/jwks.json"
    jwks_cache_ttl: int = 86400
    jwks_requests_per_minute: int = 5
    jwks_fetch_timeout: float = 5.0
    jwks_warmup: bool = False
    token_audience: Optional[str] = None
    token_issuer: Optional[str] = None
    token_leeway: int = 0

    @property
    def jwks_url(self) -> Optional[str]:
        """Key-set URL derived from the identity backend base URL."""
        if not self.identity_base_url:
            return None
        return f"{self.identity_base_url.rstrip('/')}{self.jwks_path}"

    @property
    def bot_secret(self) -> Optional[bytes]:
        if self.bot_token is None:
            return None
        value = self.bot_token.get_secret_value()
        return value.encode("utf-8") if value else None

    def missing_auth_settings(self) -> List[str]:
        """Names of required auth settings that are absent."""
        missing = []
        if not self.bot_secret:
            missing.append("bot_token")
        if not self.identity_base_url:
            missing.append("identity_base_url")
        return missing


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
