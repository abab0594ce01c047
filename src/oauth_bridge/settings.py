from __future__ import annotations

from pydantic import AnyHttpUrl, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_MIN_SECRET_LENGTH = 32


class IdentityProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_IDP_",
        env_file=".env",
        extra="ignore",
    )

    base_url: AnyHttpUrl
    api_key: SecretStr
    provider: str = "google"
    timeout_seconds: float = Field(default=10.0, gt=0)


class TokenServiceSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_TOKEN_SERVICE_",
        env_file=".env",
        extra="ignore",
    )

    base_url: AnyHttpUrl
    api_key: SecretStr
    timeout_seconds: float = Field(default=10.0, gt=0)


class BridgeSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    secret: SecretStr
    route_prefix: str = "/oauth"

    scopes_supported: list[str] = Field(default=["mcp:read", "mcp:write"], min_length=1)
    default_scope: str = "mcp:read mcp:write"
    token_scopes: list[str] = Field(default=["*"])

    authorization_code_ttl_seconds: int = Field(default=300, gt=0)
    state_ttl_seconds: int = Field(default=600, gt=0)
    cleanup_interval_seconds: float = Field(default=300.0, gt=0)

    # Unregistered client ids are let through /authorize unless this is set.
    require_registered_client: bool = False
    service_documentation: AnyHttpUrl | None = None

    identity_provider: IdentityProviderSettings = Field(default_factory=IdentityProviderSettings)
    token_service: TokenServiceSettings = Field(default_factory=TokenServiceSettings)

    @field_validator("secret")
    @classmethod
    def validate_secret(cls, value: SecretStr) -> SecretStr:
        if len(value.get_secret_value()) < _MIN_SECRET_LENGTH:
            msg = f"secret must be at least {_MIN_SECRET_LENGTH} characters"
            raise ValueError(msg)
        return value

    @field_validator("route_prefix")
    @classmethod
    def validate_route_prefix(cls, value: str) -> str:
        normalized = value.strip().rstrip("/")
        if normalized and not normalized.startswith("/"):
            msg = "route_prefix must start with '/'"
            raise ValueError(msg)
        return normalized
