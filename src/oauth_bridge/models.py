from __future__ import annotations

from datetime import datetime  # noqa: TC003
from typing import Literal

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, field_validator

from oauth_bridge.utils import is_absolute_uri

_DEFAULT_GRANT_TYPES = ["authorization_code"]
_DEFAULT_RESPONSE_TYPES = ["code"]


class OAuthClientMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    redirect_uris: list[str] = Field(..., min_length=1)
    client_name: str | None = None
    grant_types: list[str] = Field(default_factory=lambda: list(_DEFAULT_GRANT_TYPES))
    response_types: list[str] = Field(default_factory=lambda: list(_DEFAULT_RESPONSE_TYPES))
    token_endpoint_auth_method: Literal["none"] = "none"

    @field_validator("redirect_uris")
    @classmethod
    def validate_redirect_uris(cls, value: list[str]) -> list[str]:
        for uri in value:
            if not is_absolute_uri(uri):
                msg = f"Invalid redirect_uri: {uri}"
                raise ValueError(msg)
        return value

    @field_validator("client_name", mode="before")
    @classmethod
    def blank_name_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("grant_types", mode="before")
    @classmethod
    def default_grant_types(cls, value: object) -> object:
        return value or list(_DEFAULT_GRANT_TYPES)

    @field_validator("response_types", mode="before")
    @classmethod
    def default_response_types(cls, value: object) -> object:
        return value or list(_DEFAULT_RESPONSE_TYPES)

    @field_validator("token_endpoint_auth_method", mode="before")
    @classmethod
    def default_auth_method(cls, value: object) -> object:
        return value or "none"


class OAuthClientInformation(OAuthClientMetadata):
    client_id: str
    client_id_issued_at: int | None = None


class OAuthMetadata(BaseModel):
    issuer: str
    authorization_endpoint: AnyHttpUrl
    token_endpoint: AnyHttpUrl
    registration_endpoint: AnyHttpUrl | None = None
    revocation_endpoint: AnyHttpUrl | None = None
    scopes_supported: list[str] | None = None
    response_types_supported: list[str] = ["code"]
    grant_types_supported: list[str] | None = None
    token_endpoint_auth_methods_supported: list[str] | None = None
    revocation_endpoint_auth_methods_supported: list[str] | None = None
    code_challenge_methods_supported: list[str] | None = None
    service_documentation: AnyHttpUrl | None = None


class ProtectedResourceMetadata(BaseModel):
    resource: str
    authorization_servers: list[str] = Field(..., min_length=1)
    scopes_supported: list[str] | None = None
    bearer_methods_supported: list[str] = ["header"]


class OAuthToken(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"  # noqa: S105
    scope: str


class AuthorizationState(BaseModel):
    """Authorization request parameters carried through the IdP round trip."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    client_id: str = Field(..., min_length=1)
    redirect_uri: str = Field(..., min_length=1)
    code_challenge: str = Field(..., min_length=1)
    code_challenge_method: Literal["S256", "plain"] = "S256"
    state: str = ""
    scope: str


class UpstreamTokens(BaseModel):
    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None


class VerifiedIdentity(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)


class AuthorizationGrant(BaseModel):
    """A redeemed authorization code with its upstream credentials decrypted."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    redirect_uri: str
    user_id: str
    user_email: str
    scope: str
    upstream_access_token: str
    upstream_refresh_token: str | None = None
    created_at: datetime
