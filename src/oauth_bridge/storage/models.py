from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from oauth_bridge.storage.base import Base, DateTimeUTC


def _utcnow() -> datetime:
    return datetime.now(UTC)


class OAuthClient(Base):
    __tablename__ = "oauth_clients"

    id: Mapped[UUID] = mapped_column(primary_key=True, default_factory=uuid4, init=False)
    client_id: Mapped[str] = mapped_column(Text, unique=True, index=True)
    redirect_uris: Mapped[list[str]] = mapped_column(JSON)

    client_name: Mapped[str | None] = mapped_column(Text, default=None)
    grant_types: Mapped[list[str]] = mapped_column(JSON, default_factory=lambda: ["authorization_code"])
    response_types: Mapped[list[str]] = mapped_column(JSON, default_factory=lambda: ["code"])
    token_endpoint_auth_method: Mapped[str] = mapped_column(Text, default="none")

    created_at: Mapped[datetime] = mapped_column(DateTimeUTC, default_factory=_utcnow)


class OAuthAuthorizationCode(Base):
    __tablename__ = "oauth_authorization_codes"
    __table_args__ = (Index("ix_oauth_authorization_codes_expires_at", "expires_at"),)

    code: Mapped[str] = mapped_column(Text, primary_key=True)
    client_id: Mapped[str] = mapped_column(Text)
    redirect_uri: Mapped[str] = mapped_column(Text)
    code_challenge: Mapped[str] = mapped_column(Text)
    upstream_access_token: Mapped[str] = mapped_column(Text)
    user_id: Mapped[str] = mapped_column(Text)
    user_email: Mapped[str] = mapped_column(Text)
    expires_at: Mapped[datetime] = mapped_column(DateTimeUTC)

    code_challenge_method: Mapped[str] = mapped_column(Text, default="S256")
    upstream_refresh_token: Mapped[str | None] = mapped_column(Text, default=None)
    scope: Mapped[str] = mapped_column(Text, default="mcp:read mcp:write")
    created_at: Mapped[datetime] = mapped_column(DateTimeUTC, default_factory=_utcnow)
