from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from oauth_bridge.storage.models import OAuthAuthorizationCode, OAuthClient

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class AlchemyOAuthAdapter:
    """Shared persistence for registered clients and one-time authorization codes.

    Every method takes the caller's ``AsyncSession`` and commits its own unit of
    work, so several server instances pointed at the same database observe the
    same clients and codes.
    """

    def __init__(
        self,
        *,
        client: type[OAuthClient] = OAuthClient,
        authorization_code: type[OAuthAuthorizationCode] = OAuthAuthorizationCode,
    ) -> None:
        self.client_model = client
        self.authorization_code_model = authorization_code

    async def create_oauth_client(self, session: AsyncSession, data: dict[str, object]) -> OAuthClient:
        client = self.client_model(**data)
        session.add(client)
        try:
            await session.commit()
            await session.refresh(client)
        except Exception:
            await session.rollback()
            raise
        return client

    async def get_oauth_client(self, session: AsyncSession, client_id: str) -> OAuthClient | None:
        stmt = select(self.client_model).where(self.client_model.client_id == client_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_oauth_authorization_code(
        self,
        session: AsyncSession,
        data: dict[str, object],
    ) -> OAuthAuthorizationCode:
        code = self.authorization_code_model(**data)
        session.add(code)
        try:
            await session.commit()
            await session.refresh(code)
        except Exception:
            await session.rollback()
            raise
        return code

    async def consume_oauth_authorization_code(
        self,
        session: AsyncSession,
        code: str,
    ) -> OAuthAuthorizationCode | None:
        """Delete ``code`` and return the row it held, in one statement.

        Of any number of concurrent callers racing on the same code, exactly one
        receives the row; the rest get ``None``. Expiry is not checked here.
        """
        table = self.authorization_code_model.__table__
        stmt = delete(table).where(table.c.code == code).returning(*table.c)
        try:
            result = await session.execute(stmt)
            row = result.mappings().one_or_none()
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        if row is None:
            return None
        return self.authorization_code_model(**dict(row))

    async def delete_expired_oauth_authorization_codes(
        self,
        session: AsyncSession,
        now: datetime | None = None,
    ) -> int:
        table = self.authorization_code_model.__table__
        cutoff = datetime.now(UTC) if now is None else now
        stmt = delete(table).where(table.c.expires_at <= cutoff)
        try:
            result = await session.execute(stmt)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        return result.rowcount  # type: ignore[attr-defined]
