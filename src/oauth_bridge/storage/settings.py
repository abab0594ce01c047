from __future__ import annotations

import os
from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING, Literal

from pydantic import NonNegativeFloat, PositiveInt, SecretStr  # noqa: TC002
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import event
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from oauth_bridge.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.engine import Connection


@dataclass(slots=True, kw_only=True, frozen=True)
class SQLAlchemyRuntime:
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]

    async def dependency(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_maker() as session:
            yield session


class PostgresSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_POSTGRES_",
        env_file=".env",
        extra="ignore",
    )

    type: Literal["postgres"] = "postgres"
    host: str
    port: PositiveInt = 5432
    database: str
    username: str
    password: SecretStr
    pool_pre_ping: bool = True
    echo: bool = False

    @cached_property
    def runtime(self) -> SQLAlchemyRuntime:
        engine = create_async_engine(
            URL.create(
                "postgresql+asyncpg",
                username=self.username,
                password=self.password.get_secret_value(),
                host=self.host,
                port=self.port,
                database=self.database,
            ),
            echo=self.echo,
            pool_pre_ping=self.pool_pre_ping,
        )
        return SQLAlchemyRuntime(
            engine=engine,
            session_maker=async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
        )


class SqliteSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_SQLITE_",
        env_file=".env",
        extra="ignore",
    )

    type: Literal["sqlite"] = "sqlite"
    database: str = "./oauth_bridge.db"
    immediate_transactions: bool = True
    busy_timeout_seconds: NonNegativeFloat = 5.0
    echo: bool = False

    @cached_property
    def runtime(self) -> SQLAlchemyRuntime:
        connect_args: dict[str, object] = {"timeout": self.busy_timeout_seconds}
        if self.database.startswith("file:"):
            connect_args["uri"] = True
        engine = create_async_engine(
            URL.create("sqlite+aiosqlite", database=self.database),
            echo=self.echo,
            connect_args=connect_args,
        )

        if self.immediate_transactions:
            # Take the write lock at BEGIN; racing writers wait out busy_timeout_seconds.
            @event.listens_for(engine.sync_engine, "connect")
            def _disable_driver_begin(dbapi_conn: object, _connection_record: object) -> None:
                dbapi_conn.isolation_level = None  # type: ignore[attr-defined]

            @event.listens_for(engine.sync_engine, "begin")
            def _begin_immediate(conn: Connection) -> None:
                conn.exec_driver_sql("BEGIN IMMEDIATE")

        return SQLAlchemyRuntime(
            engine=engine,
            session_maker=async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
        )


type DatabaseBackendSettings = PostgresSettings | SqliteSettings


def database_settings_from_env() -> DatabaseBackendSettings:
    """Select the database backend from ``BRIDGE_DATABASE_TYPE`` (``sqlite`` or ``postgres``).

    ``postgres`` reads ``BRIDGE_POSTGRES_*``; ``sqlite`` (the default) reads
    ``BRIDGE_SQLITE_*``.
    """
    database_type = os.getenv("BRIDGE_DATABASE_TYPE", "sqlite").strip().lower()
    if database_type == "postgres":
        return PostgresSettings()  # type: ignore[call-arg]
    if database_type == "sqlite":
        return SqliteSettings()
    msg = f"unsupported BRIDGE_DATABASE_TYPE: {database_type!r}"
    raise ConfigurationError(msg)
