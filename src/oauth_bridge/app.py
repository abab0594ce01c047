from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from oauth_bridge.cleanup import AuthorizationCodeSweeper
from oauth_bridge.identity import IdentityBridge
from oauth_bridge.routes import create_router
from oauth_bridge.server import AuthorizationServer
from oauth_bridge.settings import BridgeSettings
from oauth_bridge.storage import AlchemyOAuthAdapter, Base, SQLAlchemyRuntime, database_settings_from_env
from oauth_bridge.tokens import TokenIssuer

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from oauth_bridge.protocols import IdentityProviderProtocol, TokenServiceProtocol
    from oauth_bridge.storage import DatabaseBackendSettings

logger = logging.getLogger(__name__)


def create_app(
    settings: BridgeSettings | None = None,
    *,
    database: DatabaseBackendSettings | SQLAlchemyRuntime | None = None,
    identity_provider: IdentityProviderProtocol | None = None,
    token_service: TokenServiceProtocol | None = None,
) -> FastAPI:
    """Build the authorization server application.

    Every argument falls back to environment configuration, so
    ``uvicorn --factory oauth_bridge.app:create_app`` works without code.
    """
    if settings is None:
        settings = BridgeSettings()  # type: ignore[call-arg]
    if database is None:
        database = database_settings_from_env()
    runtime = database if isinstance(database, SQLAlchemyRuntime) else database.runtime

    adapter = AlchemyOAuthAdapter()
    server = AuthorizationServer(
        settings,
        adapter=adapter,
        identity_provider=identity_provider or IdentityBridge(settings.identity_provider),
        token_service=token_service or TokenIssuer(settings.token_service),
    )
    sweeper = AuthorizationCodeSweeper(
        adapter,
        runtime.session_maker,
        interval_seconds=settings.cleanup_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        async with runtime.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        sweeper.start()
        logger.info("OAuth bridge started with routes under %r", settings.route_prefix or "/")
        try:
            yield
        finally:
            await sweeper.stop()
            await runtime.engine.dispose()

    app = FastAPI(title="OAuth Bridge", lifespan=lifespan)
    app.state.authorization_server = server
    app.state.sweeper = sweeper
    app.include_router(create_router(server, runtime.dependency))
    return app
