from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio
from pydantic import SecretStr

from oauth_bridge.app import create_app
from oauth_bridge.exceptions import (
    IdentityProviderError,
    IdentityVerificationError,
    TokenServiceError,
)
from oauth_bridge.models import AuthorizationState, UpstreamTokens, VerifiedIdentity
from oauth_bridge.pkce import create_code_challenge
from oauth_bridge.settings import BridgeSettings, IdentityProviderSettings, TokenServiceSettings
from oauth_bridge.storage import AlchemyOAuthAdapter, Base, SqliteSettings
from oauth_bridge.utils import construct_redirect_uri

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from pathlib import Path

    from fastapi import FastAPI
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from oauth_bridge.server import AuthorizationServer
    from oauth_bridge.storage import SQLAlchemyRuntime

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"  # noqa: S105
CODE_VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
CLIENT_REDIRECT_URI = "https://client.example/cb"
IDP_ACCESS_TOKEN = "idp-access-token"  # noqa: S105
IDP_REFRESH_TOKEN = "idp-refresh-token"  # noqa: S105
IDP_CODE = "idp-code"


class FakeIdentityProvider:
    def __init__(self) -> None:
        self.identities = {IDP_ACCESS_TOKEN: VerifiedIdentity(id="u1", email="u1@x.com")}
        self.codes = {IDP_CODE: UpstreamTokens(access_token=IDP_ACCESS_TOKEN, refresh_token=IDP_REFRESH_TOKEN)}
        self.unavailable = False
        self.verified: list[str] = []

    def authorization_url(self, redirect_to: str) -> str:
        return construct_redirect_uri(
            "https://idp.example/auth/v1/authorize",
            provider="google",
            redirect_to=redirect_to,
        )

    async def exchange_code(self, code: str) -> UpstreamTokens:
        if self.unavailable or code not in self.codes:
            msg = "code exchange failed"
            raise IdentityProviderError(msg)
        return self.codes[code]

    async def verify(self, access_token: str) -> VerifiedIdentity:
        self.verified.append(access_token)
        if self.unavailable:
            msg = "idp down"
            raise IdentityProviderError(msg)
        identity = self.identities.get(access_token)
        if identity is None:
            msg = "token rejected"
            raise IdentityVerificationError(msg)
        return identity


class FakeTokenService:
    def __init__(self) -> None:
        self.minted: list[tuple[str, str, list[str]]] = []
        self.revoked: list[str] = []
        self.fail = False

    async def mint(self, user_id: str, label: str, scopes: Sequence[str]) -> str:
        if self.fail:
            msg = "mint failed"
            raise TokenServiceError(msg)
        self.minted.append((user_id, label, list(scopes)))
        return f"platform-token-{len(self.minted)}"

    async def revoke(self, token: str) -> None:
        self.revoked.append(token)
        if self.fail:
            msg = "revoke failed"
            raise TokenServiceError(msg)


@pytest.fixture
def settings() -> BridgeSettings:
    return BridgeSettings(
        secret=SecretStr(TEST_SECRET),
        identity_provider=IdentityProviderSettings(
            base_url="https://idp.example",
            api_key=SecretStr("idp-anon-key"),
        ),
        token_service=TokenServiceSettings(
            base_url="https://platform.example/api",
            api_key=SecretStr("platform-service-key"),
        ),
    )


@pytest_asyncio.fixture
async def db_runtime(tmp_path: Path) -> SQLAlchemyRuntime:
    runtime = SqliteSettings(database=str(tmp_path / "oauth_bridge.db")).runtime
    async with runtime.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield runtime
    await runtime.engine.dispose()


@pytest.fixture
def db_session_factory(db_runtime: SQLAlchemyRuntime) -> async_sessionmaker[AsyncSession]:
    return db_runtime.session_maker


@pytest_asyncio.fixture
async def db_session(db_session_factory: async_sessionmaker[AsyncSession]) -> AsyncSession:
    async with db_session_factory() as session:
        yield session


@pytest.fixture
def adapter() -> AlchemyOAuthAdapter:
    return AlchemyOAuthAdapter()


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def token_service() -> FakeTokenService:
    return FakeTokenService()


@pytest.fixture
def app(
    settings: BridgeSettings,
    db_runtime: SQLAlchemyRuntime,
    identity_provider: FakeIdentityProvider,
    token_service: FakeTokenService,
) -> FastAPI:
    return create_app(
        settings,
        database=db_runtime,
        identity_provider=identity_provider,
        token_service=token_service,
    )


@pytest.fixture
def server(app: FastAPI) -> AuthorizationServer:
    return app.state.authorization_server


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    await transport.aclose()


@pytest.fixture
def make_state() -> Callable[..., AuthorizationState]:
    def _make_state(**overrides: str) -> AuthorizationState:
        values = {
            "client_id": "client-1",
            "redirect_uri": CLIENT_REDIRECT_URI,
            "code_challenge": create_code_challenge(CODE_VERIFIER),
            "code_challenge_method": "S256",
            "state": "xyz",
            "scope": "mcp:read mcp:write",
        }
        values.update(overrides)
        return AuthorizationState(**values)

    return _make_state


@pytest.fixture
def issue_code(
    server: AuthorizationServer,
    db_session_factory: async_sessionmaker[AsyncSession],
    make_state: Callable[..., AuthorizationState],
) -> Callable[..., Awaitable[str]]:
    async def _issue_code(**overrides: str) -> str:
        async with db_session_factory() as session:
            redirect_url = await server.issue_authorization_code(
                session,
                make_state(**overrides),
                UpstreamTokens(access_token=IDP_ACCESS_TOKEN, refresh_token=IDP_REFRESH_TOKEN),
            )
        return parse_qs(urlparse(redirect_url).query)["code"][0]

    return _issue_code
