import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import respx
from pydantic import SecretStr

from oauth_bridge.exceptions import IdentityProviderError, IdentityVerificationError
from oauth_bridge.identity import IdentityBridge
from oauth_bridge.settings import IdentityProviderSettings

USER_URL = "https://idp.example/auth/v1/user"
TOKEN_URL = "https://idp.example/auth/v1/token?grant_type=pkce"


@pytest.fixture
def identity_bridge() -> IdentityBridge:
    return IdentityBridge(
        IdentityProviderSettings(base_url="https://idp.example", api_key=SecretStr("anon-key")),
    )


def test_authorization_url_carries_provider_and_callback(identity_bridge: IdentityBridge) -> None:
    callback = "https://bridge.example/oauth/callback?oauth_state=abc.def"

    url = identity_bridge.authorization_url(callback)

    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://idp.example/auth/v1/authorize"
    query = parse_qs(parsed.query)
    assert query["provider"] == ["google"]
    assert query["redirect_to"] == [callback]


@pytest.mark.asyncio
@respx.mock
async def test_verify_returns_identity(identity_bridge: IdentityBridge) -> None:
    route = respx.get(USER_URL).mock(
        return_value=httpx.Response(200, json={"id": "u1", "email": "u1@x.com", "role": "authenticated"}),
    )

    identity = await identity_bridge.verify("upstream-token")

    assert identity.id == "u1"
    assert identity.email == "u1@x.com"
    request = route.calls.last.request
    assert request.headers["authorization"] == "Bearer upstream-token"
    assert request.headers["apikey"] == "anon-key"


@pytest.mark.parametrize("status_code", [401, 403])
@pytest.mark.asyncio
@respx.mock
async def test_verify_rejected_token(identity_bridge: IdentityBridge, status_code: int) -> None:
    respx.get(USER_URL).mock(return_value=httpx.Response(status_code, json={"msg": "invalid JWT"}))

    with pytest.raises(IdentityVerificationError):
        await identity_bridge.verify("expired-token")


@pytest.mark.parametrize("payload", [{"id": "u1"}, {"email": "u1@x.com"}, {"id": "", "email": "u1@x.com"}])
@pytest.mark.asyncio
@respx.mock
async def test_verify_requires_id_and_email(identity_bridge: IdentityBridge, payload: dict[str, str]) -> None:
    respx.get(USER_URL).mock(return_value=httpx.Response(200, json=payload))

    with pytest.raises(IdentityVerificationError):
        await identity_bridge.verify("upstream-token")


@pytest.mark.asyncio
@respx.mock
async def test_verify_server_error_is_provider_error(identity_bridge: IdentityBridge) -> None:
    respx.get(USER_URL).mock(return_value=httpx.Response(503))

    with pytest.raises(IdentityProviderError) as exc:
        await identity_bridge.verify("upstream-token")
    assert not isinstance(exc.value, IdentityVerificationError)


@pytest.mark.asyncio
@respx.mock
async def test_verify_network_error_is_provider_error(identity_bridge: IdentityBridge) -> None:
    respx.get(USER_URL).mock(side_effect=httpx.ConnectError("connection refused"))

    with pytest.raises(IdentityProviderError):
        await identity_bridge.verify("upstream-token")


@pytest.mark.asyncio
@respx.mock
async def test_verify_invalid_json_is_provider_error(identity_bridge: IdentityBridge) -> None:
    respx.get(USER_URL).mock(return_value=httpx.Response(200, content=b"<html>oops</html>"))

    with pytest.raises(IdentityProviderError):
        await identity_bridge.verify("upstream-token")


@pytest.mark.asyncio
@respx.mock
async def test_exchange_code_returns_tokens(identity_bridge: IdentityBridge) -> None:
    route = respx.post(TOKEN_URL).mock(
        return_value=httpx.Response(
            200,
            json={"access_token": "upstream-access", "refresh_token": "upstream-refresh", "token_type": "bearer"},
        ),
    )

    tokens = await identity_bridge.exchange_code("idp-code")

    assert tokens.access_token == "upstream-access"
    assert tokens.refresh_token == "upstream-refresh"
    request = route.calls.last.request
    assert request.headers["apikey"] == "anon-key"
    assert json.loads(request.content) == {"auth_code": "idp-code", "code_verifier": ""}


@pytest.mark.asyncio
@respx.mock
async def test_exchange_code_failure(identity_bridge: IdentityBridge) -> None:
    respx.post(TOKEN_URL).mock(return_value=httpx.Response(400, json={"error": "invalid_grant"}))

    with pytest.raises(IdentityProviderError):
        await identity_bridge.exchange_code("bad-code")


@pytest.mark.asyncio
@respx.mock
async def test_exchange_code_without_access_token(identity_bridge: IdentityBridge) -> None:
    respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json={"refresh_token": "only-refresh"}))

    with pytest.raises(IdentityProviderError):
        await identity_bridge.exchange_code("idp-code")


@pytest.mark.asyncio
@respx.mock
async def test_exchange_code_network_error(identity_bridge: IdentityBridge) -> None:
    respx.post(TOKEN_URL).mock(side_effect=httpx.ReadTimeout("timed out"))

    with pytest.raises(IdentityProviderError):
        await identity_bridge.exchange_code("idp-code")
