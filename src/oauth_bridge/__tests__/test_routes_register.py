import httpx
import pytest

from oauth_bridge.server import AuthorizationServer
from oauth_bridge.storage import AlchemyOAuthAdapter


@pytest.mark.asyncio
async def test_register_returns_client_with_defaults(async_client: httpx.AsyncClient) -> None:
    response = await async_client.post(
        "/oauth/register",
        json={"client_name": "Agent", "redirect_uris": ["https://client.example/cb"]},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["client_id"]
    assert body["client_name"] == "Agent"
    assert body["redirect_uris"] == ["https://client.example/cb"]
    assert body["grant_types"] == ["authorization_code"]
    assert body["response_types"] == ["code"]
    assert body["token_endpoint_auth_method"] == "none"
    assert "client_secret" not in body


@pytest.mark.asyncio
async def test_register_persists_client(
    async_client: httpx.AsyncClient,
    server: AuthorizationServer,
    db_session,
) -> None:
    response = await async_client.post("/oauth/register", json={"redirect_uris": ["http://localhost:3000/cb"]})
    client_id = response.json()["client_id"]

    stored = await server.get_client(db_session, client_id)

    assert stored is not None
    assert stored.redirect_uris == ["http://localhost:3000/cb"]
    assert stored.client_name is None


@pytest.mark.asyncio
async def test_register_issues_unique_client_ids(async_client: httpx.AsyncClient) -> None:
    client_ids = set()
    for _ in range(5):
        response = await async_client.post("/oauth/register", json={"redirect_uris": ["https://client.example/cb"]})
        assert response.status_code == 201
        client_ids.add(response.json()["client_id"])

    assert len(client_ids) == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"redirect_uris": []}, {"redirect_uris": "https://client.example/cb"}])
async def test_register_requires_redirect_uris(async_client: httpx.AsyncClient, body: dict) -> None:
    response = await async_client.post("/oauth/register", json=body)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"
    assert "redirect_uris" in response.json()["error_description"]


@pytest.mark.asyncio
async def test_register_names_invalid_redirect_uri(async_client: httpx.AsyncClient) -> None:
    response = await async_client.post(
        "/oauth/register",
        json={"redirect_uris": ["https://client.example/cb", "not a uri"]},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"
    assert "Invalid redirect_uri: not a uri" in response.json()["error_description"]


@pytest.mark.asyncio
async def test_register_rejects_invalid_json(async_client: httpx.AsyncClient) -> None:
    response = await async_client.post(
        "/oauth/register",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "invalid_request", "error_description": "Invalid JSON"}


@pytest.mark.asyncio
async def test_register_rejects_non_object_body(async_client: httpx.AsyncClient) -> None:
    response = await async_client.post("/oauth/register", json=["https://client.example/cb"])

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


@pytest.mark.asyncio
async def test_register_rejects_confidential_client(async_client: httpx.AsyncClient) -> None:
    response = await async_client.post(
        "/oauth/register",
        json={"redirect_uris": ["https://client.example/cb"], "token_endpoint_auth_method": "client_secret_post"},
    )

    assert response.status_code == 400
    assert "token_endpoint_auth_method" in response.json()["error_description"]


@pytest.mark.asyncio
async def test_register_storage_failure_is_server_error(
    async_client: httpx.AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    from sqlalchemy.exc import OperationalError

    async def broken_create(self, session, data):  # noqa: ANN001, ANN202, ARG001
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(AlchemyOAuthAdapter, "create_oauth_client", broken_create)

    response = await async_client.post("/oauth/register", json={"redirect_uris": ["https://client.example/cb"]})

    assert response.status_code == 500
    assert response.json() == {"error": "server_error", "error_description": "Failed to register client"}
