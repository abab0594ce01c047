from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException

from oauth_bridge.exceptions import InvalidRequestError, OAuthError, UnsupportedGrantTypeError
from oauth_bridge.models import OAuthClientMetadata, UpstreamTokens
from oauth_bridge.utils import resolve_base_url

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable, Mapping

    from oauth_bridge.server import AuthorizationServer

    type DatabaseDependency = Callable[[], AsyncGenerator[AsyncSession, None]]

_METADATA_CACHE_CONTROL = "public, max-age=3600"
_NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def create_router(server: AuthorizationServer, db_dependency: DatabaseDependency) -> APIRouter:
    """Build the explicit route table for the metadata and OAuth endpoints."""
    prefix = server.settings.route_prefix
    router = APIRouter(tags=["oauth"])

    router = _add_protected_resource_metadata_route(router, server)
    router = _add_authorization_server_metadata_route(router, server)
    router = _add_register_route(router, server, db_dependency, prefix)
    router = _add_authorize_route(router, server, db_dependency, prefix)
    router = _add_callback_route(router, server, db_dependency, prefix)
    router = _add_callback_complete_route(router, server, db_dependency, prefix)
    router = _add_token_route(router, server, db_dependency, prefix)
    return _add_revoke_route(router, server, prefix)


def _add_protected_resource_metadata_route(router: APIRouter, server: AuthorizationServer) -> APIRouter:
    async def protected_resource_metadata_handler(request: Request) -> Response:
        metadata = server.protected_resource_metadata(resolve_base_url(request))
        return JSONResponse(
            metadata.model_dump(mode="json", exclude_none=True),
            headers={"Cache-Control": _METADATA_CACHE_CONTROL},
        )

    router.add_api_route(
        "/.well-known/oauth-protected-resource",
        protected_resource_metadata_handler,
        methods=["GET"],
    )
    return router


def _add_authorization_server_metadata_route(router: APIRouter, server: AuthorizationServer) -> APIRouter:
    async def authorization_server_metadata_handler(request: Request) -> Response:
        metadata = server.authorization_server_metadata(resolve_base_url(request))
        return JSONResponse(
            metadata.model_dump(mode="json", exclude_none=True),
            headers={"Cache-Control": _METADATA_CACHE_CONTROL},
        )

    router.add_api_route(
        "/.well-known/oauth-authorization-server",
        authorization_server_metadata_handler,
        methods=["GET"],
    )
    return router


def _add_register_route(
    router: APIRouter,
    server: AuthorizationServer,
    db_dependency: DatabaseDependency,
    prefix: str,
) -> APIRouter:
    async def register_handler(
        request: Request,
        db: AsyncSession = Depends(db_dependency),  # noqa: B008
    ) -> Response:
        try:
            payload = await request.json()
        except ValueError:
            return _oauth_error(InvalidRequestError("Invalid JSON"))
        if not isinstance(payload, dict):
            return _oauth_error(InvalidRequestError("Client metadata must be a JSON object"))

        try:
            metadata = OAuthClientMetadata.model_validate(payload)
        except ValidationError as exc:
            return _oauth_error(InvalidRequestError(_format_validation_error(exc)))

        try:
            client_info = await server.register_client(db, metadata)
        except OAuthError as exc:
            return _oauth_error(exc)
        return JSONResponse(
            client_info.model_dump(mode="json", exclude_none=True),
            status_code=status.HTTP_201_CREATED,
        )

    router.add_api_route(f"{prefix}/register", register_handler, methods=["POST"])
    return router


def _add_authorize_route(
    router: APIRouter,
    server: AuthorizationServer,
    db_dependency: DatabaseDependency,
    prefix: str,
) -> APIRouter:
    async def authorize_handler(
        request: Request,
        db: AsyncSession = Depends(db_dependency),  # noqa: B008
    ) -> Response:
        try:
            login_url = await server.authorize(db, resolve_base_url(request), dict(request.query_params))
        except OAuthError as exc:
            return _oauth_error(exc)
        return RedirectResponse(url=login_url, status_code=status.HTTP_302_FOUND)

    router.add_api_route(f"{prefix}/authorize", authorize_handler, methods=["GET"])
    return router


def _add_callback_route(
    router: APIRouter,
    server: AuthorizationServer,
    db_dependency: DatabaseDependency,
    prefix: str,
) -> APIRouter:
    async def callback_handler(
        request: Request,
        db: AsyncSession = Depends(db_dependency),  # noqa: B008
    ) -> Response:
        params: dict[str, Any] = dict(request.query_params)
        if request.method == "POST":
            try:
                body = await _get_request_body(request)
            except InvalidRequestError as exc:
                return _oauth_error(exc)
            params = {**body, **params}

        encoded_state = _get_str(params, "oauth_state")
        try:
            oauth_state = server.load_state(encoded_state)
        except OAuthError as exc:
            return _oauth_error(exc)

        code = _get_str(params, "code")
        if code:
            upstream = await server.handle_callback_code(code)
            if upstream is not None:
                try:
                    redirect_url = await server.issue_authorization_code(db, oauth_state, upstream)
                except OAuthError as exc:
                    return _oauth_error(exc)
                return RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND)

        html_page = _build_callback_page(
            complete_url=f"{prefix}/callback/complete",
            encoded_state=encoded_state or "",
        )
        return HTMLResponse(content=html_page, headers={"Cache-Control": "no-store"})

    router.add_api_route(f"{prefix}/callback", callback_handler, methods=["GET", "POST"])
    return router


def _add_callback_complete_route(
    router: APIRouter,
    server: AuthorizationServer,
    db_dependency: DatabaseDependency,
    prefix: str,
) -> APIRouter:
    async def callback_complete_handler(
        request: Request,
        db: AsyncSession = Depends(db_dependency),  # noqa: B008
    ) -> Response:
        try:
            body = await _get_request_body(request)
            oauth_state = server.load_state(_get_str(body, "oauth_state"))
            access_token = _get_str(body, "access_token")
            if not access_token:
                msg = "Missing access_token"
                raise InvalidRequestError(msg)
            upstream = UpstreamTokens(
                access_token=access_token,
                refresh_token=_get_str(body, "refresh_token") or None,
            )
            redirect_url = await server.issue_authorization_code(db, oauth_state, upstream)
        except OAuthError as exc:
            return _oauth_error(exc)
        return JSONResponse({"redirect": redirect_url})

    router.add_api_route(f"{prefix}/callback/complete", callback_complete_handler, methods=["POST"])
    return router


def _add_token_route(
    router: APIRouter,
    server: AuthorizationServer,
    db_dependency: DatabaseDependency,
    prefix: str,
) -> APIRouter:
    async def token_handler(
        request: Request,
        db: AsyncSession = Depends(db_dependency),  # noqa: B008
    ) -> Response:
        try:
            body = await _get_request_body(request)
            if _get_str(body, "grant_type") != "authorization_code":
                msg = "Only authorization_code grant is supported"
                raise UnsupportedGrantTypeError(msg)

            code = _get_str(body, "code")
            if not code:
                msg = "Missing code"
                raise InvalidRequestError(msg)
            code_verifier = _get_str(body, "code_verifier")
            if not code_verifier:
                msg = "Missing code_verifier (PKCE required)"
                raise InvalidRequestError(msg)

            token = await server.exchange_authorization_code(
                db,
                code=code,
                code_verifier=code_verifier,
                redirect_uri=_get_str(body, "redirect_uri") or None,
            )
        except OAuthError as exc:
            return _oauth_error(exc, headers=_NO_STORE_HEADERS)
        return JSONResponse(token.model_dump(mode="json"), headers=_NO_STORE_HEADERS)

    router.add_api_route(f"{prefix}/token", token_handler, methods=["POST"])
    return router


def _add_revoke_route(router: APIRouter, server: AuthorizationServer, prefix: str) -> APIRouter:
    async def revoke_handler(request: Request) -> Response:
        try:
            body = await _get_request_body(request)
        except InvalidRequestError:
            body = {}
        await server.revoke(_get_str(body, "token"))
        return JSONResponse({})

    router.add_api_route(f"{prefix}/revoke", revoke_handler, methods=["POST"])
    return router


def _build_callback_page(*, complete_url: str, encoded_state: str) -> str:
    complete_url_js = _js_string(complete_url)
    state_js = _js_string(encoded_state)
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Authorizing...</title>
    <style>
        body {{ font-family: system-ui, sans-serif; display: flex; align-items: center; justify-content: center;
               min-height: 100vh; margin: 0; }}
    </style>
</head>
<body>
    <p id="status">Completing authorization...</p>
    <script>
        (async function () {{
            const statusEl = document.getElementById("status");
            const params = new URLSearchParams(window.location.hash.substring(1));
            const accessToken = params.get("access_token");
            if (!accessToken) {{
                statusEl.textContent = "Authorization failed. No token received.";
                return;
            }}
            try {{
                const res = await fetch({complete_url_js}, {{
                    method: "POST",
                    headers: {{ "Content-Type": "application/json" }},
                    body: JSON.stringify({{
                        access_token: accessToken,
                        refresh_token: params.get("refresh_token") || "",
                        oauth_state: {state_js},
                    }}),
                }});
                const data = await res.json();
                if (res.ok && data.redirect) {{
                    window.location.href = data.redirect;
                }} else {{
                    statusEl.textContent = "Authorization failed. Please try again.";
                }}
            }} catch (e) {{
                statusEl.textContent = "Authorization failed: " + e.message;
            }}
        }})();
    </script>
</body>
</html>
"""


def _js_string(value: str) -> str:
    # Safe inside an inline <script>: no "<", ">" or "&" survive literally.
    encoded = json.dumps(value)
    return encoded.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")


def _oauth_error(exc: OAuthError, headers: Mapping[str, str] | None = None) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


def _format_validation_error(error: ValidationError) -> str:
    entries = error.errors()
    if not entries:
        return "invalid client metadata"
    entry = entries[0]
    loc = ".".join(str(part) for part in entry.get("loc", []) if part is not None)
    msg = entry.get("msg", "invalid client metadata").removeprefix("Value error, ")
    if loc:
        return f"{loc}: {msg}"
    return msg


async def _get_request_body(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            payload = await request.json()
        else:
            payload = dict(await request.form())
    except (ValueError, HTTPException) as exc:
        msg = "Invalid request body"
        raise InvalidRequestError(msg) from exc
    if not isinstance(payload, dict):
        msg = "Request body must be an object"
        raise InvalidRequestError(msg)
    return payload


def _get_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if isinstance(value, str):
        return value
    return None
