from __future__ import annotations

import logging
import time
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import AnyHttpUrl
from sqlalchemy.exc import SQLAlchemyError

from oauth_bridge.crypto import CredentialCipher, generate_authorization_code, generate_client_id
from oauth_bridge.exceptions import (
    AccessDeniedError,
    CredentialDecryptionError,
    IdentityProviderError,
    IdentityVerificationError,
    InvalidClientError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidStateError,
    ServerError,
    TokenServiceError,
    UnsupportedResponseTypeError,
)
from oauth_bridge.models import (
    AuthorizationGrant,
    AuthorizationState,
    OAuthClientInformation,
    OAuthMetadata,
    OAuthToken,
    ProtectedResourceMetadata,
)
from oauth_bridge.pkce import SUPPORTED_CODE_CHALLENGE_METHODS, verify_code_verifier
from oauth_bridge.state import StateCodec
from oauth_bridge.utils import construct_redirect_uri, join_url

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from oauth_bridge.models import OAuthClientMetadata, UpstreamTokens
    from oauth_bridge.protocols import IdentityProviderProtocol, TokenServiceProtocol
    from oauth_bridge.settings import BridgeSettings
    from oauth_bridge.storage.adapter import AlchemyOAuthAdapter
    from oauth_bridge.storage.models import OAuthAuthorizationCode, OAuthClient

logger = logging.getLogger(__name__)

_INVALID_GRANT_DESCRIPTION = "Invalid or expired authorization code"


class AuthorizationServer:
    """Authorization Code + PKCE flow that delegates sign-in to an upstream IdP.

    Route handlers own HTTP parsing; everything that decides whether a request
    succeeds lives here and raises ``OAuthError`` subclasses on failure.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        *,
        adapter: AlchemyOAuthAdapter,
        identity_provider: IdentityProviderProtocol,
        token_service: TokenServiceProtocol,
    ) -> None:
        self.settings = settings
        self.adapter = adapter
        self.identity_provider = identity_provider
        self.token_service = token_service
        secret = settings.secret.get_secret_value()
        self.state_codec = StateCodec(secret, ttl_seconds=settings.state_ttl_seconds)
        self.cipher = CredentialCipher(secret)

    def issuer_url(self, base_url: str) -> str:
        return join_url(base_url, self.settings.route_prefix)

    def endpoint_url(self, base_url: str, path: str) -> str:
        return join_url(self.issuer_url(base_url), path)

    def authorization_server_metadata(self, base_url: str) -> OAuthMetadata:
        return OAuthMetadata(
            issuer=base_url,
            authorization_endpoint=AnyHttpUrl(self.endpoint_url(base_url, "authorize")),
            token_endpoint=AnyHttpUrl(self.endpoint_url(base_url, "token")),
            registration_endpoint=AnyHttpUrl(self.endpoint_url(base_url, "register")),
            revocation_endpoint=AnyHttpUrl(self.endpoint_url(base_url, "revoke")),
            scopes_supported=list(self.settings.scopes_supported),
            response_types_supported=["code"],
            grant_types_supported=["authorization_code"],
            token_endpoint_auth_methods_supported=["none"],
            revocation_endpoint_auth_methods_supported=["none"],
            code_challenge_methods_supported=["S256"],
            service_documentation=self.settings.service_documentation,
        )

    def protected_resource_metadata(self, base_url: str) -> ProtectedResourceMetadata:
        return ProtectedResourceMetadata(
            resource=base_url,
            authorization_servers=[base_url],
            scopes_supported=list(self.settings.scopes_supported),
            bearer_methods_supported=["header"],
        )

    async def register_client(
        self,
        session: AsyncSession,
        metadata: OAuthClientMetadata,
    ) -> OAuthClientInformation:
        client_id = generate_client_id()
        try:
            client = await self.adapter.create_oauth_client(
                session,
                {
                    "client_id": client_id,
                    "client_name": metadata.client_name,
                    "redirect_uris": list(metadata.redirect_uris),
                    "grant_types": list(metadata.grant_types),
                    "response_types": list(metadata.response_types),
                    "token_endpoint_auth_method": metadata.token_endpoint_auth_method,
                },
            )
        except SQLAlchemyError as exc:
            logger.exception("Failed to store client registration")
            msg = "Failed to register client"
            raise ServerError(msg) from exc

        logger.info("Registered OAuth client %s", client.client_id)
        return _client_information(client)

    async def get_client(self, session: AsyncSession, client_id: str) -> OAuthClient | None:
        try:
            return await self.adapter.get_oauth_client(session, client_id)
        except SQLAlchemyError as exc:
            logger.exception("Failed to load OAuth client")
            msg = "Failed to load client"
            raise ServerError(msg) from exc

    async def authorize(self, session: AsyncSession, base_url: str, params: Mapping[str, str | None]) -> str:
        """Validate an authorization request and return the IdP sign-in URL."""
        client_id = params.get("client_id")
        if not client_id:
            msg = "Missing client_id"
            raise InvalidRequestError(msg)
        redirect_uri = params.get("redirect_uri")
        if not redirect_uri:
            msg = "Missing redirect_uri"
            raise InvalidRequestError(msg)
        code_challenge = params.get("code_challenge")
        if not code_challenge:
            msg = "Missing code_challenge (PKCE required)"
            raise InvalidRequestError(msg)

        code_challenge_method = params.get("code_challenge_method") or "S256"
        if code_challenge_method not in SUPPORTED_CODE_CHALLENGE_METHODS:
            msg = f"Unsupported code_challenge_method: {code_challenge_method}"
            raise InvalidRequestError(msg)

        response_type = params.get("response_type")
        if response_type is not None and response_type != "code":
            msg = "Only response_type=code is supported"
            raise UnsupportedResponseTypeError(msg)

        client = await self.get_client(session, client_id)
        if client is None:
            if self.settings.require_registered_client:
                msg = "Unknown client_id"
                raise InvalidClientError(msg)
            logger.warning("Authorization request from unregistered client %s", client_id)
        elif redirect_uri not in client.redirect_uris:
            msg = "redirect_uri not registered for this client"
            raise InvalidRequestError(msg)

        oauth_state = AuthorizationState(
            client_id=client_id,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            state=params.get("state") or "",
            scope=params.get("scope") or self.settings.default_scope,
        )
        callback_url = construct_redirect_uri(
            self.endpoint_url(base_url, "callback"),
            oauth_state=self.state_codec.encode(oauth_state),
        )
        return self.identity_provider.authorization_url(callback_url)

    def load_state(self, token: str | None) -> AuthorizationState:
        if not token:
            msg = "Missing OAuth state"
            raise InvalidRequestError(msg)
        try:
            return self.state_codec.decode(token)
        except InvalidStateError as exc:
            logger.debug("Rejected OAuth state: %s", exc)
            msg = "Invalid OAuth state"
            raise InvalidRequestError(msg) from exc

    async def handle_callback_code(self, code: str) -> UpstreamTokens | None:
        """Exchange an IdP code server-side; ``None`` means fall back to the fragment page."""
        try:
            return await self.identity_provider.exchange_code(code)
        except IdentityProviderError:
            logger.warning("IdP code exchange failed, falling back to fragment flow")
            return None

    async def issue_authorization_code(
        self,
        session: AsyncSession,
        oauth_state: AuthorizationState,
        upstream: UpstreamTokens,
    ) -> str:
        """Verify the signed-in user and return the client redirect carrying a fresh code."""
        try:
            identity = await self.identity_provider.verify(upstream.access_token)
        except IdentityVerificationError as exc:
            msg = "Invalid or expired identity token"
            raise AccessDeniedError(msg) from exc
        except IdentityProviderError as exc:
            msg = "Identity provider unavailable"
            raise ServerError(msg) from exc

        code = generate_authorization_code()
        now = datetime.now(UTC)
        try:
            await self.adapter.create_oauth_authorization_code(
                session,
                {
                    "code": code,
                    "client_id": oauth_state.client_id,
                    "redirect_uri": oauth_state.redirect_uri,
                    "code_challenge": oauth_state.code_challenge,
                    "code_challenge_method": oauth_state.code_challenge_method,
                    "upstream_access_token": self.cipher.encrypt(upstream.access_token),
                    "upstream_refresh_token": self.cipher.encrypt_optional(upstream.refresh_token),
                    "user_id": identity.id,
                    "user_email": identity.email,
                    "scope": oauth_state.scope,
                    "created_at": now,
                    "expires_at": now + timedelta(seconds=self.settings.authorization_code_ttl_seconds),
                },
            )
        except SQLAlchemyError as exc:
            logger.exception("Failed to store authorization code")
            msg = "Failed to create authorization code"
            raise ServerError(msg) from exc

        logger.info("Issued authorization code for client %s user %s", oauth_state.client_id, identity.id)
        return construct_redirect_uri(
            oauth_state.redirect_uri,
            code=code,
            state=oauth_state.state or None,
        )

    async def redeem_authorization_code(
        self,
        session: AsyncSession,
        *,
        code: str,
        code_verifier: str,
        redirect_uri: str | None = None,
    ) -> AuthorizationGrant:
        """Consume ``code`` and run every check on it.

        The row is deleted before any check, so a failed redemption still burns
        the code. All failures raise the same ``InvalidGrantError``.
        """
        try:
            row = await self.adapter.consume_oauth_authorization_code(session, code)
        except SQLAlchemyError as exc:
            logger.exception("Failed to consume authorization code")
            msg = "Failed to redeem authorization code"
            raise ServerError(msg) from exc

        if row is None:
            logger.debug("Authorization code not found")
            raise InvalidGrantError(_INVALID_GRANT_DESCRIPTION)
        if row.expires_at <= datetime.now(UTC):
            logger.debug("Authorization code expired for client %s", row.client_id)
            raise InvalidGrantError(_INVALID_GRANT_DESCRIPTION)
        if redirect_uri is not None and redirect_uri != row.redirect_uri:
            logger.debug("redirect_uri mismatch for client %s", row.client_id)
            raise InvalidGrantError(_INVALID_GRANT_DESCRIPTION)
        if not verify_code_verifier(code_verifier, row.code_challenge, row.code_challenge_method):
            logger.debug("PKCE verification failed for client %s", row.client_id)
            raise InvalidGrantError(_INVALID_GRANT_DESCRIPTION)

        try:
            return self._decrypt_grant(row)
        except CredentialDecryptionError as exc:
            logger.debug("Stored credentials unreadable for client %s", row.client_id)
            raise InvalidGrantError(_INVALID_GRANT_DESCRIPTION) from exc

    async def exchange_authorization_code(
        self,
        session: AsyncSession,
        *,
        code: str,
        code_verifier: str,
        redirect_uri: str | None = None,
    ) -> OAuthToken:
        grant = await self.redeem_authorization_code(
            session,
            code=code,
            code_verifier=code_verifier,
            redirect_uri=redirect_uri,
        )
        label = f"mcp-oauth-{grant.client_id[:8]}-{int(time.time() * 1000)}"
        try:
            access_token = await self.token_service.mint(grant.user_id, label, self.settings.token_scopes)
        except TokenServiceError as exc:
            msg = "Failed to create access token"
            raise ServerError(msg) from exc

        logger.info("Redeemed authorization code for client %s user %s", grant.client_id, grant.user_id)
        return OAuthToken(access_token=access_token, token_type="bearer", scope=grant.scope)  # noqa: S106

    async def revoke(self, token: str | None) -> None:
        if not token:
            return
        try:
            await self.token_service.revoke(token)
        except TokenServiceError:
            logger.warning("Token revocation failed")

    def _decrypt_grant(self, row: OAuthAuthorizationCode) -> AuthorizationGrant:
        refresh_token = row.upstream_refresh_token
        return AuthorizationGrant(
            client_id=row.client_id,
            redirect_uri=row.redirect_uri,
            user_id=row.user_id,
            user_email=row.user_email,
            scope=row.scope,
            upstream_access_token=self.cipher.decrypt(row.upstream_access_token),
            upstream_refresh_token=self.cipher.decrypt(refresh_token) if refresh_token else None,
            created_at=row.created_at,
        )


def _client_information(client: OAuthClient) -> OAuthClientInformation:
    return OAuthClientInformation(
        client_id=client.client_id,
        client_name=client.client_name,
        redirect_uris=list(client.redirect_uris),
        grant_types=list(client.grant_types),
        response_types=list(client.response_types),
        token_endpoint_auth_method="none",
        client_id_issued_at=int(client.created_at.timestamp()),
    )
