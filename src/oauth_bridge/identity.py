from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from oauth_bridge.exceptions import IdentityProviderError, IdentityVerificationError
from oauth_bridge.models import UpstreamTokens, VerifiedIdentity
from oauth_bridge.utils import construct_redirect_uri, join_url

if TYPE_CHECKING:
    from oauth_bridge.settings import IdentityProviderSettings

logger = logging.getLogger(__name__)

_HTTP_SERVER_ERROR = 500


class IdentityBridge:
    """Client for a GoTrue-style identity provider (``/auth/v1``)."""

    def __init__(self, settings: IdentityProviderSettings) -> None:
        self.settings = settings
        self.base_url = str(settings.base_url)

    @property
    def provider_id(self) -> str:
        return self.settings.provider

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.settings.timeout_seconds, connect=min(5.0, self.settings.timeout_seconds))

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self.settings.api_key.get_secret_value()}
        if access_token is not None:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def authorization_url(self, redirect_to: str) -> str:
        return construct_redirect_uri(
            join_url(self.base_url, "auth/v1/authorize"),
            provider=self.provider_id,
            redirect_to=redirect_to,
        )

    async def exchange_code(self, code: str) -> UpstreamTokens:
        url = construct_redirect_uri(join_url(self.base_url, "auth/v1/token"), grant_type="pkce")
        try:
            async with httpx.AsyncClient(timeout=self._timeout()) as client:
                response = await client.post(
                    url,
                    json={"auth_code": code, "code_verifier": ""},
                    headers=self._headers(),
                )
                response.raise_for_status()
                return UpstreamTokens.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            logger.warning("IdP code exchange failed with status %s", exc.response.status_code)
            msg = f"idp code exchange failed: {exc.response.status_code}"
            raise IdentityProviderError(msg) from exc
        except httpx.RequestError as exc:
            logger.warning("IdP code exchange request failed: %s", exc)
            msg = "idp code exchange request failed"
            raise IdentityProviderError(msg) from exc
        except (ValueError, ValidationError) as exc:
            msg = "idp code exchange returned an unusable response"
            raise IdentityProviderError(msg) from exc

    async def verify(self, access_token: str) -> VerifiedIdentity:
        try:
            async with httpx.AsyncClient(timeout=self._timeout()) as client:
                response = await client.get(
                    join_url(self.base_url, "auth/v1/user"),
                    headers=self._headers(access_token),
                )
        except httpx.RequestError as exc:
            logger.warning("IdP user lookup failed: %s", exc)
            msg = "idp user lookup request failed"
            raise IdentityProviderError(msg) from exc

        if response.status_code >= _HTTP_SERVER_ERROR:
            logger.warning("IdP user lookup returned status %s", response.status_code)
            msg = f"idp user lookup failed: {response.status_code}"
            raise IdentityProviderError(msg)
        if not response.is_success:
            logger.debug("IdP rejected access token with status %s", response.status_code)
            msg = "identity provider rejected the access token"
            raise IdentityVerificationError(msg)

        try:
            data = response.json()
        except ValueError as exc:
            msg = "idp user lookup returned invalid json"
            raise IdentityProviderError(msg) from exc

        try:
            return VerifiedIdentity.model_validate(data)
        except ValidationError as exc:
            msg = "identity provider returned no user id or email"
            raise IdentityVerificationError(msg) from exc
