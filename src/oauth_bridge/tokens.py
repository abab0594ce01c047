from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from oauth_bridge.exceptions import TokenServiceError
from oauth_bridge.utils import join_url

if TYPE_CHECKING:
    from collections.abc import Sequence

    from oauth_bridge.settings import TokenServiceSettings

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Mints and revokes platform API tokens over HTTP."""

    def __init__(self, settings: TokenServiceSettings) -> None:
        self.settings = settings
        self.base_url = str(settings.base_url)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.timeout_seconds, connect=min(5.0, self.settings.timeout_seconds)),
            headers={"Authorization": f"Bearer {self.settings.api_key.get_secret_value()}"},
        )

    async def mint(self, user_id: str, label: str, scopes: Sequence[str]) -> str:
        try:
            async with self._client() as client:
                response = await client.post(
                    join_url(self.base_url, "tokens"),
                    json={"user_id": user_id, "label": label, "scopes": list(scopes)},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Token service mint failed with status %s", exc.response.status_code)
            msg = f"token mint failed: {exc.response.status_code}"
            raise TokenServiceError(msg) from exc
        except httpx.RequestError as exc:
            logger.warning("Token service mint request failed: %s", exc)
            msg = "token mint request failed"
            raise TokenServiceError(msg) from exc
        except ValueError as exc:
            msg = "token service returned invalid json"
            raise TokenServiceError(msg) from exc

        token = payload.get("token") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            msg = "missing required field in token service response: token"
            raise TokenServiceError(msg)
        return token

    async def revoke(self, token: str) -> None:
        """Ask the token service to revoke ``token``. Failures are logged, never raised."""
        try:
            async with self._client() as client:
                response = await client.post(join_url(self.base_url, "tokens/revoke"), json={"token": token})
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Token revocation failed with status %s", exc.response.status_code)
        except httpx.RequestError as exc:
            logger.warning("Token revocation request failed: %s", exc)
