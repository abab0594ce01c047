from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from oauth_bridge.models import UpstreamTokens, VerifiedIdentity


class IdentityProviderProtocol(Protocol):
    """Upstream identity provider that authenticates the end user."""

    def authorization_url(self, redirect_to: str) -> str:
        """Return the IdP sign-in URL that sends the browser back to ``redirect_to``."""
        ...

    async def exchange_code(self, code: str) -> UpstreamTokens:
        """Trade an IdP authorization code for session tokens.

        Raises:
            IdentityProviderError: the exchange failed or returned no access token
        """
        ...

    async def verify(self, access_token: str) -> VerifiedIdentity:
        """Resolve an IdP access token to the user it belongs to.

        Raises:
            IdentityVerificationError: the IdP rejected the token
            IdentityProviderError: the IdP could not be reached or answered garbage
        """
        ...


class TokenServiceProtocol(Protocol):
    """Platform service that mints and revokes long-lived API tokens."""

    async def mint(self, user_id: str, label: str, scopes: Sequence[str]) -> str: ...

    async def revoke(self, token: str) -> None: ...
