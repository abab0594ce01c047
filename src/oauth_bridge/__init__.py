from oauth_bridge.app import create_app
from oauth_bridge.cleanup import AuthorizationCodeSweeper
from oauth_bridge.crypto import CredentialCipher, derive_key
from oauth_bridge.exceptions import (
    AccessDeniedError,
    BridgeError,
    ConfigurationError,
    CredentialDecryptionError,
    IdentityProviderError,
    IdentityVerificationError,
    InvalidClientError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidStateError,
    OAuthError,
    ServerError,
    TokenServiceError,
    UnsupportedGrantTypeError,
    UnsupportedResponseTypeError,
)
from oauth_bridge.identity import IdentityBridge
from oauth_bridge.models import (
    AuthorizationState,
    OAuthClientInformation,
    OAuthClientMetadata,
    OAuthMetadata,
    OAuthToken,
    ProtectedResourceMetadata,
    UpstreamTokens,
    VerifiedIdentity,
)
from oauth_bridge.pkce import create_code_challenge, verify_code_verifier
from oauth_bridge.protocols import IdentityProviderProtocol, TokenServiceProtocol
from oauth_bridge.routes import create_router
from oauth_bridge.server import AuthorizationServer
from oauth_bridge.settings import BridgeSettings, IdentityProviderSettings, TokenServiceSettings
from oauth_bridge.state import StateCodec
from oauth_bridge.tokens import TokenIssuer

__all__ = [
    "AccessDeniedError",
    "AuthorizationCodeSweeper",
    "AuthorizationServer",
    "AuthorizationState",
    "BridgeError",
    "BridgeSettings",
    "ConfigurationError",
    "CredentialCipher",
    "CredentialDecryptionError",
    "IdentityBridge",
    "IdentityProviderError",
    "IdentityProviderProtocol",
    "IdentityProviderSettings",
    "IdentityVerificationError",
    "InvalidClientError",
    "InvalidGrantError",
    "InvalidRequestError",
    "InvalidStateError",
    "OAuthClientInformation",
    "OAuthClientMetadata",
    "OAuthError",
    "OAuthMetadata",
    "OAuthToken",
    "ProtectedResourceMetadata",
    "ServerError",
    "StateCodec",
    "TokenIssuer",
    "TokenServiceError",
    "TokenServiceProtocol",
    "TokenServiceSettings",
    "UnsupportedGrantTypeError",
    "UnsupportedResponseTypeError",
    "UpstreamTokens",
    "VerifiedIdentity",
    "create_app",
    "create_code_challenge",
    "create_router",
    "derive_key",
    "verify_code_verifier",
]
