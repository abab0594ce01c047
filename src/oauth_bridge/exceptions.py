from __future__ import annotations


class BridgeError(Exception):
    pass


class ConfigurationError(BridgeError):
    pass


class InvalidStateError(BridgeError):
    pass


class CredentialDecryptionError(BridgeError):
    pass


class IdentityProviderError(BridgeError):
    pass


class IdentityVerificationError(IdentityProviderError):
    pass


class TokenServiceError(BridgeError):
    pass


class OAuthError(BridgeError):
    """Protocol-level failure rendered as ``{"error", "error_description"}``."""

    error: str = "server_error"
    status_code: int = 500

    def __init__(self, description: str | None = None) -> None:
        super().__init__(description or self.error)
        self.description = description

    def to_dict(self) -> dict[str, str]:
        payload = {"error": self.error}
        if self.description:
            payload["error_description"] = self.description
        return payload


class InvalidRequestError(OAuthError):
    error = "invalid_request"
    status_code = 400


class InvalidClientError(OAuthError):
    error = "invalid_client"
    status_code = 400


class InvalidGrantError(OAuthError):
    error = "invalid_grant"
    status_code = 400


class UnsupportedGrantTypeError(OAuthError):
    error = "unsupported_grant_type"
    status_code = 400


class UnsupportedResponseTypeError(OAuthError):
    error = "unsupported_response_type"
    status_code = 400


class AccessDeniedError(OAuthError):
    error = "access_denied"
    status_code = 401


class ServerError(OAuthError):
    error = "server_error"
    status_code = 500
