from __future__ import annotations

import base64
import secrets
from uuid import uuid4

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from oauth_bridge.exceptions import CredentialDecryptionError

STATE_SIGNING_KEY_INFO = b"oauth-bridge/v1/state-signing"
CREDENTIAL_ENCRYPTION_KEY_INFO = b"oauth-bridge/v1/credential-encryption"  # noqa: S105

_KDF_SALT = b"oauth-bridge"
_KEY_LENGTH = 32


def derive_key(secret: str, info: bytes, *, length: int = _KEY_LENGTH) -> bytes:
    """Derive a purpose-bound subkey from the server secret with HKDF-SHA256.

    Distinct ``info`` values give independent keys, so the state-signing key
    and the credential-encryption key never coincide.
    """
    hkdf = HKDF(algorithm=hashes.SHA256(), length=length, salt=_KDF_SALT, info=info)
    return hkdf.derive(secret.encode("utf-8"))


def generate_authorization_code() -> str:
    return secrets.token_urlsafe(32)


def generate_client_id() -> str:
    return str(uuid4())


class CredentialCipher:
    """Authenticated encryption for upstream IdP tokens stored with a code."""

    def __init__(self, secret: str) -> None:
        key = derive_key(secret, CREDENTIAL_ENCRYPTION_KEY_INFO)
        self._fernet = Fernet(base64.urlsafe_b64encode(key))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token).decode("utf-8")
        except (InvalidToken, UnicodeError, TypeError, ValueError) as exc:
            msg = "stored credential could not be decrypted"
            raise CredentialDecryptionError(msg) from exc

    def encrypt_optional(self, plaintext: str | None) -> str | None:
        if not plaintext:
            return None
        return self.encrypt(plaintext)
