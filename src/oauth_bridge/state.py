from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time

from pydantic import ValidationError

from oauth_bridge.crypto import STATE_SIGNING_KEY_INFO, derive_key
from oauth_bridge.exceptions import InvalidStateError
from oauth_bridge.models import AuthorizationState

_SEPARATOR = "."


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


class StateCodec:
    """Signs authorization request parameters for the IdP round trip.

    Tokens have the form ``<base64url(json)>.<hex hmac-sha256>``. The signature
    covers the encoded payload exactly as transmitted, and a token without a
    signature part is never accepted.
    """

    def __init__(self, secret: str, *, ttl_seconds: int = 600) -> None:
        self._key = derive_key(secret, STATE_SIGNING_KEY_INFO)
        self.ttl_seconds = ttl_seconds

    def _sign(self, payload: str) -> str:
        return hmac.new(self._key, payload.encode("ascii"), hashlib.sha256).hexdigest()

    def encode(self, state: AuthorizationState, *, now: float | None = None) -> str:
        issued_at = int(time.time() if now is None else now)
        claims = state.model_dump()
        claims["iat"] = issued_at
        claims["exp"] = issued_at + self.ttl_seconds
        payload = _b64url_encode(json.dumps(claims, separators=(",", ":"), sort_keys=True).encode("utf-8"))
        return f"{payload}{_SEPARATOR}{self._sign(payload)}"

    def decode(self, token: str, *, now: float | None = None) -> AuthorizationState:
        payload, sep, signature = token.partition(_SEPARATOR)
        if not sep or not payload or not signature:
            msg = "state is not signed"
            raise InvalidStateError(msg)
        if not (payload.isascii() and signature.isascii()):
            msg = "state payload is malformed"
            raise InvalidStateError(msg)

        if not hmac.compare_digest(self._sign(payload), signature):
            msg = "state signature mismatch"
            raise InvalidStateError(msg)

        try:
            claims = json.loads(_b64url_decode(payload))
        except (binascii.Error, ValueError) as exc:
            msg = "state payload is malformed"
            raise InvalidStateError(msg) from exc
        if not isinstance(claims, dict):
            msg = "state payload is malformed"
            raise InvalidStateError(msg)

        expires_at = claims.pop("exp", None)
        claims.pop("iat", None)
        current = time.time() if now is None else now
        if not isinstance(expires_at, int) or current >= expires_at:
            msg = "state has expired"
            raise InvalidStateError(msg)

        try:
            return AuthorizationState.model_validate(claims)
        except ValidationError as exc:
            msg = "state payload is malformed"
            raise InvalidStateError(msg) from exc
