from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Literal

type CodeChallengeMethod = Literal["S256", "plain"]

SUPPORTED_CODE_CHALLENGE_METHODS: tuple[CodeChallengeMethod, ...] = ("S256", "plain")


def create_code_challenge(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("utf-8")


def verify_code_verifier(code_verifier: str, code_challenge: str, method: str) -> bool:
    """Check ``code_verifier`` against the challenge stored with the code.

    ``S256`` compares base64url(SHA-256(verifier)) without padding; ``plain``
    compares the strings directly. Unknown methods never verify.
    """
    # RFC 7636 verifiers and challenges are ASCII; anything else cannot match.
    if not (code_verifier.isascii() and code_challenge.isascii()):
        return False
    if method == "S256":
        expected = create_code_challenge(code_verifier)
    elif method == "plain":
        expected = code_verifier
    else:
        return False
    return hmac.compare_digest(expected.encode("ascii"), code_challenge.encode("ascii"))
