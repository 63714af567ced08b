from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass

# PKCE material (RFC 7636) and state tokens for the login flow in
# oauth_service.py.  Only the S256 method is supported.


@dataclass(frozen=True, slots=True)
class PkcePair:
    code_verifier: str
    code_challenge: str


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


# code verifier - a random string of 43–128 chars from the unreserved set
def generate_code_verifier() -> str:
    # 32 bytes of random data gives us 43 chars after base64url encoding,
    # which is the minimum length.
    return _b64url(secrets.token_bytes(32))


# code challenge from code verifier using the S256 method
def compute_code_challenge(code_verifier: str) -> str:
    sha256_digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return _b64url(sha256_digest)


def generate_pkce_pair() -> PkcePair:
    verifier = generate_code_verifier()
    return PkcePair(
        code_verifier=verifier, code_challenge=compute_code_challenge(verifier)
    )


def generate_state() -> str:
    """Unguessable per-attempt state token (256 bits, URL-safe)."""
    return secrets.token_urlsafe(32)
