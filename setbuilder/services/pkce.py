"""PKCE (RFC 7636) helpers for the authorization-code flow."""

import base64
import hashlib
import secrets
from dataclasses import dataclass

# 32 random bytes encode to a 43-character verifier, the RFC minimum
VERIFIER_ENTROPY_BYTES = 32

CHALLENGE_METHOD = "S256"


@dataclass(frozen=True)
class PKCEPair:
    """Verifier kept by the client and challenge sent with the authorize request."""

    verifier: str
    challenge: str


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_verifier() -> str:
    """Return a fresh high-entropy code verifier (URL-safe, unpadded)."""
    return _base64url_no_pad(secrets.token_bytes(VERIFIER_ENTROPY_BYTES))


def derive_challenge(verifier: str) -> str:
    """Compute the S256 code challenge for a verifier."""
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return _base64url_no_pad(digest)


def generate_pkce_pair() -> PKCEPair:
    verifier = generate_verifier()
    return PKCEPair(verifier=verifier, challenge=derive_challenge(verifier))


def generate_state() -> str:
    """Return an anti-replay state token for one authorization attempt."""
    return secrets.token_urlsafe(16)
