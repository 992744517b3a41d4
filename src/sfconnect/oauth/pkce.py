"""PKCE (Proof Key for Code Exchange) material for one connect session.

Implements the S256 method of :rfc:`7636`. A :class:`Session` bundles the
verifier, its derived challenge and an independent anti-forgery ``state``.
It is created once per ``connect`` invocation and handed to the callback
listener; nothing is kept in module-level state.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass, field

VERIFIER_BYTES = 32
STATE_BYTES = 16
CHALLENGE_METHOD = "S256"


def _b64url(raw: bytes) -> str:
    """Base64url-encode *raw* without ``=`` padding."""
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_verifier() -> str:
    """Return a new code verifier: 32 random bytes, base64url, 43 characters."""
    return _b64url(secrets.token_bytes(VERIFIER_BYTES))


def generate_challenge(verifier: str) -> str:
    """Derive the S256 code challenge for *verifier*.

    Deterministic for a given verifier and not reversible.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_state() -> str:
    """Return a new state token: 16 random bytes, base64url, 22 characters."""
    return _b64url(secrets.token_bytes(STATE_BYTES))


@dataclass(frozen=True)
class Session:
    """PKCE verifier/challenge pair and state for a single handshake.

    The verifier leaves the process only in the final token request, so it
    is kept out of ``repr``.
    """

    code_verifier: str = field(repr=False)
    code_challenge: str
    state: str


def new_session() -> Session:
    """Generate fresh PKCE material and state for one connect attempt."""
    verifier = generate_verifier()
    return Session(
        code_verifier=verifier,
        code_challenge=generate_challenge(verifier),
        state=generate_state(),
    )
