"""PKCE (RFC 7636) verifier/challenge generation."""

from __future__ import annotations

import base64
import hashlib
import secrets
import string
from dataclasses import dataclass, field

VERIFIER_CHARSET = string.ascii_letters + string.digits + "-._~"
DEFAULT_VERIFIER_LENGTH = 64
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


def generate_code_verifier(length: int = DEFAULT_VERIFIER_LENGTH) -> str:
    """Random verifier from the unreserved URI characters, 43-128 chars long."""
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"verifier length must be between {MIN_VERIFIER_LENGTH} and {MAX_VERIFIER_LENGTH}"
        )
    return "".join(secrets.choice(VERIFIER_CHARSET) for _ in range(length))


def generate_code_challenge(verifier: str) -> str:
    """base64url(sha256(verifier)) without padding (the S256 method)."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class PkcePair:
    verifier: str = field(default_factory=generate_code_verifier)
    challenge: str = ""

    def __post_init__(self) -> None:
        if not self.challenge:
            object.__setattr__(self, "challenge", generate_code_challenge(self.verifier))
