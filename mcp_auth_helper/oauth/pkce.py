"""PKCE (Proof Key for Code Exchange) implementation per RFC 7636.

The verifier is random bytes encoded as base64url; the challenge is the
S256 transform of the verifier. Both are regenerated for every flow.
"""

import base64
import hashlib
import re
import secrets
from dataclasses import dataclass


# PKCE code verifier length constraints per RFC 7636
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128

# 32 bytes = 256 bits of entropy, encodes to 43 characters
DEFAULT_VERIFIER_BYTES = 32
MIN_VERIFIER_BYTES = 32

# Anything outside the unreserved URI characters is stripped, not escaped
_DISALLOWED_CHARS = re.compile(r"[^A-Za-z0-9\-._~]")


@dataclass(frozen=True)
class PKCEPair:
    """PKCE code verifier and challenge pair.

    The verifier is a cryptographically random string sent in the token request.
    The challenge is a SHA256 hash of the verifier sent in the authorization request.
    """

    code_verifier: str
    code_challenge: str
    method: str = "S256"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_code_verifier(num_bytes: int = DEFAULT_VERIFIER_BYTES) -> str:
    """Generate a cryptographically random code verifier.

    Per RFC 7636 Section 4.1, the code verifier must be:
    - Between 43 and 128 characters
    - Use only unreserved URI characters: [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"

    Args:
        num_bytes: Number of random bytes to encode (at least 32)

    Returns:
        Cryptographically random code verifier string

    Raises:
        ValueError: If num_bytes is too small or the verifier falls outside
            the allowed length
    """
    if num_bytes < MIN_VERIFIER_BYTES:
        raise ValueError(
            f"Code verifier needs at least {MIN_VERIFIER_BYTES} random bytes, got {num_bytes}"
        )

    verifier = _DISALLOWED_CHARS.sub("", _b64url(secrets.token_bytes(num_bytes)))

    if not MIN_VERIFIER_LENGTH <= len(verifier) <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"Code verifier length must be between {MIN_VERIFIER_LENGTH} "
            f"and {MAX_VERIFIER_LENGTH}, got {len(verifier)}"
        )

    return verifier


def generate_code_challenge(verifier: str) -> str:
    """Generate S256 code challenge from verifier.

    code_challenge = BASE64URL(SHA256(code_verifier)), without padding.
    """
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce_pair(num_bytes: int = DEFAULT_VERIFIER_BYTES) -> PKCEPair:
    """Generate a complete PKCE pair (verifier + challenge)."""
    verifier = generate_code_verifier(num_bytes)
    return PKCEPair(
        code_verifier=verifier,
        code_challenge=generate_code_challenge(verifier),
    )


def generate_state() -> str:
    """Generate a cryptographically random state parameter.

    The state parameter protects against CSRF attacks by ensuring
    the authorization response came from a request we initiated.

    Returns:
        32-character random hex string
    """
    return secrets.token_hex(16)
