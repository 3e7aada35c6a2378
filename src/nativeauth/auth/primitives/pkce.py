"""PKCE (Proof Key for Code Exchange) primitives.

Implements RFC 7636 S256 challenge generation and verification, plus the
secure random strings used for verifiers and anti-CSRF states.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from datetime import timedelta

from nativeauth.auth.models.errors import CryptoError
from nativeauth.auth.models.session import (
    MIN_STATE_LENGTH,
    UNRESERVED_CHARACTERS,
    PKCEChallenge,
    utcnow,
)

VERIFIER_LENGTH = 64
CHALLENGE_LIFETIME = timedelta(minutes=10)


def generate_secure_random_string(
    length: int, alphabet: str = UNRESERVED_CHARACTERS
) -> str:
    """Generate a random string from the OS CSPRNG.

    Args:
        length: Number of characters to draw
        alphabet: Characters to draw from

    Returns:
        Random string of exactly ``length`` characters

    Raises:
        CryptoError: If the entropy source fails
    """
    try:
        return "".join(secrets.choice(alphabet) for _ in range(length))
    except Exception as e:
        raise CryptoError(f"Failed to generate random string: {e}") from e


def generate_state() -> str:
    """Generate a cryptographically secure anti-CSRF state parameter."""
    return generate_secure_random_string(MIN_STATE_LENGTH)


def compute_code_challenge(verifier: str) -> str:
    """Compute the S256 code challenge for a verifier.

    RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_pkce_challenge(
    lifetime: timedelta = CHALLENGE_LIFETIME,
) -> PKCEChallenge:
    """Generate a fresh PKCE verifier/challenge pair.

    Returns:
        PKCEChallenge with a 64-character verifier and a 10-minute expiry

    Raises:
        CryptoError: If the entropy source fails
    """
    verifier = generate_secure_random_string(VERIFIER_LENGTH)
    return PKCEChallenge(
        verifier=verifier,
        challenge=compute_code_challenge(verifier),
        method="S256",
        expires_at=utcnow() + lifetime,
    )


def verify_pkce_challenge(verifier: str, challenge: str) -> bool:
    """Check that a verifier hashes to the given challenge.

    Uses a constant-time comparison so timing does not leak how much of the
    challenge matched.
    """
    try:
        computed = compute_code_challenge(verifier)
    except UnicodeEncodeError:
        # Non-ASCII verifiers can never have produced a valid challenge
        return False
    return constant_time_eq(computed, challenge)


def constant_time_eq(a: str, b: str) -> bool:
    """Compare two strings without short-circuiting on the first difference.

    Lengths are compared first. For equal lengths every byte pair is XORed
    into an accumulator, so the loop always walks the full input.
    """
    a_bytes = a.encode("utf-8")
    b_bytes = b.encode("utf-8")
    if len(a_bytes) != len(b_bytes):
        return False

    result = 0
    for byte_a, byte_b in zip(a_bytes, b_bytes):
        result |= byte_a ^ byte_b
    return result == 0
