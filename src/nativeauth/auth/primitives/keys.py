"""Key derivation for session encryption.

Derives per-session symmetric keys from a passphrase and the process-wide
salt using Argon2id.
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw

from nativeauth.auth.models.errors import CryptoError

SALT_LENGTH = 16


@dataclass(frozen=True)
class KeyDerivationParams:
    """Argon2id cost parameters.

    Defaults follow the Argon2 reference recommendation for interactive use
    (19 MiB memory, two passes, one lane).
    """

    time_cost: int = 2
    memory_cost: int = 19456  # KiB
    parallelism: int = 1
    key_length: int = 32


def generate_salt() -> str:
    """Generate a new random salt, encoded as unpadded base64."""
    try:
        raw = secrets.token_bytes(SALT_LENGTH)
    except Exception as e:
        raise CryptoError(f"Failed to generate salt: {e}") from e
    return base64.b64encode(raw).decode("ascii").rstrip("=")


def decode_salt(salt: str) -> bytes:
    """Decode a stored salt string.

    Raises:
        CryptoError: If the salt is not valid base64 or is too short
    """
    if not isinstance(salt, str) or not salt:
        raise CryptoError("Salt is missing or not a string")
    try:
        padded = salt + "=" * (-len(salt) % 4)
        raw = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"Malformed key derivation salt: {e}") from e
    if len(raw) < 8:
        raise CryptoError("Key derivation salt is too short")
    return raw


def derive_key(
    passphrase: str,
    salt: str,
    params: KeyDerivationParams | None = None,
) -> bytes:
    """Derive a fixed-length symmetric key with Argon2id.

    Args:
        passphrase: Secret input, built from device id and session state
        salt: Process-wide salt as stored
        params: Argon2 cost parameters

    Returns:
        Raw key bytes of ``params.key_length``

    Raises:
        CryptoError: If the salt is malformed or the Argon2 backend fails
    """
    params = params or KeyDerivationParams()
    raw_salt = decode_salt(salt)
    try:
        return hash_secret_raw(
            secret=passphrase.encode("utf-8"),
            salt=raw_salt,
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=params.key_length,
            type=Type.ID,
        )
    except HashingError as e:
        raise CryptoError(f"Key derivation failed: {e}") from e
