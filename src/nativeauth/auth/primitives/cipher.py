"""Authenticated encryption for stored session records.

Records are sealed with AES-256-GCM under a fresh random nonce. The blob
layout is base64(version || nonce || ciphertext || tag).
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from nativeauth.auth.models.errors import CryptoError, DecryptionError, StorageError

BLOB_VERSION = 1
NONCE_LENGTH = 12
TAG_LENGTH = 16


def seal(key: bytes, plaintext: bytes, associated_data: bytes | None = None) -> str:
    """Encrypt and authenticate ``plaintext``.

    Args:
        key: 32-byte symmetric key
        plaintext: Bytes to protect
        associated_data: Bytes bound to the record but not encrypted

    Returns:
        Base64 blob ready to persist

    Raises:
        CryptoError: If the key is unusable
    """
    try:
        aead = AESGCM(key)
    except ValueError as e:
        raise CryptoError(f"Invalid encryption key: {e}") from e

    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = aead.encrypt(nonce, plaintext, associated_data)
    blob = bytes([BLOB_VERSION]) + nonce + ciphertext
    return base64.b64encode(blob).decode("ascii")


def open_sealed(key: bytes, blob: str, associated_data: bytes | None = None) -> bytes:
    """Decrypt a blob produced by :func:`seal`.

    Raises:
        StorageError: If the blob is not valid base64 or has the wrong layout
        DecryptionError: If the authentication tag does not verify
        CryptoError: If the key is unusable
    """
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise StorageError(f"Stored record is not valid base64: {e}") from e

    if len(raw) < 1 + NONCE_LENGTH + TAG_LENGTH:
        raise StorageError("Stored record is truncated")
    if raw[0] != BLOB_VERSION:
        raise StorageError(f"Unsupported record version: {raw[0]}")

    nonce = raw[1 : 1 + NONCE_LENGTH]
    ciphertext = raw[1 + NONCE_LENGTH :]

    try:
        aead = AESGCM(key)
    except ValueError as e:
        raise CryptoError(f"Invalid encryption key: {e}") from e

    try:
        return aead.decrypt(nonce, ciphertext, associated_data)
    except InvalidTag as e:
        raise DecryptionError(
            "Authentication failed: wrong passphrase or tampered record"
        ) from e
