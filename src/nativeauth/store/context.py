"""Process-wide security context.

Owns the durable document and the key derivation salt shared by every
session. Components receive the context explicitly instead of reaching for a
global.
"""

from __future__ import annotations

import asyncio
import logging

from nativeauth.auth.models.errors import StorageError
from nativeauth.auth.primitives.keys import (
    KeyDerivationParams,
    decode_salt,
    derive_key,
    generate_salt,
)
from nativeauth.store.document import DocumentStore

logger = logging.getLogger(__name__)

SALT_KEY = "key_derivation_salt"


class SecurityContext:
    """Shared document plus the one-time salt initialization.

    The salt is read or created at most once per process. The
    read-check-create sequence runs under a lock so two first callers cannot
    each generate a different salt.
    """

    def __init__(
        self,
        document: DocumentStore,
        kdf_params: KeyDerivationParams | None = None,
    ):
        self.document = document
        self.kdf_params = kdf_params or KeyDerivationParams()
        self._salt: str | None = None
        self._salt_lock = asyncio.Lock()

    async def get_or_create_salt(self) -> str:
        """Return the persisted salt, creating and flushing it if absent.

        Raises:
            StorageError: If the salt cannot be read or persisted
            CryptoError: If a stored salt is malformed or generation fails
        """
        if self._salt is not None:
            return self._salt

        async with self._salt_lock:
            if self._salt is not None:
                return self._salt

            stored = await asyncio.to_thread(self.document.get, SALT_KEY)
            if stored is not None:
                decode_salt(stored)
                self._salt = stored
                logger.debug("Loaded existing key derivation salt")
                return self._salt

            salt = generate_salt()
            await asyncio.to_thread(self._persist_salt, salt)
            self._salt = salt
            logger.info("Created new key derivation salt")
            return self._salt

    async def derive_key(self, passphrase: str) -> bytes:
        """Derive the symmetric key for a passphrase.

        Argon2 is memory-hard and slow on purpose, so it runs off the event
        loop.
        """
        salt = await self.get_or_create_salt()
        return await asyncio.to_thread(derive_key, passphrase, salt, self.kdf_params)

    def _persist_salt(self, salt: str) -> None:
        self.document.set(SALT_KEY, salt)
        try:
            self.document.save()
        except StorageError:
            self.document.delete(SALT_KEY)
            raise
