"""Encrypted persistence of auth sessions.

Each session is serialized to canonical JSON, sealed with a key derived from
its passphrase and the process-wide salt, and stored as a base64 blob under
``session_<id>``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timedelta

from pydantic import ValidationError

from nativeauth.auth.models.errors import SessionClearedError, StorageError
from nativeauth.auth.models.session import AuthSession, utcnow
from nativeauth.auth.primitives.cipher import open_sealed, seal
from nativeauth.store.context import SecurityContext
from nativeauth.store.document import DocumentStore

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session_"

# How long a cleared id keeps refusing writes
TOMBSTONE_TTL = timedelta(hours=1)


def session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


class EncryptedSessionStore:
    """Stores AuthSession values encrypted at rest.

    Plaintext sessions only leave this class through
    ``retrieve_session_encrypted`` with the right passphrase.

    Session ids cleared through this store are remembered for
    ``TOMBSTONE_TTL``, and writes for them are refused meanwhile. This keeps
    a racing update from bringing a cleared session back. Older tombstones
    are pruned on the next clear, so the set stays bounded by recent clears.

    A failed flush rolls the in-memory document back, so readers never see
    a write or delete that did not reach disk.
    """

    def __init__(self, context: SecurityContext):
        self.context = context
        self._cleared: dict[str, datetime] = {}
        self._write_lock = threading.Lock()

    @property
    def document(self) -> DocumentStore:
        return self.context.document

    async def get_or_create_salt(self) -> str:
        return await self.context.get_or_create_salt()

    async def store_session_encrypted(
        self, session: AuthSession, passphrase: str
    ) -> None:
        """Encrypt and persist a session, then flush durably.

        Raises:
            SessionClearedError: If the session id was cleared in this process
            CryptoError: If key derivation fails
            StorageError: If serialization or the durable write fails
        """
        if session.id in self._cleared:
            raise SessionClearedError(f"Session {session.id} was cleared")

        key = await self.context.derive_key(passphrase)
        try:
            plaintext = session.model_dump_json().encode("utf-8")
        except (ValueError, TypeError) as e:
            raise StorageError(f"Failed to serialize session {session.id}: {e}") from e

        name = session_key(session.id)
        blob = seal(key, plaintext, associated_data=name.encode("utf-8"))

        await asyncio.to_thread(self._write, session.id, blob)
        logger.debug(f"Stored encrypted session {session.id}")

    async def retrieve_session_encrypted(
        self, session_id: str, passphrase: str
    ) -> AuthSession | None:
        """Load and decrypt a session.

        Returns:
            The session, or None if nothing is stored under that id

        Raises:
            DecryptionError: If the passphrase is wrong or the blob was altered
            StorageError: If the stored data is malformed
            CryptoError: If key derivation fails
        """
        name = session_key(session_id)
        blob = await asyncio.to_thread(self.document.get, name)
        if blob is None:
            return None
        if not isinstance(blob, str):
            raise StorageError(f"Invalid session data format for {session_id}")

        key = await self.context.derive_key(passphrase)
        plaintext = open_sealed(key, blob, associated_data=name.encode("utf-8"))

        try:
            session = AuthSession.model_validate_json(plaintext)
        except ValidationError as e:
            raise StorageError(f"Stored session {session_id} is invalid: {e}") from e

        if session.id != session_id:
            raise StorageError(
                f"Stored session id mismatch: expected {session_id}, got {session.id}"
            )
        return session

    async def contains(self, session_id: str) -> bool:
        blob = await asyncio.to_thread(self.document.get, session_key(session_id))
        return blob is not None

    async def session_ids(self) -> list[str]:
        keys = await asyncio.to_thread(self.document.keys)
        return [
            key[len(SESSION_KEY_PREFIX) :]
            for key in keys
            if key.startswith(SESSION_KEY_PREFIX)
        ]

    async def clear_session(self, session_id: str) -> None:
        """Remove one session and flush. Clearing an absent id is a no-op."""
        await asyncio.to_thread(self._delete, [session_id])
        logger.debug(f"Cleared session {session_id}")

    async def clear_all_sessions(self) -> None:
        """Remove every session entry and flush.

        The key derivation salt stays in place, so a later session can
        still be encrypted under the same process-wide salt.
        """
        cleared = await asyncio.to_thread(self._delete, None)
        logger.info(f"Cleared {len(cleared)} stored sessions")

    def _write(self, session_id: str, blob: str) -> None:
        name = session_key(session_id)
        with self._write_lock:
            # A clear may have landed while the key was being derived
            if session_id in self._cleared:
                raise SessionClearedError(f"Session {session_id} was cleared")

            previous = self.document.get(name)
            self.document.set(name, blob)
            try:
                self.document.save()
            except StorageError:
                if previous is None:
                    self.document.delete(name)
                else:
                    self.document.set(name, previous)
                raise

    def _delete(self, session_ids: list[str] | None) -> list[str]:
        """Delete sessions under the write lock. None means every session."""
        with self._write_lock:
            if session_ids is None:
                session_ids = [
                    key[len(SESSION_KEY_PREFIX) :]
                    for key in self.document.keys()
                    if key.startswith(SESSION_KEY_PREFIX)
                ]

            removed = {}
            for session_id in session_ids:
                name = session_key(session_id)
                value = self.document.get(name)
                if value is not None:
                    removed[name] = value
                    self.document.delete(name)

            try:
                self.document.save()
            except StorageError:
                for name, value in removed.items():
                    self.document.set(name, value)
                raise

            now = utcnow()
            self._prune_tombstones(now)
            for session_id in session_ids:
                self._cleared[session_id] = now
            return session_ids

    def _prune_tombstones(self, now: datetime) -> None:
        cutoff = now - TOMBSTONE_TTL
        for session_id, cleared_at in list(self._cleared.items()):
            if cleared_at < cutoff:
                del self._cleared[session_id]
