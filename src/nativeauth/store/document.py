"""Durable key-value document backing the session store.

One JSON document per process holds the key derivation salt and every
encrypted session blob. Access is synchronous and thread-safe; async callers
run it through ``asyncio.to_thread``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from nativeauth.auth.models.errors import StorageError

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """Protocol for a durable key-value document with load/save semantics.

    Mutations are buffered in memory until ``save`` flushes them durably.
    """

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...

    def save(self) -> None: ...


class JsonFileDocumentStore:
    """File-backed DocumentStore.

    The file is loaded lazily on first access. Saves write a temp file in the
    same directory, fsync it and atomically replace the original, so a crash
    never leaves a half-written document behind.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()
        self._data: dict[str, Any] | None = None
        self._lock = threading.RLock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._load()[key] = value

    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it was present."""
        with self._lock:
            return self._load().pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._load().keys())

    def save(self) -> None:
        """Flush the document to disk.

        Raises:
            StorageError: If the file cannot be written
        """
        with self._lock:
            data = self._load()
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        json.dump(data, f, indent=2, sort_keys=True)
                        f.flush()
                        os.fsync(f.fileno())
                    os.chmod(tmp_name, 0o600)
                    os.replace(tmp_name, self.path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as e:
                raise StorageError(f"Failed to save {self.path}: {e}") from e

            logger.debug(f"Saved auth document to {self.path}")

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data

        if not self.path.exists():
            logger.debug(f"No auth document at {self.path}, starting empty")
            self._data = {}
            return self._data

        try:
            loaded = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to load {self.path}: {e}") from e

        if not isinstance(loaded, dict):
            raise StorageError(f"Auth document {self.path} is not a JSON object")

        self._data = loaded
        logger.debug(f"Loaded auth document from {self.path}")
        return self._data
