"""Background purge of expired auth sessions."""

from __future__ import annotations

import asyncio
import logging

from nativeauth.auth.models.errors import AuthError
from nativeauth.auth.services.sessions import AuthSessionManager


class SessionExpirySweeper:
    """Periodically clears expired sessions known to a manager.

    Reads still check expiry on their own. The sweeper only keeps expired
    ciphertext from lingering in the store.
    """

    def __init__(self, manager: AuthSessionManager, interval: float = 60.0):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.manager = manager
        self.interval = interval
        self._sweep_task: asyncio.Task[None] | None = None
        self.logger = logging.getLogger("nativeauth.auth.services.sweeper")

    @property
    def running(self) -> bool:
        """True if the sweep loop is active."""
        return self._sweep_task is not None and not self._sweep_task.done()

    async def start(self) -> None:
        """Start the sweep loop. Subsequent calls are ignored while running."""
        if self.running:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the sweep loop. Safe to call multiple times."""
        if self._sweep_task is None:
            return

        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None

    async def sweep_once(self) -> list[str]:
        return await self.manager.purge_expired_sessions()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except AuthError as e:
                # Keep sweeping after storage failures
                self.logger.warning(f"Expired session sweep failed: {e}")
