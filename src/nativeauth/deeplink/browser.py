"""Browser launching for the authorization leg of the flow."""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import Protocol

from nativeauth.auth.models.errors import DeepLinkError

logger = logging.getLogger(__name__)


class BrowserLauncher(Protocol):
    """Protocol for opening a URL outside the application."""

    async def open(self, url: str) -> None: ...


class WebBrowserLauncher:
    """Opens URLs with the system default browser."""

    async def open(self, url: str) -> None:
        try:
            opened = await asyncio.to_thread(webbrowser.open, url)
        except webbrowser.Error as e:
            raise DeepLinkError(f"Failed to open URL: {e}") from e
        if not opened:
            raise DeepLinkError("Failed to open URL: no browser available")
        logger.debug("Opened URL in system browser")
