"""Deep-link routing.

The OS hands URLs to the application from its own threads, at any time. The
router turns that push source into a queue drained by one consumer task, so
URL handling never runs on the OS thread and never blocks it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Protocol

from nativeauth.auth.models.errors import AuthError, DeepLinkError
from nativeauth.auth.models.flow import AuthCallbackData
from nativeauth.auth.primitives.urls import parse_url, query_params, validate_auth_url
from nativeauth.auth.services.sessions import AuthSessionManager
from nativeauth.deeplink.browser import BrowserLauncher, WebBrowserLauncher
from nativeauth.deeplink.callbacks import DeepLinkCallbacks
from nativeauth.deeplink.events import DeepLinkEvent, is_auth_callback


class DeepLinkSource(Protocol):
    """Protocol for the OS-level deep-link delivery mechanism."""

    def register(self, scheme: str, handler: Callable[[list[str]], None]) -> None:
        """Register a URL scheme and the handler to call with received URLs.

        The handler may be called from any thread.
        """
        ...


class DeepLinkRouter:
    """Routes incoming deep links to events and, optionally, to login completion.

    For every URL:
    - an auth callback event if it looks like an authorization redirect
    - a generic deep link event, always
    - ``handle_auth_callback`` on the session manager, when one is wired in

    Malformed URLs are logged and dropped. Nothing is raised back to the OS
    delivery channel.
    """

    def __init__(
        self,
        session_manager: AuthSessionManager | None = None,
        browser: BrowserLauncher | None = None,
        callbacks: DeepLinkCallbacks | None = None,
        initial_url: str | None = None,
    ):
        self.session_manager = session_manager
        self.browser = browser or WebBrowserLauncher()
        self.callbacks = callbacks or DeepLinkCallbacks()
        self._initial_url = initial_url
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._message_loop_task: asyncio.Task[None] | None = None
        self.logger = logging.getLogger("nativeauth.deeplink.router")

    # ================================
    # Lifecycle
    # ================================

    @property
    def running(self) -> bool:
        """True if the consumer task is actively processing URLs."""
        return (
            self._message_loop_task is not None and not self._message_loop_task.done()
        )

    async def start(self) -> None:
        """Start the consumer task.

        If the process was launched through a deep link, that URL is queued
        first. Safe to call multiple times.
        """
        if self.running:
            return

        self._loop = asyncio.get_running_loop()
        self._message_loop_task = asyncio.create_task(self._message_loop())
        if self._initial_url:
            self.deliver(self._initial_url)

    async def stop(self) -> None:
        """Stop the consumer task. URLs still queued are kept. Safe to call twice."""
        if self._message_loop_task is None:
            return

        self._message_loop_task.cancel()
        try:
            await self._message_loop_task
        except asyncio.CancelledError:
            pass
        self._message_loop_task = None

    async def join(self) -> None:
        """Wait until every URL delivered so far has been processed."""
        await self._queue.join()

    # ================================
    # Delivery
    # ================================

    def deliver(self, url: str) -> None:
        """Queue a URL for processing. Fire-and-forget, callable from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed() or _in_loop(loop):
            self._queue.put_nowait(url)
        else:
            loop.call_soon_threadsafe(self._queue.put_nowait, url)

    def deliver_many(self, urls: Iterable[str]) -> None:
        for url in urls:
            self.deliver(url)

    def register(self, source: DeepLinkSource, scheme: str) -> None:
        """Register this router as the handler for a URL scheme.

        Raises:
            DeepLinkError: If the OS-level registration fails
        """
        try:
            source.register(scheme, self.deliver_many)
        except Exception as e:
            raise DeepLinkError(f"Failed to register {scheme}:// handler: {e}") from e
        self.logger.info(f"Registered deep link handler for {scheme}://")

    def get_current_deep_link(self) -> str | None:
        """Return the URL the application was launched with, if any."""
        return self._initial_url

    # ================================
    # Routing
    # ================================

    async def _message_loop(self) -> None:
        """Drain the queue until cancelled.

        Each URL is handled on its own. A failure is logged and the loop
        moves on to the next URL.
        """
        while True:
            url = await self._queue.get()
            try:
                await self.route_url(url)
            except AuthError as e:
                self.logger.error(f"Failed to handle deep link: {e}")
            except Exception as e:
                self.logger.error(f"Unexpected error handling deep link: {e}")
            finally:
                self._queue.task_done()

    async def route_url(self, url: str) -> DeepLinkEvent:
        """Parse one URL and emit its events.

        Returns:
            The generic deep link event that was emitted

        Raises:
            InvalidUrlError: If the URL cannot be parsed
        """
        parsed = parse_url(url)
        self.logger.info(
            f"Received deep link: {parsed.scheme}://{parsed.netloc}{parsed.path}"
        )

        params = query_params(parsed)
        event = DeepLinkEvent(url=url, parsed_params=params)

        callback = None
        if is_auth_callback(parsed, params):
            callback = AuthCallbackData.from_params(params)
            await self.callbacks.call_auth_callback(callback)

        await self.callbacks.call_deep_link(event)

        if callback is not None and self.session_manager is not None:
            await self._complete_login(url, callback)

        return event

    async def _complete_login(self, url: str, callback: AuthCallbackData) -> None:
        try:
            session = await self.session_manager.handle_auth_callback(url)
        except AuthError as e:
            self.logger.warning(f"Auth callback could not be completed: {e}")
            await self.callbacks.call_auth_failed(callback, e)
            return
        await self.callbacks.call_session_authenticated(session)

    # ================================
    # Browser
    # ================================

    async def open_auth_url(self, url: str) -> None:
        """Open an identity provider URL in the system browser.

        Raises:
            InvalidUrlError: If the URL is not https, or http to a loopback host
            DeepLinkError: If the browser could not be launched
        """
        parsed = validate_auth_url(url)
        self.logger.info(f"Opening auth URL on {parsed.hostname}")

        try:
            await self.browser.open(url)
        except DeepLinkError:
            raise
        except Exception as e:
            raise DeepLinkError(f"Failed to open URL: {e}") from e


def _in_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False
