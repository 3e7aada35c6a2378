import logging
from typing import Awaitable, Callable

from nativeauth.auth.models.errors import AuthError
from nativeauth.auth.models.flow import AuthCallbackData
from nativeauth.auth.models.session import AuthSession
from nativeauth.deeplink.events import DeepLinkEvent

logger = logging.getLogger(__name__)


class DeepLinkCallbacks:
    """Manages UI callbacks for deep-link and login events."""

    def __init__(self):
        self._auth_callback: Callable[[AuthCallbackData], Awaitable[None]] | None = (
            None
        )
        self._deep_link: Callable[[DeepLinkEvent], Awaitable[None]] | None = None
        self._session_authenticated: (
            Callable[[AuthSession], Awaitable[None]] | None
        ) = None
        self._auth_failed: (
            Callable[[AuthCallbackData, AuthError], Awaitable[None]] | None
        ) = None

    def on_auth_callback(
        self, callback: Callable[[AuthCallbackData], Awaitable[None]]
    ) -> None:
        """Register your callback for authorization redirects.

        Called for every deep link that looks like an auth callback, before
        any validation. Gets the code, state, error and error_description
        fields exactly as they arrived.

        Args:
            callback: Your async function called with each AuthCallbackData.
        """
        self._auth_callback = callback

    async def call_auth_callback(self, data: AuthCallbackData) -> None:
        if self._auth_callback:
            try:
                await self._auth_callback(data)
            except Exception as e:
                logger.warning(f"Auth callback handler failed: {e}")

    def on_deep_link(self, callback: Callable[[DeepLinkEvent], Awaitable[None]]) -> None:
        """Register your callback for every deep link received.

        Args:
            callback: Your async function called with the raw URL, parsed
                query parameters and receipt timestamp.
        """
        self._deep_link = callback

    async def call_deep_link(self, event: DeepLinkEvent) -> None:
        if self._deep_link:
            try:
                await self._deep_link(event)
            except Exception as e:
                logger.warning(f"Deep link handler failed: {e}")

    def on_session_authenticated(
        self, callback: Callable[[AuthSession], Awaitable[None]]
    ) -> None:
        """Register your callback for logins completed through a deep link.

        Only fires when the router is wired to a session manager.
        """
        self._session_authenticated = callback

    async def call_session_authenticated(self, session: AuthSession) -> None:
        if self._session_authenticated:
            try:
                await self._session_authenticated(session)
            except Exception as e:
                logger.warning(f"Session authenticated handler failed: {e}")

    def on_auth_failed(
        self, callback: Callable[[AuthCallbackData, AuthError], Awaitable[None]]
    ) -> None:
        """Register your callback for auth redirects that could not complete.

        Args:
            callback: Your async function called with the callback data and
                the error that stopped the login.
        """
        self._auth_failed = callback

    async def call_auth_failed(self, data: AuthCallbackData, error: AuthError) -> None:
        if self._auth_failed:
            try:
                await self._auth_failed(data, error)
            except Exception as e:
                logger.warning(f"Auth failed handler failed: {e}")
