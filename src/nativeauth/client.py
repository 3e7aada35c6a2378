"""Command surface for the native auth engine.

Wires the document store, security context, session store, session manager,
deep-link router and expiry sweeper together, and exposes the operations the
UI layer calls.
"""

from __future__ import annotations

import logging

from nativeauth.auth.models.session import AuthSession, DeviceInfo
from nativeauth.auth.services.exchange import TokenExchanger
from nativeauth.auth.services.sessions import AuthSessionManager
from nativeauth.auth.services.sweeper import SessionExpirySweeper
from nativeauth.config import AuthConfig
from nativeauth.deeplink.browser import BrowserLauncher
from nativeauth.deeplink.callbacks import DeepLinkCallbacks
from nativeauth.deeplink.router import DeepLinkRouter, DeepLinkSource
from nativeauth.store.context import SecurityContext
from nativeauth.store.document import DocumentStore, JsonFileDocumentStore
from nativeauth.store.sessions import EncryptedSessionStore

logger = logging.getLogger(__name__)


class NativeAuthClient:
    """Complete native login client.

    Owns one security context for the process. Use as an async context
    manager, or call ``start`` and ``close`` explicitly.
    """

    def __init__(
        self,
        config: AuthConfig | None = None,
        token_exchanger: TokenExchanger | None = None,
        browser: BrowserLauncher | None = None,
        document: DocumentStore | None = None,
        initial_url: str | None = None,
    ):
        """Initialize the client.

        Args:
            config: Engine configuration, defaults to ``AuthConfig()``
            token_exchanger: Collaborator that redeems codes for tokens
            browser: Launcher for the identity provider URL
            document: Durable document, defaults to a JSON file at
                ``config.store_path``
            initial_url: Deep link the process was launched with, if any
        """
        self.config = config or AuthConfig()
        self.context = SecurityContext(
            document or JsonFileDocumentStore(self.config.store_path),
            self.config.kdf_params,
        )
        self.store = EncryptedSessionStore(self.context)
        self.sessions = AuthSessionManager(self.store, token_exchanger, self.config)
        self.router = DeepLinkRouter(
            session_manager=self.sessions,
            browser=browser,
            initial_url=initial_url,
        )
        self.sweeper = (
            SessionExpirySweeper(self.sessions, self.config.sweep_interval)
            if self.config.sweep_interval > 0
            else None
        )

    @property
    def callbacks(self) -> DeepLinkCallbacks:
        return self.router.callbacks

    async def start(self) -> None:
        """Initialize the salt and start background tasks."""
        await self.context.get_or_create_salt()
        await self.router.start()
        if self.sweeper is not None:
            await self.sweeper.start()
        logger.info("Native auth client started")

    async def close(self) -> None:
        if self.sweeper is not None:
            await self.sweeper.stop()
        await self.router.stop()
        logger.info("Native auth client stopped")

    async def __aenter__(self) -> NativeAuthClient:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ================================
    # Commands
    # ================================

    async def create_session(self, device_info: DeviceInfo) -> AuthSession:
        return await self.sessions.generate_auth_session(device_info)

    async def begin_login(self, device_info: DeviceInfo) -> AuthSession:
        """Create a session and open the identity provider in the browser.

        Raises:
            AuthError: If the provider endpoint is not configured
            InvalidUrlError: If the configured endpoint is not allowed
            DeepLinkError: If the browser could not be launched
        """
        session = await self.sessions.generate_auth_session(device_info)
        url = self.sessions.build_authorization_url(session)
        await self.router.open_auth_url(url)
        return session

    async def handle_callback(self, url: str) -> AuthSession:
        return await self.sessions.handle_auth_callback(url)

    async def clear_session(self, session_id: str) -> None:
        await self.sessions.clear_auth_session(session_id)

    async def clear_all_sessions(self) -> None:
        await self.sessions.clear_all_auth_sessions()

    async def get_session(
        self, session_id: str, device_id: str, state: str
    ) -> AuthSession | None:
        return await self.sessions.get_auth_session(session_id, device_id, state)

    async def open_auth_url(self, url: str) -> None:
        await self.router.open_auth_url(url)

    def register_auth_protocol(self, source: DeepLinkSource) -> None:
        """Register the redirect URI scheme with the OS deep-link mechanism."""
        self.router.register(source, self.config.callback_scheme)

    def get_current_deep_link(self) -> str | None:
        return self.router.get_current_deep_link()
