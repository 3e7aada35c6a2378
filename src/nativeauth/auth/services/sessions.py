"""Auth session orchestration.

Creates login attempts, persists them encrypted, completes them when the
redirect comes back, and keeps expired or cleared sessions from being
treated as valid.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from nativeauth.auth.models.errors import (
    AuthError,
    AuthorizationDeniedError,
    ExpiredCodeError,
    InvalidCodeError,
    PKCEFailedError,
    SessionClearedError,
    StorageError,
    TokenExchangeError,
)
from nativeauth.auth.models.flow import AuthCallbackData, AuthorizationRequest
from nativeauth.auth.models.session import (
    AuthSession,
    DeviceInfo,
    SessionStatus,
    session_passphrase,
    utcnow,
)
from nativeauth.auth.models.tokens import TokenExchangeResult, TokenRequest
from nativeauth.auth.primitives.pkce import (
    constant_time_eq,
    generate_pkce_challenge,
    generate_state,
)
from nativeauth.auth.primitives.urls import parse_url, query_params
from nativeauth.auth.services.exchange import TokenExchanger
from nativeauth.config import AuthConfig
from nativeauth.store.sessions import EncryptedSessionStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.CREATED: frozenset(
        {SessionStatus.AWAITING_CALLBACK, SessionStatus.FAILED, SessionStatus.EXPIRED}
    ),
    SessionStatus.AWAITING_CALLBACK: frozenset(
        {SessionStatus.AUTHENTICATED, SessionStatus.FAILED, SessionStatus.EXPIRED}
    ),
    SessionStatus.AUTHENTICATED: frozenset({SessionStatus.EXPIRED}),
    SessionStatus.FAILED: frozenset(),
    SessionStatus.EXPIRED: frozenset(),
}


def transition(session: AuthSession, status: SessionStatus, **changes) -> AuthSession:
    """Return a copy of ``session`` moved to ``status``.

    Raises:
        InvalidCodeError: If the lifecycle does not allow the move
    """
    if status not in ALLOWED_TRANSITIONS[session.status]:
        raise InvalidCodeError(
            f"Session {session.id} cannot move from {session.status.value} "
            f"to {status.value}"
        )
    return session.model_copy(update={"status": status, **changes})


@dataclass
class SessionIndexEntry:
    """What this process knows about a session without decrypting it."""

    session_id: str
    device_id: str
    state: str
    expires_at: datetime
    pending: bool

    @property
    def passphrase(self) -> str:
        return session_passphrase(self.device_id, self.state)


class AuthSessionManager:
    """Owns the lifecycle of AuthSession values.

    Sessions are indexed in memory by id and, while a callback is pending, by
    state. The state index is how an incoming redirect finds the login it
    belongs to. A redirect whose state is not in the index is rejected
    before any token exchange happens.

    Updates to one session are serialized with a per-session lock.
    """

    def __init__(
        self,
        store: EncryptedSessionStore,
        token_exchanger: TokenExchanger | None = None,
        config: AuthConfig | None = None,
    ):
        self.store = store
        self.token_exchanger = token_exchanger
        self.config = config or AuthConfig()
        self._index: dict[str, SessionIndexEntry] = {}
        self._pending_states: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # ================================
    # Session creation
    # ================================

    async def generate_auth_session(self, device_info: DeviceInfo) -> AuthSession:
        """Start a new login attempt.

        Creates the session with a fresh id, state and PKCE challenge, and
        persists it encrypted under ``"{device_id}-{state}"``.

        Raises:
            CryptoError: If random generation or key derivation fails
            StorageError: If the session cannot be persisted
        """
        now = utcnow()
        session = AuthSession(
            id=str(uuid.uuid4()),
            pkce=generate_pkce_challenge(self.config.session_ttl),
            state=generate_state(),
            status=SessionStatus.CREATED,
            created_at=now,
            expires_at=now + self.config.session_ttl,
            device_info=device_info,
        )

        # The challenge is issued as soon as the session is handed out
        session = transition(session, SessionStatus.AWAITING_CALLBACK)

        await self.store.store_session_encrypted(session, session.passphrase)
        self._track(session)

        logger.info(
            f"Created auth session {session.id} for device "
            f"{device_info.device_id} ({device_info.platform})"
        )
        return session

    def build_authorization_url(self, session: AuthSession) -> str:
        """Build the identity provider URL for a pending session.

        Raises:
            AuthError: If no authorization endpoint or client id is configured
            InvalidCodeError: If the session has no unused challenge
        """
        if not self.config.authorization_endpoint or not self.config.client_id:
            raise AuthError("Authorization endpoint and client id must be configured")
        if session.pkce is None:
            raise InvalidCodeError(f"Session {session.id} has no pending challenge")

        request = AuthorizationRequest(
            authorization_endpoint=self.config.authorization_endpoint,
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            code_challenge=session.pkce.challenge,
            code_challenge_method=session.pkce.method,
            state=session.state,
            scope=self.config.scope,
        )
        return request.build_authorization_url()

    # ================================
    # Callback handling
    # ================================

    async def handle_auth_callback(self, url: str) -> AuthSession:
        """Complete a login from the redirect URL.

        The state in the URL must belong to a pending session created by this
        manager. Only then is the code handed to the token exchanger, together
        with the session's PKCE verifier.

        Args:
            url: Full redirect URL delivered through the deep link

        Returns:
            The authenticated session, re-persisted with its tokens

        Raises:
            InvalidUrlError: If the URL cannot be parsed
            AuthorizationDeniedError: If the provider returned an error
            InvalidCodeError: If code or state is missing, unknown or reused
            ExpiredCodeError: If the session or its challenge expired
            PKCEFailedError: If the provider rejected the verifier
            TokenExchangeError: If the exchange failed otherwise
        """
        callback = AuthCallbackData.from_params(query_params(parse_url(url)))

        if callback.is_error():
            await self._handle_denied_callback(callback)
            raise AuthorizationDeniedError(callback.error, callback.error_description)

        if not callback.code:
            raise InvalidCodeError("Callback is missing the authorization code")
        if not callback.state:
            raise InvalidCodeError("Callback is missing the state parameter")

        entry = self._lookup_pending(callback.state)
        if entry is None:
            logger.warning("Callback state does not match any pending login")
            raise InvalidCodeError("State parameter does not match any pending login")

        async with self._lock_for(entry.session_id):
            session = await self._load_pending(entry, callback.state)

            now = utcnow()
            if session.is_expired(now) or session.pkce.is_expired(now):
                await self._expire(session)
                raise ExpiredCodeError(f"Session {session.id} expired before callback")

            tokens = await self._exchange_code(session, callback.code)

            authenticated = transition(
                session,
                SessionStatus.AUTHENTICATED,
                tokens=tokens.tokens,
                pkce=None,
                user_id=tokens.user_id,
                email=tokens.email,
                wallet_address=tokens.wallet_address,
                expires_at=now + self.config.authenticated_session_ttl,
            )
            await self._persist_update(authenticated, previous=session)

        logger.info(f"Auth session {authenticated.id} authenticated")
        return authenticated

    async def _handle_denied_callback(self, callback: AuthCallbackData) -> None:
        """Mark the matching session failed when the provider reports an error."""
        logger.warning(
            f"Authorization callback contained error: {callback.error} - "
            f"{callback.error_description}"
        )
        if not callback.state:
            return

        entry = self._lookup_pending(callback.state)
        if entry is None:
            return

        async with self._lock_for(entry.session_id):
            session = await self.store.retrieve_session_encrypted(
                entry.session_id, entry.passphrase
            )
            if session is None or session.status is not SessionStatus.AWAITING_CALLBACK:
                return
            await self._fail(session, callback.error)

    async def _load_pending(self, entry: SessionIndexEntry, state: str) -> AuthSession:
        session = await self.store.retrieve_session_encrypted(
            entry.session_id, entry.passphrase
        )
        if session is None:
            self._forget(entry.session_id)
            raise InvalidCodeError(f"Session {entry.session_id} no longer exists")

        if not constant_time_eq(session.state, state):
            raise InvalidCodeError("State parameter mismatch")

        if session.status is not SessionStatus.AWAITING_CALLBACK or session.pkce is None:
            raise InvalidCodeError(
                f"Session {session.id} is not awaiting a callback "
                f"({session.status.value})"
            )
        return session

    async def _exchange_code(
        self, session: AuthSession, code: str
    ) -> TokenExchangeResult:
        if self.token_exchanger is None:
            raise TokenExchangeError("No token exchanger configured")

        request = TokenRequest(
            code=code,
            redirect_uri=self.config.redirect_uri,
            code_verifier=session.pkce.verifier,
            session_id=session.id,
            client_id=self.config.client_id,
            scope=self.config.scope,
        )

        try:
            return await self.token_exchanger.exchange_code(request)
        except (PKCEFailedError, TokenExchangeError) as e:
            await self._fail(session, str(e))
            raise
        except Exception as e:
            await self._fail(session, str(e))
            raise TokenExchangeError(f"Token exchange failed: {e}") from e

    # ================================
    # Retrieval and clearing
    # ================================

    async def get_auth_session(
        self, session_id: str, device_id: str, state: str
    ) -> AuthSession | None:
        """Load a session with the passphrase rebuilt from device id and state.

        Expiry is checked on every read. An expired session is purged and
        None is returned, so callers never see it as valid.

        Raises:
            DecryptionError: If device id or state do not match the session
            StorageError: If the stored data is unreadable
        """
        session = await self.store.retrieve_session_encrypted(
            session_id, session_passphrase(device_id, state)
        )
        if session is None:
            self._forget(session_id)
            return None

        if session.is_expired():
            logger.info(f"Auth session {session_id} expired, purging")
            await self.clear_auth_session(session_id)
            return None

        self._track(session)
        return session

    async def clear_auth_session(self, session_id: str) -> None:
        await self.store.clear_session(session_id)
        self._forget(session_id)
        self._locks.pop(session_id, None)

    async def clear_all_auth_sessions(self) -> None:
        await self.store.clear_all_sessions()
        self._index.clear()
        self._pending_states.clear()
        self._locks.clear()

    async def purge_expired_sessions(self, now: datetime | None = None) -> list[str]:
        """Clear every indexed session whose expiry has passed.

        Sessions written by another process are not indexed until they are
        read once. Those are still rejected lazily by ``get_auth_session``.

        Returns:
            Ids of the purged sessions
        """
        now = now or utcnow()
        expired = [
            entry.session_id
            for entry in list(self._index.values())
            if now > entry.expires_at
        ]
        for session_id in expired:
            await self.clear_auth_session(session_id)

        if expired:
            logger.info(f"Purged {len(expired)} expired auth sessions")
        return expired

    # ================================
    # Internals
    # ================================

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def _track(self, session: AuthSession) -> None:
        pending = (
            session.status is SessionStatus.AWAITING_CALLBACK
            and session.pkce is not None
        )
        self._index[session.id] = SessionIndexEntry(
            session_id=session.id,
            device_id=session.device_info.device_id,
            state=session.state,
            expires_at=session.expires_at,
            pending=pending,
        )
        if pending:
            self._pending_states[session.state] = session.id
        else:
            self._pending_states.pop(session.state, None)

    def _forget(self, session_id: str) -> None:
        entry = self._index.pop(session_id, None)
        if entry is not None:
            self._pending_states.pop(entry.state, None)

    def _lookup_pending(self, state: str) -> SessionIndexEntry | None:
        session_id = self._pending_states.get(state)
        if session_id is None:
            return None
        return self._index.get(session_id)

    async def _persist_update(self, session: AuthSession, previous: AuthSession) -> None:
        """Write an updated session over the one it was derived from.

        Refuses to write when the stored entry disappeared (cleared) or now
        holds a different session, so a late update cannot resurrect it.
        """
        current = await self.store.retrieve_session_encrypted(
            session.id, session.passphrase
        )
        if current is None:
            self._forget(session.id)
            raise SessionClearedError(f"Session {session.id} was cleared")
        if current.created_at != previous.created_at or current.status is not previous.status:
            raise StorageError(f"Session {session.id} was modified concurrently")

        await self.store.store_session_encrypted(session, session.passphrase)
        self._track(session)

    async def _fail(self, session: AuthSession, error: str | None) -> None:
        failed = transition(session, SessionStatus.FAILED, pkce=None, error=error)
        try:
            await self._persist_update(failed, previous=session)
        except AuthError as e:
            logger.warning(f"Could not record failure of session {session.id}: {e}")
            return
        logger.info(f"Auth session {session.id} failed: {error}")

    async def _expire(self, session: AuthSession) -> None:
        """Expired sessions are purged rather than kept in an expired state."""
        logger.info(f"Auth session {session.id} expired, purging")
        await self.clear_auth_session(session.id)
