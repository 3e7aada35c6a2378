from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from nativeauth.auth.models.session import (
    AuthSession,
    AuthToken,
    DeviceInfo,
    SessionStatus,
    utcnow,
)
from nativeauth.auth.models.tokens import TokenExchangeResult
from nativeauth.auth.primitives.keys import KeyDerivationParams
from nativeauth.auth.primitives.pkce import generate_pkce_challenge, generate_state
from nativeauth.auth.services.sessions import AuthSessionManager
from nativeauth.config import AuthConfig
from nativeauth.store.context import SecurityContext
from nativeauth.store.document import JsonFileDocumentStore
from nativeauth.store.sessions import EncryptedSessionStore


@pytest.fixture
def fast_kdf():
    """Cheap Argon2 parameters so tests don't spend seconds hashing."""
    return KeyDerivationParams(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "auth.json"


@pytest.fixture
def document(store_path):
    return JsonFileDocumentStore(store_path)


@pytest.fixture
def context(document, fast_kdf):
    return SecurityContext(document, fast_kdf)


@pytest.fixture
def store(context):
    return EncryptedSessionStore(context)


@pytest.fixture
def device_info():
    return DeviceInfo(device_id="dev-1", device_name="Test", platform="linux")


@pytest.fixture
def config(store_path, fast_kdf):
    return AuthConfig(
        store_path=store_path,
        redirect_uri="nativeauth://auth/callback",
        authorization_endpoint="https://auth.example.com/authorize",
        client_id="desktop-client",
        scope="openid email",
        sweep_interval=0,
        kdf_params=fast_kdf,
    )


@pytest.fixture
def exchange_result():
    return TokenExchangeResult(
        tokens=AuthToken(
            access_token="access-token-xyz",
            refresh_token="refresh-token-abc",
            expires_at=utcnow() + timedelta(hours=1),
            scope="openid email",
        ),
        user_id="user_123",
        email="user@example.com",
    )


@pytest.fixture
def token_exchanger(exchange_result):
    exchanger = AsyncMock()
    exchanger.exchange_code.return_value = exchange_result
    return exchanger


@pytest.fixture
def manager(store, token_exchanger, config):
    return AuthSessionManager(store, token_exchanger, config)


@pytest.fixture
def make_session(device_info):
    """Factory for pending sessions that were never persisted."""

    def _make(session_id: str = "session-1", device: DeviceInfo | None = None):
        now = utcnow()
        return AuthSession(
            id=session_id,
            pkce=generate_pkce_challenge(),
            state=generate_state(),
            status=SessionStatus.AWAITING_CALLBACK,
            created_at=now,
            expires_at=now + timedelta(minutes=10),
            device_info=device or device_info,
        )

    return _make
