"""Session models for native authentication flows.

Contains the device description, PKCE challenge, token bundle and the auth
session itself. These are the values that get serialized, encrypted and
persisted by the session store.
"""

from __future__ import annotations

import string
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# RFC 3986 unreserved characters, used for verifiers and states
UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"

MIN_STATE_LENGTH = 32


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def session_passphrase(device_id: str, state: str) -> str:
    """Build the passphrase a session is encrypted under.

    The caller can rebuild it on redirect from the device id and the state
    that came back, so no separate key exchange is needed.
    """
    return f"{device_id}-{state}"


class SessionStatus(str, Enum):
    CREATED = "created"
    AWAITING_CALLBACK = "awaiting_callback"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    EXPIRED = "expired"


class DeviceInfo(BaseModel):
    """Description of the device a login was started from."""

    model_config = ConfigDict(frozen=True)

    device_id: str = Field(min_length=1)
    device_name: str
    platform: str
    user_agent: str | None = None


class PKCEChallenge(BaseModel):
    """PKCE (Proof Key for Code Exchange) pair for one login attempt (RFC 7636).

    The verifier never leaves the process except inside the token exchange
    request. Only the challenge goes into the authorization URL.
    """

    verifier: str
    challenge: str
    method: str = "S256"
    expires_at: datetime

    @field_validator("verifier")
    @classmethod
    def validate_verifier(cls, v: str) -> str:
        """Validate verifier meets RFC 7636 Section 4.1 requirements."""
        if not (43 <= len(v) <= 128):
            raise ValueError("verifier must be 43-128 characters")
        if any(c not in UNRESERVED_CHARACTERS for c in v):
            raise ValueError("verifier must only use unreserved characters")
        return v

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        if v != "S256":
            raise ValueError("Only S256 code challenge method is supported")
        return v

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at


class AuthToken(BaseModel):
    """Token bundle returned by the identity provider after code exchange.

    Opaque to this package beyond expiry bookkeeping.
    """

    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: str = "Bearer"
    scope: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at


class AuthSession(BaseModel):
    """A single login attempt and, once completed, its authenticated state.

    Lifecycle:
        created -> awaiting_callback -> authenticated | failed | expired

    The PKCE challenge is only present until the callback consumes it.
    """

    id: str = Field(min_length=1)
    user_id: str | None = None
    email: str | None = None
    wallet_address: str | None = None
    tokens: AuthToken | None = None
    pkce: PKCEChallenge | None = None
    state: str = Field(min_length=MIN_STATE_LENGTH)
    status: SessionStatus = SessionStatus.CREATED
    created_at: datetime
    expires_at: datetime
    device_info: DeviceInfo
    error: str | None = None

    @model_validator(mode="after")
    def validate_expiry_window(self) -> AuthSession:
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be after created_at")
        return self

    @property
    def passphrase(self) -> str:
        return session_passphrase(self.device_info.device_id, self.state)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at

    def is_valid(self, now: datetime | None = None) -> bool:
        """Check if the session can still be used.

        A failed or expired session is never valid, regardless of whether
        it could be read back from the store.
        """
        if self.status in (SessionStatus.FAILED, SessionStatus.EXPIRED):
            return False
        return not self.is_expired(now)

    def is_authenticated(self, now: datetime | None = None) -> bool:
        return (
            self.status is SessionStatus.AUTHENTICATED
            and self.tokens is not None
            and self.is_valid(now)
        )
