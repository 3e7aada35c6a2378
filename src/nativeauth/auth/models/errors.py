"""Exception hierarchy for native authentication sessions.

Provides specific exception types for each failure mode of the login flow so
callers can tell a bad callback from a broken store or a hostile URL.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base exception for all authentication session errors."""

    pass


class InvalidCodeError(AuthError):
    """Raised when the authorization code or state is missing or malformed.

    Also covers a state that does not belong to any pending login, which is
    how a forged (CSRF) callback surfaces.
    """

    pass


class AuthorizationDeniedError(InvalidCodeError):
    """Raised when the identity provider redirected back with an error."""

    def __init__(self, error: str, error_description: str | None = None):
        self.error = error
        self.error_description = error_description
        message = f"Authorization failed: {error}"
        if error_description:
            message += f" ({error_description})"
        super().__init__(message)


class ExpiredCodeError(AuthError):
    """Raised when a session or its PKCE challenge is past expiry."""

    pass


class PKCEFailedError(AuthError):
    """Raised when the code verifier does not match the issued challenge."""

    pass


class TokenExchangeError(AuthError):
    """Raised when exchanging the authorization code for tokens fails."""

    pass


class StorageError(AuthError):
    """Raised when persisted session data cannot be read or written."""

    pass


class SessionClearedError(StorageError):
    """Raised when writing a session that was already cleared."""

    pass


class DecryptionError(StorageError):
    """Raised when a stored record fails authentication on decrypt.

    Either the passphrase is wrong or the ciphertext was tampered with. The
    cipher cannot tell the two apart.
    """

    pass


class CryptoError(AuthError):
    """Raised when key derivation, hashing or random generation fails."""

    pass


class InvalidUrlError(AuthError):
    """Raised when a URL is unparseable or uses a disallowed scheme."""

    pass


class DeepLinkError(AuthError):
    """Raised when OS-level deep-link registration or browser launch fails."""

    pass
