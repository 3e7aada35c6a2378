"""Token exchange models.

The exchange itself happens in an external collaborator; these models are the
contract between it and the session manager.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from pydantic import BaseModel

from nativeauth.auth.models.session import AuthToken, utcnow


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange parameters (RFC 6749 Section 4.1.3).

    Carries the PKCE code_verifier (RFC 7636) so the identity provider can
    check it against the challenge it saw in the authorization request.
    """

    code: str
    redirect_uri: str
    code_verifier: str
    session_id: str

    client_id: str | None = None
    grant_type: str = "authorization_code"
    scope: str | None = None

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for an application/x-www-form-urlencoded request.

        Returns:
            Dictionary ready to be posted to a token endpoint
        """
        data = {
            "grant_type": self.grant_type,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "code_verifier": self.code_verifier,
        }

        if self.client_id:
            data["client_id"] = self.client_id
        if self.scope:
            data["scope"] = self.scope

        return data


class TokenResponse(BaseModel):
    """Token endpoint response (RFC 6749 Section 5).

    Collaborators that talk to a standard token endpoint can validate the
    raw JSON into this model and call ``to_auth_token``.
    """

    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    scope: str | None = None

    error: str | None = None
    error_description: str | None = None

    def is_success(self) -> bool:
        return self.error is None and self.access_token is not None

    def is_error(self) -> bool:
        return self.error is not None

    def to_auth_token(self, default_lifetime: timedelta = timedelta(hours=1)) -> AuthToken:
        """Convert a successful response into an AuthToken.

        Raises:
            ValueError: If response is not successful
        """
        if not self.is_success():
            raise ValueError("Cannot convert error response to AuthToken")

        lifetime = (
            timedelta(seconds=self.expires_in)
            if self.expires_in is not None
            else default_lifetime
        )
        return AuthToken(
            access_token=self.access_token,
            refresh_token=self.refresh_token or "",
            expires_at=utcnow() + lifetime,
            token_type=self.token_type,
            scope=self.scope,
        )


class TokenExchangeResult(BaseModel):
    """What a token exchanger hands back: tokens plus who they belong to."""

    tokens: AuthToken
    user_id: str | None = None
    email: str | None = None
    wallet_address: str | None = None
