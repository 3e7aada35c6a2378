"""Token exchange collaborator contract.

The network exchange with the identity provider lives outside this package.
The session manager only talks to it through this protocol.
"""

from __future__ import annotations

from typing import Protocol

from nativeauth.auth.models.tokens import TokenExchangeResult, TokenRequest


class TokenExchanger(Protocol):
    """Protocol for exchanging an authorization code for tokens.

    Implementations send the code and the PKCE verifier to the identity
    provider, which checks the verifier against the challenge it saw.

    Implementations should raise:
        PKCEFailedError: If the provider rejects the code verifier
        TokenExchangeError: For any other exchange failure
    """

    async def exchange_code(self, request: TokenRequest) -> TokenExchangeResult:
        """Exchange an authorization code for a token bundle.

        Args:
            request: Code, verifier and redirect URI of the completed flow

        Returns:
            Tokens plus the identity they were issued for
        """
        ...
