"""Events surfaced to the UI layer for incoming deep links."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from urllib.parse import SplitResult

from nativeauth.auth.models.session import utcnow

AUTH_CALLBACK_MARKER = "/auth/callback"


@dataclass(frozen=True)
class DeepLinkEvent:
    """A deep link as received: raw URL, parsed query and receipt time."""

    url: str
    parsed_params: dict[str, str]
    timestamp: datetime = field(default_factory=utcnow)


def is_auth_callback(parsed: SplitResult, params: dict[str, str]) -> bool:
    """Check if a deep link is an authorization redirect.

    Custom schemes put the first segment in the authority
    (``myapp://auth/callback``), so the marker is looked for in the
    authority and path together.
    """
    if "code" in params:
        return True
    if AUTH_CALLBACK_MARKER in parsed.path:
        return True
    return AUTH_CALLBACK_MARKER in f"/{parsed.netloc}{parsed.path}"
