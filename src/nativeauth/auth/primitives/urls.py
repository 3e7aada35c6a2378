"""URL parsing and validation for redirects and browser launches."""

from __future__ import annotations

from urllib.parse import SplitResult, parse_qs, urlsplit

from nativeauth.auth.models.errors import InvalidUrlError

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1"})


def parse_url(url: str) -> SplitResult:
    """Parse an absolute URL.

    Raises:
        InvalidUrlError: If the URL is empty, has no scheme, or cannot be parsed
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidUrlError("URL is empty")

    try:
        parsed = urlsplit(url.strip())
        # Accessing port validates it and raises ValueError when malformed
        parsed.port
    except ValueError as e:
        raise InvalidUrlError(f"Failed to parse URL {url!r}: {e}") from e

    if not parsed.scheme:
        raise InvalidUrlError(f"URL has no scheme: {url!r}")
    return parsed


def query_params(parsed: SplitResult) -> dict[str, str]:
    """Extract query parameters, keeping the first value of repeated keys."""
    params = parse_qs(parsed.query, keep_blank_values=True)
    return {key: values[0] for key, values in params.items() if values}


def validate_auth_url(url: str) -> SplitResult:
    """Check a URL may be opened in the system browser.

    ``https`` is always allowed. ``http`` is only allowed for ``localhost``
    and ``127.0.0.1``. Every other scheme is rejected.

    Browsers read ``\\`` as a path separator in http(s) URLs and
    ``urlsplit`` does not. URLs containing it, whitespace or control
    characters are rejected before parsing, and so are URLs with userinfo.

    Raises:
        InvalidUrlError: If the URL is malformed or not allowed
    """
    if isinstance(url, str) and any(
        ch == "\\" or ch.isspace() or ord(ch) < 0x20 or ord(ch) == 0x7F for ch in url
    ):
        raise InvalidUrlError("URL contains forbidden characters")

    parsed = parse_url(url)
    scheme = parsed.scheme.lower()
    if scheme not in ("https", "http"):
        raise InvalidUrlError("Only HTTP(S) URLs allowed")

    if parsed.username is not None or parsed.password is not None:
        raise InvalidUrlError("Credentials in URL are not allowed")
    if not parsed.hostname:
        raise InvalidUrlError("Invalid host")
    if scheme == "http" and parsed.hostname not in LOOPBACK_HOSTS:
        raise InvalidUrlError("HTTP only allowed for localhost")
    return parsed
