"""URL validation and header redaction helpers."""

from __future__ import annotations

from typing import Mapping
from urllib.parse import urlsplit

from .exceptions import XhttpcRequestError

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "proxy-authorization",
    "set-cookie",
    "x-api-key",
}


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return headers with sensitive values redacted for logging."""
    redacted: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            redacted[key] = "[REDACTED]"
        else:
            redacted[key] = value
    return redacted


def validate_url(url: str) -> None:
    """Reject URLs that cannot be sent: no scheme or host, non-HTTP scheme, NUL bytes."""
    if "\x00" in url:
        raise XhttpcRequestError("Invalid URL characters", url=url)
    try:
        parsed = urlsplit(url)
    except ValueError as exc:
        raise XhttpcRequestError(f"Invalid URL {url!r}: {exc}", url=url, cause=exc) from exc
    if not parsed.scheme or not parsed.netloc:
        raise XhttpcRequestError(f"URL must include scheme and host: {url!r}", url=url)
    if parsed.scheme not in {"http", "https"}:
        raise XhttpcRequestError(f"Unsupported URL scheme: {parsed.scheme}", url=url)
