"""Library-specific exceptions."""

from __future__ import annotations

from typing import Mapping


class XhttpcError(Exception):
    """Base exception for all xhttpc failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: object = None,
        headers: Mapping[str, str] | None = None,
        request_id: str | None = None,
        url: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers) if headers is not None else {}
        self.request_id = request_id
        self.url = url
        self.cause = cause

    @property
    def message(self) -> str:
        return str(self.args[0])

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.status_code is None:
            return str(self.args[0])
        return f"{self.status_code}: {self.args[0]}"


class XhttpcEncodingError(XhttpcError):
    """Raised when a value cannot be flattened into form/query parameters."""


class XhttpcRequestError(XhttpcError):
    """Raised when a request cannot be assembled (bad URL, unreadable body source)."""


class XhttpcTransportError(XhttpcError):
    """Raised when the underlying transport fails to complete a call."""


class XhttpcCancelledError(XhttpcTransportError):
    """Raised when the call context was cancelled before or during the call."""


class XhttpcDeadlineExceededError(XhttpcCancelledError):
    """Raised when the call context deadline passed before or during the call."""


class XhttpcDecodeError(XhttpcError):
    """Raised when a response body cannot be decompressed or decoded."""


class XhttpcResponseConsumedError(XhttpcDecodeError):
    """Raised when a response body is read after it was already consumed or closed."""


class XhttpcHTTPError(XhttpcError):
    """Raised by ``raise_for_status`` for non-success responses."""
