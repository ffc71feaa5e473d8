"""Cooperative cancellation and deadlines for a single call."""

from __future__ import annotations

import threading
import time

from .exceptions import XhttpcCancelledError, XhttpcDeadlineExceededError


class CallContext:
    """Cancellation token with an optional deadline.

    ``cancel()`` may be called from any thread. The transport checks the
    context before sending and again when the send fails, so a failure caused
    by cancellation is reported as :class:`XhttpcCancelledError` (or
    :class:`XhttpcDeadlineExceededError`) rather than a generic transport error.
    """

    def __init__(self, *, timeout: float | None = None) -> None:
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = threading.Event()
        self._reason: str | None = None

    @property
    def deadline(self) -> float | None:
        """Deadline on the ``time.monotonic()`` clock, if any."""
        return self._deadline

    def cancel(self, reason: str | None = None) -> None:
        if not self._cancelled.is_set():
            self._reason = reason
            self._cancelled.set()

    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def done(self) -> bool:
        return self.cancelled() or self.expired()

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def error(self, cause: BaseException | None = None) -> XhttpcCancelledError | None:
        if self.cancelled():
            return XhttpcCancelledError(self._reason or "call cancelled", cause=cause)
        if self.expired():
            return XhttpcDeadlineExceededError("call deadline exceeded", cause=cause)
        return None

    def raise_if_done(self) -> None:
        err = self.error()
        if err is not None:
            raise err
