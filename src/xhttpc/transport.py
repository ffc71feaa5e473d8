"""Execution of built requests against an ``httpx`` client."""

from __future__ import annotations

import logging

import httpx

from .context import CallContext
from .exceptions import XhttpcError, XhttpcTransportError
from .response import AsyncDecodedResponse, DecodedResponse
from .security import sanitize_headers

logger = logging.getLogger(__name__)


def _cap(value: float | None, remaining: float) -> float:
    return remaining if value is None else min(value, remaining)


def _apply_timeout(request: httpx.Request, default: httpx.Timeout, context: CallContext | None) -> None:
    current = request.extensions.get("timeout")
    timeout = httpx.Timeout(**current) if current else default
    remaining = context.remaining() if context is not None else None
    if remaining is not None:
        timeout = httpx.Timeout(
            connect=_cap(timeout.connect, remaining),
            read=_cap(timeout.read, remaining),
            write=_cap(timeout.write, remaining),
            pool=_cap(timeout.pool, remaining),
        )
    request.extensions["timeout"] = timeout.as_dict()


def _classify(exc: httpx.HTTPError, request: httpx.Request, context: CallContext | None) -> XhttpcError:
    if context is not None:
        err = context.error(cause=exc)
        if err is not None:
            err.url = str(request.url)
            return err
    return XhttpcTransportError(f"{request.method} {request.url} failed: {exc}", url=str(request.url), cause=exc)


def _before_send(client: httpx.Client | httpx.AsyncClient, request: httpx.Request, context: CallContext | None) -> None:
    if context is not None:
        context.raise_if_done()
    _apply_timeout(request, client.timeout, context)
    logger.debug("%s %s headers=%s", request.method, request.url, sanitize_headers(request.headers))


def invoke(client: httpx.Client, request: httpx.Request, context: CallContext | None = None) -> DecodedResponse:
    """Send ``request`` once and wrap the streamed response.

    Raises:
        XhttpcCancelledError: the context was done before the call, or became
            done while the transport failed.
        XhttpcTransportError: any other transport failure.
    """
    _before_send(client, request, context)
    try:
        response = client.send(request, stream=True)
    except httpx.HTTPError as exc:
        logger.debug("%s %s failed: %r", request.method, request.url, exc)
        raise _classify(exc, request, context) from exc
    logger.debug("%s %s -> %s", request.method, request.url, response.status_code)
    return DecodedResponse(response)


async def ainvoke(
    client: httpx.AsyncClient,
    request: httpx.Request,
    context: CallContext | None = None,
) -> AsyncDecodedResponse:
    """Async counterpart of :func:`invoke`."""
    _before_send(client, request, context)
    try:
        response = await client.send(request, stream=True)
    except httpx.HTTPError as exc:
        logger.debug("%s %s failed: %r", request.method, request.url, exc)
        raise _classify(exc, request, context) from exc
    logger.debug("%s %s -> %s", request.method, request.url, response.status_code)
    return AsyncDecodedResponse(response)
