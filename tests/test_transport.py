from __future__ import annotations

import asyncio

import httpx
import pytest

from xhttpc.context import CallContext
from xhttpc.exceptions import (
    XhttpcCancelledError,
    XhttpcDeadlineExceededError,
    XhttpcTransportError,
)
from xhttpc.request import RequestBuilder
from xhttpc.transport import ainvoke, invoke


def ok_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, stream=httpx.ByteStream(b'{"ok": true}'))


def build(url: str = "http://h/p") -> httpx.Request:
    return RequestBuilder().query("GET", url)


def test_invoke_returns_decoded_response() -> None:
    with httpx.Client(transport=httpx.MockTransport(ok_handler)) as client:
        response = invoke(client, build())
        assert response.status_code == 200
        assert response.decode_json() == {"ok": True}


def test_already_cancelled_context_skips_transport() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    context = CallContext()
    context.cancel()
    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(XhttpcCancelledError):
            invoke(client, build(), context)
    assert calls == []


def test_expired_deadline_reports_deadline_error() -> None:
    context = CallContext(timeout=0)
    with httpx.Client(transport=httpx.MockTransport(ok_handler)) as client:
        with pytest.raises(XhttpcDeadlineExceededError):
            invoke(client, build(), context)


def test_cancellation_during_call_wins_over_transport_error() -> None:
    context = CallContext()

    def handler(request: httpx.Request) -> httpx.Response:
        context.cancel("caller gave up")
        raise httpx.ReadError("connection reset", request=request)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(XhttpcCancelledError, match="caller gave up") as exc_info:
            invoke(client, build(), context)
    assert isinstance(exc_info.value.cause, httpx.ReadError)
    assert exc_info.value.url == "http://h/p"


def test_transport_error_is_wrapped_without_retry() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(XhttpcTransportError) as exc_info:
            invoke(client, build(), CallContext(timeout=30))
    assert not isinstance(exc_info.value, XhttpcCancelledError)
    assert isinstance(exc_info.value.cause, httpx.ConnectError)
    assert len(calls) == 1


def test_deadline_caps_request_timeouts() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["timeout"] = request.extensions["timeout"]
        return httpx.Response(204, stream=httpx.ByteStream(b""))

    with httpx.Client(transport=httpx.MockTransport(handler), timeout=30.0) as client:
        invoke(client, build(), CallContext(timeout=5)).close()
        timeouts = captured["timeout"]
        assert isinstance(timeouts, dict)
        assert all(0 < value <= 5 for value in timeouts.values())

        invoke(client, build()).close()
        assert captured["timeout"] == {"connect": 30.0, "read": 30.0, "write": 30.0, "pool": 30.0}


def test_ainvoke_classifies_cancellation() -> None:
    async def run() -> None:
        context = CallContext()

        async def handler(request: httpx.Request) -> httpx.Response:
            context.cancel()
            raise httpx.ConnectTimeout("timed out", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(XhttpcCancelledError):
                await ainvoke(client, build(), context)

    asyncio.run(run())


def test_ainvoke_returns_async_response() -> None:
    async def run() -> object:
        async with httpx.AsyncClient(transport=httpx.MockTransport(ok_handler)) as client:
            response = await ainvoke(client, build())
            return await response.decode_json()

    assert asyncio.run(run()) == {"ok": True}
