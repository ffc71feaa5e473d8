"""Single-read wrappers around streamed ``httpx`` responses.

Each wrapper allows exactly one read (``decode_json``, ``read_all``, ``text``
or ``copy_to``); the underlying response is closed afterwards whether the read
succeeded or not, and any further read raises
:class:`XhttpcResponseConsumedError`. A response that is never read must be
closed explicitly (``close()`` or a ``with`` block) to release its connection.

``decode_json``, ``read_all`` and ``text`` decompress bodies sent with
``Content-Encoding: gzip``. ``copy_to`` always copies the raw bytes as
received, compressed or not. Responses that httpx has already loaded into
memory (``httpx.Response(json=...)`` and the like) are served from that
buffer, which httpx has content-decoded, so every mode sees decoded bytes.
"""

from __future__ import annotations

import inspect
import json
import zlib
from types import MappingProxyType
from typing import Any, AsyncIterator, Iterator, Mapping, Protocol

import httpx
from pydantic import TypeAdapter, ValidationError

from .exceptions import (
    XhttpcDecodeError,
    XhttpcHTTPError,
    XhttpcResponseConsumedError,
    XhttpcTransportError,
)

GZIP_ENCODING = "gzip"
READ_CHUNK_SIZE = 64 * 1024
_GZIP_WBITS = 16 + zlib.MAX_WBITS


class Sink(Protocol):
    def write(self, data: bytes, /) -> Any: ...


class _GzipDecoder:
    """Incremental gzip decoder that accepts concatenated members."""

    def __init__(self) -> None:
        self._decompressor = zlib.decompressobj(_GZIP_WBITS)
        self._in_member = False

    def feed(self, data: bytes) -> bytes:
        out: list[bytes] = []
        while data:
            try:
                out.append(self._decompressor.decompress(data))
            except zlib.error as exc:
                raise XhttpcDecodeError(f"malformed gzip body: {exc}", cause=exc) from exc
            if self._decompressor.eof:
                data = self._decompressor.unused_data
                self._decompressor = zlib.decompressobj(_GZIP_WBITS)
                self._in_member = False
            else:
                data = b""
                self._in_member = True
        return b"".join(out)

    def finish(self) -> None:
        if self._in_member:
            raise XhttpcDecodeError("truncated gzip body")


def _parse_json(data: bytes, target: Any) -> Any:
    if not data.strip():
        return None
    try:
        value = json.loads(data)
    except ValueError as exc:
        raise XhttpcDecodeError(f"malformed JSON body: {exc}", body=data, cause=exc) from exc
    if target is None:
        return value
    try:
        return TypeAdapter(target).validate_python(value)
    except ValidationError as exc:
        raise XhttpcDecodeError(f"response does not match {target!r}", body=value, cause=exc) from exc


class _BaseDecodedResponse:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self._consumed = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.response.headers

    @property
    def url(self) -> str | None:
        # httpx raises when a response was built without a request.
        try:
            return str(self.response.url)
        except RuntimeError:
            return None

    @property
    def is_success(self) -> bool:
        return self.response.is_success

    @property
    def consumed(self) -> bool:
        return self._consumed

    def _is_gzip(self) -> bool:
        return self.response.headers.get("Content-Encoding") == GZIP_ENCODING

    def _claim(self) -> None:
        if self._consumed:
            raise XhttpcResponseConsumedError("response body already consumed", url=self.url)
        self._consumed = True

    def _buffered_body(self) -> bytes | None:
        """Body httpx already loaded (and content-decoded), if any."""
        if not self.response.is_stream_consumed:
            return None
        try:
            return self.response.content
        except httpx.ResponseNotRead:
            return None

    def _decode_text(self, data: bytes) -> str:
        encoding = self.response.charset_encoding or "utf-8"
        return data.decode(encoding, errors="replace")

    def _http_error(self, data: bytes | None) -> XhttpcHTTPError:
        raw_body: str | None = None
        parsed_body: Any = None
        if data is not None:
            raw_body = self._decode_text(data)
            if "application/json" in self.headers.get("content-type", "").lower():
                try:
                    parsed_body = json.loads(data) if data.strip() else None
                except ValueError:
                    parsed_body = None

        message = str(parsed_body or raw_body or "request failed")
        if isinstance(parsed_body, Mapping):
            if isinstance(parsed_body.get("error"), str):
                message = parsed_body["error"]
            elif isinstance(parsed_body.get("message"), str):
                message = parsed_body["message"]

        return XhttpcHTTPError(
            message,
            status_code=self.status_code,
            body=parsed_body if parsed_body is not None else raw_body,
            headers=MappingProxyType(dict(self.headers)),
            request_id=self.headers.get("x-request-id"),
            url=self.url,
        )


class DecodedResponse(_BaseDecodedResponse):
    """Synchronous single-read response."""

    def __enter__(self) -> "DecodedResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Discard the body (if unread) and release the connection."""
        self._consumed = True
        self.response.close()

    def _iter_raw(self) -> Iterator[bytes]:
        try:
            yield from self.response.iter_raw(READ_CHUNK_SIZE)
        except httpx.StreamError as exc:
            raise XhttpcResponseConsumedError("response stream is no longer readable", url=self.url, cause=exc) from exc
        except httpx.HTTPError as exc:
            raise XhttpcTransportError(f"failed reading response body: {exc}", url=self.url, cause=exc) from exc

    def _read_decoded(self) -> bytes:
        buffered = self._buffered_body()
        if buffered is not None:
            return buffered
        decoder = _GzipDecoder() if self._is_gzip() else None
        parts: list[bytes] = []
        for chunk in self._iter_raw():
            parts.append(decoder.feed(chunk) if decoder is not None else chunk)
        if decoder is not None:
            decoder.finish()
        return b"".join(parts)

    def read_all(self) -> bytes:
        """Return the full body, gunzipped when ``Content-Encoding: gzip``."""
        self._claim()
        try:
            return self._read_decoded()
        finally:
            self.response.close()

    def text(self) -> str:
        return self._decode_text(self.read_all())

    def decode_json(self, target: Any = None) -> Any:
        """Decode the body as JSON, optionally validating it into ``target``.

        ``target`` is any type pydantic can validate (a model class,
        ``list[Model]``, ``dict[str, int]`` ...). An empty body returns ``None``.
        """
        return _parse_json(self.read_all(), target)

    def copy_to(self, sink: Sink) -> int:
        """Write the raw, still-encoded body to ``sink``; return the byte count."""
        self._claim()
        written = 0
        try:
            buffered = self._buffered_body()
            chunks = [buffered] if buffered is not None else self._iter_raw()
            for chunk in chunks:
                sink.write(chunk)
                written += len(chunk)
        finally:
            self.response.close()
        return written

    def raise_for_status(self) -> "DecodedResponse":
        """Raise :class:`XhttpcHTTPError` for 4xx/5xx responses, consuming the body."""
        if self.status_code < 400:
            return self
        data = None if self._consumed else self.read_all()
        raise self._http_error(data)


class AsyncDecodedResponse(_BaseDecodedResponse):
    """Asynchronous single-read response."""

    async def __aenter__(self) -> "AsyncDecodedResponse":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._consumed = True
        await self.response.aclose()

    async def _aiter_raw(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_raw(READ_CHUNK_SIZE):
                yield chunk
        except httpx.StreamError as exc:
            raise XhttpcResponseConsumedError("response stream is no longer readable", url=self.url, cause=exc) from exc
        except httpx.HTTPError as exc:
            raise XhttpcTransportError(f"failed reading response body: {exc}", url=self.url, cause=exc) from exc

    async def read_all(self) -> bytes:
        self._claim()
        try:
            buffered = self._buffered_body()
            if buffered is not None:
                return buffered
            decoder = _GzipDecoder() if self._is_gzip() else None
            parts: list[bytes] = []
            async for chunk in self._aiter_raw():
                parts.append(decoder.feed(chunk) if decoder is not None else chunk)
            if decoder is not None:
                decoder.finish()
            return b"".join(parts)
        finally:
            await self.response.aclose()

    async def text(self) -> str:
        return self._decode_text(await self.read_all())

    async def decode_json(self, target: Any = None) -> Any:
        return _parse_json(await self.read_all(), target)

    async def copy_to(self, sink: Sink) -> int:
        """Like :meth:`DecodedResponse.copy_to`; ``sink.write`` may be a coroutine."""
        self._claim()
        written = 0
        try:
            buffered = self._buffered_body()
            if buffered is not None:
                result = sink.write(buffered)
                if inspect.isawaitable(result):
                    await result
                return len(buffered)
            async for chunk in self._aiter_raw():
                result = sink.write(chunk)
                if inspect.isawaitable(result):
                    await result
                written += len(chunk)
        finally:
            await self.response.aclose()
        return written

    async def raise_for_status(self) -> "AsyncDecodedResponse":
        if self.status_code < 400:
            return self
        data = None if self._consumed else await self.read_all()
        raise self._http_error(data)
