"""Construction of outgoing ``httpx.Request`` objects."""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
from typing import IO, Any, AsyncIterator, Iterator, Mapping, Union

import httpx

from .exceptions import XhttpcRequestError
from .security import validate_url
from .values import FlatParams

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
UPLOAD_CHUNK_SIZE = 64 * 1024

BodySource = Union[IO[bytes], bytes, str]


def normalize_headers(headers: Mapping[str, Any] | None) -> dict[str, str]:
    if not headers:
        return {}
    clean: dict[str, str] = {}
    for key, value in headers.items():
        clean[str(key)] = str(value)
    return clean


def _read_chunks(reader: IO[bytes], url: str) -> Iterator[bytes]:
    while True:
        try:
            chunk = reader.read(UPLOAD_CHUNK_SIZE)
        except (OSError, ValueError) as exc:
            raise XhttpcRequestError(f"failed reading upload body for {url}", url=url, cause=exc) from exc
        if not chunk:
            return
        yield chunk.encode() if isinstance(chunk, str) else chunk


async def _aread_chunks(reader: IO[bytes], url: str) -> AsyncIterator[bytes]:
    # Blocking reads run in a worker thread.
    while True:
        try:
            chunk = await asyncio.to_thread(reader.read, UPLOAD_CHUNK_SIZE)
        except (OSError, ValueError) as exc:
            raise XhttpcRequestError(f"failed reading upload body for {url}", url=url, cause=exc) from exc
        if not chunk:
            return
        yield chunk.encode() if isinstance(chunk, str) else chunk


def _filename(source: Any) -> str | None:
    name = getattr(source, "name", None)
    if isinstance(name, str) and name:
        return os.path.basename(name)
    return None


def _drain(field: str, source: BodySource, url: str) -> bytes:
    """Read a multipart source fully and close it, whether or not the read succeeds."""
    if isinstance(source, bytes):
        return source
    if isinstance(source, str):
        return source.encode("utf-8")
    try:
        data = source.read()
    except (OSError, ValueError) as exc:
        raise XhttpcRequestError(
            f"failed reading multipart field {field!r} for {url}", url=url, cause=exc
        ) from exc
    finally:
        close = getattr(source, "close", None)
        if callable(close):
            close()
    return data.encode("utf-8") if isinstance(data, str) else data


class RequestBuilder:
    """Builds requests with default headers applied.

    Header precedence is uniform: ``base_headers`` < content type derived
    from the body shape < call-specific headers.
    """

    def __init__(self, base_headers: Mapping[str, str] | None = None) -> None:
        self.base_headers = normalize_headers(base_headers)

    def _headers(self, headers: Mapping[str, Any] | None, content_type: str | None = None) -> httpx.Headers:
        merged = httpx.Headers()
        for key, value in self.base_headers.items():
            merged[key] = value
        if content_type is not None:
            merged["Content-Type"] = content_type
        for key, value in normalize_headers(headers).items():
            merged[key] = value
        return merged

    @staticmethod
    def _new_request(method: str, url: str, headers: httpx.Headers, **kwargs: Any) -> httpx.Request:
        validate_url(url)
        try:
            return httpx.Request(method.upper(), url, headers=headers, **kwargs)
        except httpx.InvalidURL as exc:
            raise XhttpcRequestError(f"Invalid URL {url!r}: {exc}", url=url, cause=exc) from exc

    def form(
        self,
        method: str,
        url: str,
        body: FlatParams | None = None,
        headers: Mapping[str, Any] | None = None,
    ) -> httpx.Request:
        """Request with an optional URL-encoded form body."""
        if body is None:
            return self._new_request(method, url, self._headers(headers))
        return self._new_request(
            method,
            url,
            self._headers(headers, FORM_CONTENT_TYPE),
            content=body.encode().encode("ascii"),
        )

    def query(self, method: str, url: str, headers: Mapping[str, Any] | None = None) -> httpx.Request:
        return self.form(method, url, None, headers)

    def upload(
        self,
        url: str,
        reader: IO[bytes] | bytes,
        size: int,
        media_type: str,
        headers: Mapping[str, Any] | None = None,
        *,
        async_stream: bool = False,
    ) -> httpx.Request:
        """POST ``reader`` as the raw body with an explicit ``Content-Length``.

        The reader is streamed lazily while the request is sent; a failing read
        raises :class:`XhttpcRequestError` from inside the send.
        """
        if size < 0:
            raise XhttpcRequestError("upload size must be non-negative", url=url)
        merged = self._headers(headers, media_type)
        merged["Content-Length"] = str(size)

        content: Any
        if isinstance(reader, bytes):
            content = reader
        elif async_stream:
            content = _aread_chunks(reader, url)
        else:
            content = _read_chunks(reader, url)
        return self._new_request("POST", url, merged, content=content)

    def multipart(
        self,
        url: str,
        fields: Mapping[str, BodySource],
        headers: Mapping[str, Any] | None = None,
    ) -> httpx.Request:
        """POST a ``multipart/form-data`` body.

        Sources exposing a ``name`` (open files) become file parts, everything
        else a plain field. Each source is read in full and closed immediately;
        part order follows mapping iteration order.
        """
        validate_url(url)
        boundary = secrets.token_hex(16)
        files: list[tuple[str, tuple[str | None, bytes]]] = []
        for field, source in fields.items():
            filename = _filename(source)
            files.append((field, (filename, _drain(field, source, url))))
            logger.debug("multipart field %r registered (filename=%r)", field, filename)

        content_type = f"multipart/form-data; boundary={boundary}"
        merged = self._headers(headers, content_type)
        if not files:
            return self._new_request("POST", url, merged, content=f"--{boundary}--\r\n".encode("ascii"))
        return self._new_request("POST", url, merged, files=files)
