"""Synchronous and asynchronous convenience clients."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import IO, Any, Callable, Mapping

import httpx

from .context import CallContext
from .request import BodySource, RequestBuilder, normalize_headers
from .response import AsyncDecodedResponse, DecodedResponse
from .transport import ainvoke, invoke
from .urls import resolve_url
from .values import FlatParams, KeyJoin, bracket_key_join, flatten

QUERY_METHODS = frozenset({"GET", "DELETE", "HEAD", "OPTIONS"})


@dataclass(frozen=True)
class ClientDefaults:
    """Snapshot of the headers and query parameters sent with every call."""

    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    query_items: tuple[tuple[str, str], ...] = ()

    @property
    def query(self) -> FlatParams:
        return FlatParams(self.query_items)


def _default_timeout(env_var: str, fallback: float) -> float:
    raw = os.getenv(env_var)
    if not raw:
        return fallback
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{env_var} must be a number of seconds, got {raw!r}") from exc


class _BaseXClient:
    default_timeout = 30.0
    user_agent = "xhttpc-python/0.1.0"
    _async_bodies = False

    def __init__(
        self,
        *,
        headers: Mapping[str, str] | None = None,
        query: Any = None,
        timeout: float | None = None,
        follow_redirects: bool = True,
        key_join: KeyJoin = bracket_key_join,
        timeout_env_var: str = "XHTTPC_TIMEOUT",
    ) -> None:
        self.key_join = key_join
        self.timeout = timeout if timeout is not None else _default_timeout(timeout_env_var, self.default_timeout)
        if self.timeout <= 0:
            raise ValueError("timeout must be greater than 0")

        base_headers = {"User-Agent": self.user_agent}
        base_headers.update(normalize_headers(headers))
        self._lock = threading.Lock()
        self._defaults = ClientDefaults(
            headers=MappingProxyType(base_headers),
            query_items=tuple(self._flatten(query).multi_items()),
        )

        self._client_kwargs = {
            "timeout": self.timeout,
            "follow_redirects": follow_redirects,
            "trust_env": False,
        }

    @property
    def defaults(self) -> ClientDefaults:
        """Current defaults; each call reads one snapshot."""
        return self._defaults

    def _update_headers(self, key: str, value: str | None) -> None:
        with self._lock:
            headers = {k: v for k, v in self._defaults.headers.items() if k.lower() != key.lower()}
            if value is not None:
                headers[key] = value
            self._defaults = replace(self._defaults, headers=MappingProxyType(headers))

    def _update_query(self, update: Callable[[FlatParams], None]) -> None:
        with self._lock:
            query = self._defaults.query
            update(query)
            self._defaults = replace(self._defaults, query_items=tuple(query.multi_items()))

    def set_header(self, key: str, value: str) -> None:
        self._update_headers(str(key), str(value))

    def remove_header(self, key: str) -> None:
        self._update_headers(str(key), None)

    def set_query(self, key: str, value: Any) -> None:
        self._update_query(lambda query: query.set(key, value))

    def add_query(self, key: str, value: Any) -> None:
        self._update_query(lambda query: query.add(key, value))

    def remove_query(self, key: str) -> None:
        self._update_query(lambda query: query.remove(key))

    def _flatten(self, value: Any) -> FlatParams:
        return flatten(value, key_join=self.key_join)

    def build_request(
        self,
        method: str,
        url: str,
        *,
        query: Any = None,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Request:
        """Build a query-only (GET/DELETE/...) or form-encoded request.

        ``query`` is appended to the URL ahead of the default query. ``body``
        is flattened into a form body for every method outside
        :data:`QUERY_METHODS`, including when it is ``None`` (empty body).
        """
        defaults = self.defaults
        builder = RequestBuilder(defaults.headers)
        method = method.upper()
        resolved = resolve_url(url, defaults.query, self._flatten(query))
        if method in QUERY_METHODS:
            return builder.query(method, resolved, headers)
        return builder.form(method, resolved, self._flatten(body), headers)

    def build_upload_request(
        self,
        url: str,
        reader: IO[bytes] | bytes,
        size: int,
        media_type: str,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Request:
        defaults = self.defaults
        return RequestBuilder(defaults.headers).upload(
            resolve_url(url, defaults.query),
            reader,
            size,
            media_type,
            headers,
            async_stream=self._async_bodies,
        )

    def build_multipart_request(
        self,
        url: str,
        fields: Mapping[str, BodySource],
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Request:
        defaults = self.defaults
        return RequestBuilder(defaults.headers).multipart(resolve_url(url, defaults.query), fields, headers)


class XClient(_BaseXClient):
    """Synchronous client.

    Every call method returns a :class:`DecodedResponse` that must be read
    once or closed.
    """

    def __init__(
        self,
        *,
        headers: Mapping[str, str] | None = None,
        query: Any = None,
        timeout: float | None = None,
        follow_redirects: bool = True,
        key_join: KeyJoin = bracket_key_join,
        httpx_client: httpx.Client | None = None,
    ) -> None:
        super().__init__(
            headers=headers,
            query=query,
            timeout=timeout,
            follow_redirects=follow_redirects,
            key_join=key_join,
        )
        self._httpx = httpx_client or httpx.Client(**self._client_kwargs)

    def __enter__(self) -> "XClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._httpx.close()

    def send(self, request: httpx.Request, *, context: CallContext | None = None) -> DecodedResponse:
        return invoke(self._httpx, request, context)

    def request(
        self,
        method: str,
        url: str,
        *,
        query: Any = None,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        context: CallContext | None = None,
    ) -> DecodedResponse:
        request = self.build_request(method, url, query=query, body=body, headers=headers)
        return self.send(request, context=context)

    def get(
        self,
        url: str,
        query: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> DecodedResponse:
        return self.request("GET", url, query=query, headers=headers, context=context)

    def delete(
        self,
        url: str,
        query: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> DecodedResponse:
        return self.request("DELETE", url, query=query, headers=headers, context=context)

    def post(
        self,
        url: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> DecodedResponse:
        return self.request("POST", url, body=body, headers=headers, context=context)

    def put(
        self,
        url: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> DecodedResponse:
        return self.request("PUT", url, body=body, headers=headers, context=context)

    def patch(
        self,
        url: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> DecodedResponse:
        return self.request("PATCH", url, body=body, headers=headers, context=context)

    def upload(
        self,
        url: str,
        reader: IO[bytes] | bytes,
        size: int,
        media_type: str,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> DecodedResponse:
        request = self.build_upload_request(url, reader, size, media_type, headers)
        return self.send(request, context=context)

    def post_multipart(
        self,
        url: str,
        fields: Mapping[str, BodySource],
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> DecodedResponse:
        request = self.build_multipart_request(url, fields, headers)
        return self.send(request, context=context)


class AsyncXClient(_BaseXClient):
    """Asynchronous client.

    Request assembly (flattening, multipart reads) runs synchronously before
    the first await; only the transport call and body reads are awaited.
    Upload readers are read in a worker thread while the body streams.
    """

    _async_bodies = True

    def __init__(
        self,
        *,
        headers: Mapping[str, str] | None = None,
        query: Any = None,
        timeout: float | None = None,
        follow_redirects: bool = True,
        key_join: KeyJoin = bracket_key_join,
        httpx_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            headers=headers,
            query=query,
            timeout=timeout,
            follow_redirects=follow_redirects,
            key_join=key_join,
        )
        self._httpx = httpx_client or httpx.AsyncClient(**self._client_kwargs)

    async def __aenter__(self) -> "AsyncXClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._httpx.aclose()

    async def send(self, request: httpx.Request, *, context: CallContext | None = None) -> AsyncDecodedResponse:
        return await ainvoke(self._httpx, request, context)

    async def request(
        self,
        method: str,
        url: str,
        *,
        query: Any = None,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        context: CallContext | None = None,
    ) -> AsyncDecodedResponse:
        request = self.build_request(method, url, query=query, body=body, headers=headers)
        return await self.send(request, context=context)

    async def get(
        self,
        url: str,
        query: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> AsyncDecodedResponse:
        return await self.request("GET", url, query=query, headers=headers, context=context)

    async def delete(
        self,
        url: str,
        query: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> AsyncDecodedResponse:
        return await self.request("DELETE", url, query=query, headers=headers, context=context)

    async def post(
        self,
        url: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> AsyncDecodedResponse:
        return await self.request("POST", url, body=body, headers=headers, context=context)

    async def put(
        self,
        url: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> AsyncDecodedResponse:
        return await self.request("PUT", url, body=body, headers=headers, context=context)

    async def patch(
        self,
        url: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> AsyncDecodedResponse:
        return await self.request("PATCH", url, body=body, headers=headers, context=context)

    async def upload(
        self,
        url: str,
        reader: IO[bytes] | bytes,
        size: int,
        media_type: str,
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> AsyncDecodedResponse:
        request = self.build_upload_request(url, reader, size, media_type, headers)
        return await self.send(request, context=context)

    async def post_multipart(
        self,
        url: str,
        fields: Mapping[str, BodySource],
        headers: Mapping[str, str] | None = None,
        *,
        context: CallContext | None = None,
    ) -> AsyncDecodedResponse:
        request = self.build_multipart_request(url, fields, headers)
        return await self.send(request, context=context)
