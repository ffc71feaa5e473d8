"""Query-string resolution for outgoing requests."""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from .exceptions import XhttpcRequestError
from .values import FlatParams


def resolve_url(
    url: str,
    base_query: FlatParams | None = None,
    call_query: FlatParams | None = None,
) -> str:
    """Append call-specific then client-default query parameters to ``url``.

    Parameters already present in ``url`` are kept in front. The two sets are
    concatenated, not merged: a key present in both appears twice.

    >>> resolve_url("http://h/p", FlatParams({"a": "1"}), FlatParams({"b": "2"}))
    'http://h/p?b=2&a=1'
    """
    pieces = [
        piece.encode() if isinstance(piece, FlatParams) else ""
        for piece in (call_query, base_query)
    ]
    pieces = [piece for piece in pieces if piece]
    if not pieces:
        return url

    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise XhttpcRequestError(f"invalid URL {url!r}: {exc}", url=url, cause=exc) from exc
    if parts.query:
        pieces.insert(0, parts.query)
    return urlunsplit(parts._replace(query="&".join(pieces)))
