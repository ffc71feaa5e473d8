"""Form/query/multipart request helpers and single-read response decoding over httpx."""

from .client import AsyncXClient, ClientDefaults, XClient
from .context import CallContext
from .exceptions import (
    XhttpcCancelledError,
    XhttpcDeadlineExceededError,
    XhttpcDecodeError,
    XhttpcEncodingError,
    XhttpcError,
    XhttpcHTTPError,
    XhttpcRequestError,
    XhttpcResponseConsumedError,
    XhttpcTransportError,
)
from .request import RequestBuilder
from .response import AsyncDecodedResponse, DecodedResponse
from .transport import ainvoke, invoke
from .urls import resolve_url
from .values import FlatParams, bracket_key_join, flatten, template_key_join

__version__ = "0.1.0"

__all__ = [
    "AsyncDecodedResponse",
    "AsyncXClient",
    "CallContext",
    "ClientDefaults",
    "DecodedResponse",
    "FlatParams",
    "RequestBuilder",
    "XClient",
    "XhttpcCancelledError",
    "XhttpcDeadlineExceededError",
    "XhttpcDecodeError",
    "XhttpcEncodingError",
    "XhttpcError",
    "XhttpcHTTPError",
    "XhttpcRequestError",
    "XhttpcResponseConsumedError",
    "XhttpcTransportError",
    "ainvoke",
    "bracket_key_join",
    "flatten",
    "invoke",
    "resolve_url",
    "template_key_join",
]
