from __future__ import annotations

import asyncio
import io

import pytest

from xhttpc.exceptions import XhttpcRequestError
from xhttpc.request import FORM_CONTENT_TYPE, UPLOAD_CHUNK_SIZE, RequestBuilder
from xhttpc.values import FlatParams


class FailingReader(io.RawIOBase):
    def __init__(self) -> None:
        self.closed_calls = 0

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        raise OSError("disk went away")

    def close(self) -> None:
        self.closed_calls += 1
        super().close()


def test_call_headers_override_base_headers() -> None:
    builder = RequestBuilder({"X": "1", "Accept": "application/json"})
    request = builder.query("GET", "http://h/p", {"X": "2"})
    assert request.headers["X"] == "2"
    assert request.headers["Accept"] == "application/json"
    assert request.headers.get_list("x") == ["2"]


def test_call_header_override_is_case_insensitive() -> None:
    builder = RequestBuilder({"X-Token": "base"})
    request = builder.query("GET", "http://h/p", {"x-token": "call"})
    assert request.headers.get_list("X-Token") == ["call"]


def test_query_mode_has_no_body() -> None:
    request = RequestBuilder().query("delete", "http://h/p?a=1")
    assert request.method == "DELETE"
    assert str(request.url) == "http://h/p?a=1"
    assert request.read() == b""
    assert "content-type" not in request.headers


def test_form_mode_encodes_body() -> None:
    body = FlatParams({"name": "a b", "tag": ["x", "y"]})
    request = RequestBuilder({"X": "1"}).form("POST", "http://h/p", body)
    assert request.read() == b"name=a+b&tag=x&tag=y"
    assert request.headers["Content-Type"] == FORM_CONTENT_TYPE
    assert request.headers["Content-Length"] == str(len(b"name=a+b&tag=x&tag=y"))


def test_form_content_type_overrides_base_but_not_call_header() -> None:
    builder = RequestBuilder({"Content-Type": "text/plain"})
    assert builder.form("PUT", "http://h/p", FlatParams()).headers["Content-Type"] == FORM_CONTENT_TYPE
    request = builder.form("PUT", "http://h/p", FlatParams(), {"Content-Type": "application/custom"})
    assert request.headers["Content-Type"] == "application/custom"


def test_upload_sets_length_and_media_type() -> None:
    payload = b"x" * 100_000
    request = RequestBuilder({"Content-Type": "base/type"}).upload(
        "http://h/upload", io.BytesIO(payload), len(payload), "image/png"
    )
    assert request.method == "POST"
    assert request.headers["Content-Type"] == "image/png"
    assert request.headers["Content-Length"] == str(len(payload))
    assert "transfer-encoding" not in request.headers
    assert request.read() == payload


def test_upload_call_header_overrides_media_type() -> None:
    request = RequestBuilder().upload(
        "http://h/upload", b"data", 4, "image/png", {"Content-Type": "application/octet-stream"}
    )
    assert request.headers["Content-Type"] == "application/octet-stream"
    assert request.read() == b"data"


def test_upload_read_failure_raises_request_error() -> None:
    request = RequestBuilder().upload("http://h/upload", FailingReader(), 10, "text/plain")
    with pytest.raises(XhttpcRequestError, match="failed reading upload body") as exc_info:
        request.read()
    assert isinstance(exc_info.value.cause, OSError)


def test_upload_rejects_negative_size() -> None:
    with pytest.raises(XhttpcRequestError):
        RequestBuilder().upload("http://h/upload", b"", -1, "text/plain")


def test_multipart_file_and_plain_fields(tmp_path) -> None:
    path = tmp_path / "report.txt"
    path.write_bytes(b"file contents")
    handle = open(path, "rb")

    request = RequestBuilder({"X": "1"}).multipart(
        "http://h/form",
        {"note": io.BytesIO(b"hello"), "attachment": handle, "raw": b"bytes value"},
    )

    assert handle.closed
    content_type = request.headers["Content-Type"]
    assert content_type.startswith("multipart/form-data; boundary=")
    boundary = content_type.split("boundary=", 1)[1]

    body = request.read()
    assert f"--{boundary}".encode() in body
    assert body.rstrip().endswith(f"--{boundary}--".encode())
    assert b'Content-Disposition: form-data; name="note"\r\n\r\nhello' in body
    assert b'name="attachment"; filename="report.txt"' in body
    assert b"file contents" in body
    assert b'Content-Disposition: form-data; name="raw"\r\n\r\nbytes value' in body
    assert body.index(b'name="note"') < body.index(b'name="attachment"') < body.index(b'name="raw"')


def test_multipart_call_header_overrides_content_type() -> None:
    request = RequestBuilder().multipart("http://h/form", {"a": b"1"}, {"Content-Type": "multipart/mixed"})
    assert request.headers["Content-Type"] == "multipart/mixed"


def test_multipart_without_fields_is_closing_boundary_only() -> None:
    request = RequestBuilder().multipart("http://h/form", {})
    boundary = request.headers["Content-Type"].split("boundary=", 1)[1]
    assert request.read() == f"--{boundary}--\r\n".encode()


def test_multipart_read_failure_closes_source_and_raises() -> None:
    reader = FailingReader()
    with pytest.raises(XhttpcRequestError, match="'broken'"):
        RequestBuilder().multipart("http://h/form", {"broken": reader})
    assert reader.closed_calls >= 1


@pytest.mark.parametrize(
    "url",
    ["not a url", "/relative/path", "ftp://h/file", "http://h/\x00", "http://[::1/p"],
)
def test_malformed_url_raises_request_error(url: str) -> None:
    with pytest.raises(XhttpcRequestError):
        RequestBuilder().query("GET", url)


def closed_source() -> io.BytesIO:
    source = io.BytesIO(b"gone")
    source.close()
    return source


def test_upload_from_closed_source_raises_request_error() -> None:
    request = RequestBuilder().upload("http://h/upload", closed_source(), 4, "text/plain")
    with pytest.raises(XhttpcRequestError, match="failed reading upload body") as exc_info:
        request.read()
    assert isinstance(exc_info.value.cause, ValueError)


def test_async_upload_from_closed_source_raises_request_error() -> None:
    request = RequestBuilder().upload("http://h/upload", closed_source(), 4, "text/plain", async_stream=True)

    async def run() -> None:
        with pytest.raises(XhttpcRequestError, match="failed reading upload body"):
            await request.aread()

    asyncio.run(run())


def test_async_upload_streams_reader_in_chunks() -> None:
    payload = b"x" * (UPLOAD_CHUNK_SIZE + 10)
    request = RequestBuilder().upload(
        "http://h/upload", io.BytesIO(payload), len(payload), "application/octet-stream", async_stream=True
    )
    assert asyncio.run(request.aread()) == payload


def test_multipart_from_closed_source_raises_request_error() -> None:
    with pytest.raises(XhttpcRequestError, match="'f'") as exc_info:
        RequestBuilder().multipart("http://h/form", {"f": closed_source()})
    assert isinstance(exc_info.value.cause, ValueError)
