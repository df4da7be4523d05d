"""Tests for warble.http.request: pre-parsed immutable requests."""

import pytest

from warble.http.forms import FormData
from warble.http.request import Request, parse_body


def _make_scope(**overrides: object) -> dict[str, object]:
    """Build a minimal valid ASGI HTTP scope."""
    base: dict[str, object] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "path": "/api/hello",
        "raw_path": b"/api/hello",
        "query_string": b"",
        "root_path": "",
        "headers": [],
        "server": ("localhost", 8000),
        "client": ("127.0.0.1", 54321),
    }
    base.update(overrides)
    return base


def _make_receive(*bodies: bytes):
    """Create an ASGI receive callable that yields bodies."""
    messages = []
    for i, body in enumerate(bodies):
        is_last = i == len(bodies) - 1
        messages.append({"type": "http.request", "body": body, "more_body": not is_last})
    if not messages:
        messages.append({"type": "http.request", "body": b"", "more_body": False})
    it = iter(messages)

    async def receive():
        return next(it)

    return receive


def _post(content_type: str, *bodies: bytes) -> tuple[dict[str, object], object]:
    scope = _make_scope(method="POST", headers=[(b"content-type", content_type.encode())])
    return scope, _make_receive(*bodies)


class TestRequestFromASGI:
    @pytest.mark.asyncio
    async def test_basic_fields(self) -> None:
        req = await Request.from_asgi(_make_scope(method="PUT"), _make_receive(), {"id": "7"})

        assert req.method == "PUT"
        assert req.path == "/api/hello"
        assert req.params == {"id": "7"}
        assert req.http_version == "1.1"
        assert req.server == ("localhost", 8000)
        assert req.client == ("127.0.0.1", 54321)

    @pytest.mark.asyncio
    async def test_params_default_empty(self) -> None:
        req = await Request.from_asgi(_make_scope(), _make_receive())
        assert req.params == {}
        assert req.body is None
        assert req.raw_body == b""

    @pytest.mark.asyncio
    async def test_headers_case_insensitive(self) -> None:
        scope = _make_scope(headers=[(b"X-Custom", b"one"), (b"x-custom", b"two")])
        req = await Request.from_asgi(scope, _make_receive())

        assert req.headers["x-custom"] == "one"
        assert req.headers["X-CUSTOM"] == "one"
        assert req.headers.get_list("x-custom") == ["one", "two"]

    @pytest.mark.asyncio
    async def test_query(self) -> None:
        scope = _make_scope(query_string=b"tag=a&tag=b&q=&page=2")
        req = await Request.from_asgi(scope, _make_receive())

        assert req.query["tag"] == "a"
        assert req.query.get_list("tag") == ["a", "b"]
        assert req.query["q"] == ""
        assert req.query.get("missing") is None
        assert req.url == "/api/hello?tag=a&tag=b&q=&page=2"

    @pytest.mark.asyncio
    async def test_cookies(self) -> None:
        scope = _make_scope(headers=[(b"cookie", b"session=abc; theme=dark")])
        req = await Request.from_asgi(scope, _make_receive())
        assert req.cookies == {"session": "abc", "theme": "dark"}

    @pytest.mark.asyncio
    async def test_json_body(self) -> None:
        scope, receive = _post("application/json", b'{"name": ', b'"ada"}')
        req = await Request.from_asgi(scope, receive)
        assert req.body == {"name": "ada"}

    @pytest.mark.asyncio
    async def test_text_body(self) -> None:
        scope, receive = _post("text/plain; charset=utf-8", "héllo".encode())
        req = await Request.from_asgi(scope, receive)
        assert req.body == "héllo"

    @pytest.mark.asyncio
    async def test_urlencoded_body(self) -> None:
        scope, receive = _post("application/x-www-form-urlencoded", b"name=ada&tag=x&tag=y")
        req = await Request.from_asgi(scope, receive)

        assert isinstance(req.body, FormData)
        assert req.form is req.body
        assert req.body["name"] == "ada"
        assert req.body.get_list("tag") == ["x", "y"]
        assert req.files == ()

    @pytest.mark.asyncio
    async def test_binary_body(self) -> None:
        scope, receive = _post("application/octet-stream", b"\x00\x01")
        req = await Request.from_asgi(scope, receive)
        assert req.body == b"\x00\x01"
        assert req.form is None

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self) -> None:
        scope, receive = _post("application/json", b"{not json")
        with pytest.raises(ValueError):
            await Request.from_asgi(scope, receive)

    @pytest.mark.asyncio
    async def test_frozen(self) -> None:
        req = await Request.from_asgi(_make_scope(), _make_receive())
        with pytest.raises(AttributeError):
            req.method = "POST"  # type: ignore[misc]


class TestParseBody:
    def test_empty_is_none(self) -> None:
        assert parse_body(b"", "application/json") is None

    def test_vendor_json(self) -> None:
        assert parse_body(b"[1, 2]", "application/vnd.api+json") == [1, 2]

    def test_no_content_type_is_bytes(self) -> None:
        assert parse_body(b"raw", None) == b"raw"

    def test_text_charset(self) -> None:
        assert parse_body("été".encode("latin-1"), "text/plain; charset=latin-1") == "été"
