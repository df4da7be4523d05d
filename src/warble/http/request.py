"""Immutable HTTP request handed to functions.

The body is read and parsed before the function runs, so a function
sees plain data:

- ``application/json`` (and ``+json``): the decoded JSON value
- ``text/*``: ``str``
- URL-encoded or multipart forms: ``FormData`` (files in ``files``)
- any other non-empty body: ``bytes``
- no body: ``None``
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

from warble._internal.asgi import Receive, Scope
from warble.http.cookies import parse_cookies
from warble.http.forms import FormData, UploadFile, is_form_content_type, parse_form_data
from warble.http.headers import Headers
from warble.http.query import QueryParams


async def read_body(receive: Receive) -> bytes:
    """Drain ``http.request`` messages into one body."""
    chunks: list[bytes] = []
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def parse_body(raw: bytes, content_type: str | None) -> Any:
    """Decode *raw* according to *content_type*.

    Raises:
        ValueError: Invalid JSON or a malformed form body.
    """
    if not raw:
        return None
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type == "application/json" or media_type.endswith("+json"):
        return json.loads(raw)
    if media_type.startswith("text/"):
        return raw.decode(_charset(content_type) or "utf-8", errors="replace")
    if is_form_content_type(media_type):
        return parse_form_data(raw, content_type or "")
    return raw


def _charset(content_type: str | None) -> str | None:
    for param in (content_type or "").split(";")[1:]:
        name, _, value = param.partition("=")
        if name.strip().lower() == "charset":
            return value.strip().strip('"') or None
    return None


@dataclass(frozen=True, slots=True)
class Request:
    """An incoming request, routed to a function.

    Attributes:
        params: Path parameters captured by the function's dynamic route.
        body: Pre-parsed body (see module docstring).
        raw_body: The body bytes as received.
        files: Files uploaded with a multipart body.
    """

    method: str
    path: str
    headers: Headers
    query: QueryParams
    params: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    body: Any = None
    raw_body: bytes = b""
    files: tuple[UploadFile, ...] = ()
    http_version: str = "1.1"
    client: tuple[str, int] | None = None
    server: tuple[str, int] | None = None

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def url(self) -> str:
        """Path plus query string."""
        if self.query:
            return f"{self.path}?{urlencode(self.query.multi_items())}"
        return self.path

    @property
    def form(self) -> FormData | None:
        return self.body if isinstance(self.body, FormData) else None

    @classmethod
    async def from_asgi(
        cls,
        scope: Scope,
        receive: Receive,
        params: dict[str, str] | None = None,
    ) -> Request:
        """Read the whole body from *receive* and build the request.

        Raises:
            ValueError: The body does not parse as its declared type.
        """
        headers = Headers.from_raw(scope.get("headers", ()))
        raw_body = await read_body(receive)
        body = parse_body(raw_body, headers.get("content-type"))
        server = scope.get("server")
        client = scope.get("client")
        return cls(
            method=scope["method"],
            path=scope["path"],
            headers=headers,
            query=QueryParams.from_query_string(scope.get("query_string", b"")),
            params=dict(params or {}),
            cookies=parse_cookies(headers.get("cookie", "")),
            body=body,
            raw_body=raw_body,
            files=body.files if isinstance(body, FormData) else (),
            http_version=scope.get("http_version", "1.1"),
            client=tuple(client) if client else None,
            server=tuple(server) if server else None,
        )
