"""Mutable response written straight to the ASGI ``send`` callable.

Functions drive the response imperatively::

    async def default(request, response):
        response.status(201).set_header("x-id", "42")
        await response.json({"ok": True})

A response is sent once.  ``send``/``json``/``redirect``/``end`` finish
it; ``write`` streams chunks and must be followed by ``end``.  Calling
any of them after the response finished raises ``RuntimeError``.
"""

from __future__ import annotations

import json as json_module
from datetime import datetime
from http import HTTPStatus
from typing import Any

from warble._internal.asgi import Send
from warble.http.cookies import SetCookie

TEXT_HTML = "text/html; charset=utf-8"
TEXT_PLAIN = "text/plain; charset=utf-8"
APPLICATION_JSON = "application/json; charset=utf-8"
OCTET_STREAM = "application/octet-stream"


def body_allowed(status: int, method: str = "GET") -> bool:
    """Whether a response to *method* with *status* may carry a body."""
    # 1xx, 204 and 304 never have a body; HEAD only gets headers
    if method.upper() == "HEAD":
        return False
    return not (100 <= status < 200 or status in {204, 304})


class Response:
    """Imperative HTTP response bound to one ASGI ``send``."""

    __slots__ = ("_cookies", "_finished", "_headers", "_headers_sent", "_send", "_status", "method")

    def __init__(self, send: Send, *, method: str = "GET") -> None:
        self._send = send
        self.method = method
        self._status = 200
        self._headers: list[tuple[str, str]] = []
        self._cookies: list[SetCookie] = []
        self._headers_sent = False
        self._finished = False

    # -- Inspection --

    @property
    def status_code(self) -> int:
        return self._status

    @property
    def headers_sent(self) -> bool:
        return self._headers_sent

    @property
    def finished(self) -> bool:
        return self._finished

    def get_header(self, name: str) -> str | None:
        lower = name.lower()
        for key, value in self._headers:
            if key == lower:
                return value
        return None

    # -- Building (chainable) --

    def status(self, code: int) -> Response:
        self._check_headers_pending()
        self._status = int(code)
        return self

    def set_header(self, name: str, value: str) -> Response:
        """Set *name*, replacing any earlier value."""
        self._check_headers_pending()
        lower = name.lower()
        self._headers = [(k, v) for k, v in self._headers if k != lower]
        self._headers.append((lower, str(value)))
        return self

    def append_header(self, name: str, value: str) -> Response:
        self._check_headers_pending()
        self._headers.append((name.lower(), str(value)))
        return self

    def set_cookie(
        self,
        name: str,
        value: str,
        *,
        max_age: int | None = None,
        expires: datetime | None = None,
        path: str = "/",
        domain: str | None = None,
        secure: bool = False,
        httponly: bool = False,
        samesite: str | None = None,
    ) -> Response:
        self._check_headers_pending()
        self._cookies.append(
            SetCookie(
                name=name,
                value=value,
                max_age=max_age,
                expires=expires,
                path=path,
                domain=domain,
                secure=secure,
                httponly=httponly,
                samesite=samesite,
            )
        )
        return self

    def clear_cookie(self, name: str, *, path: str = "/", domain: str | None = None) -> Response:
        return self.set_cookie(name, "", max_age=0, path=path, domain=domain)

    # -- Sending --

    async def send(self, body: Any = None) -> None:
        """Send *body* and finish the response.

        ``str`` is sent as HTML, ``bytes`` as an octet stream, ``dict`` and
        ``list`` as JSON, ``None`` as an empty body.  An explicit
        ``content-type`` header always wins.
        """
        if isinstance(body, (dict, list)):
            await self.json(body)
            return
        if body is None:
            payload = b""
        elif isinstance(body, str):
            payload = body.encode("utf-8")
            self._default_content_type(TEXT_HTML)
        elif isinstance(body, (bytes, bytearray, memoryview)):
            payload = bytes(body)
            self._default_content_type(OCTET_STREAM)
        else:
            payload = str(body).encode("utf-8")
            self._default_content_type(TEXT_PLAIN)
        await self._send_complete(payload)

    async def json(self, data: Any) -> None:
        self._default_content_type(APPLICATION_JSON)
        await self._send_complete(json_module.dumps(data).encode("utf-8"))

    async def redirect(self, location: str, status: int = 302) -> None:
        self.status(status).set_header("location", location)
        self._default_content_type(TEXT_PLAIN)
        await self._send_complete(f"{HTTPStatus(status).phrase}. Redirecting to {location}".encode())

    async def write(self, chunk: str | bytes) -> None:
        """Stream *chunk*.  Headers go out with the first write."""
        self._check_not_finished()
        if not self._headers_sent:
            self._default_content_type(TEXT_HTML)
            await self._start(content_length=None)
        data = chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
        if data and body_allowed(self._status, self.method):
            await self._send({"type": "http.response.body", "body": data, "more_body": True})

    async def end(self, chunk: str | bytes = b"") -> None:
        """Finish the response, optionally with a last chunk."""
        self._check_not_finished()
        data = chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
        if not self._headers_sent:
            await self._send_complete(data)
            return
        if not body_allowed(self._status, self.method):
            data = b""
        self._finished = True
        await self._send({"type": "http.response.body", "body": data, "more_body": False})

    # -- Internals --

    def _default_content_type(self, content_type: str) -> None:
        if not self._headers_sent and self.get_header("content-type") is None:
            self._headers.append(("content-type", content_type))

    def _check_headers_pending(self) -> None:
        if self._headers_sent:
            msg = "Cannot modify the response after its headers were sent"
            raise RuntimeError(msg)

    def _check_not_finished(self) -> None:
        if self._finished:
            msg = "The response was already sent"
            raise RuntimeError(msg)

    async def _send_complete(self, payload: bytes) -> None:
        self._check_not_finished()
        self._check_headers_pending()
        if not body_allowed(self._status, self.method):
            payload = b""
        await self._start(content_length=len(payload))
        self._finished = True
        await self._send({"type": "http.response.body", "body": payload, "more_body": False})

    async def _start(self, *, content_length: int | None) -> None:
        raw = [(k.encode("latin-1"), v.encode("latin-1")) for k, v in self._headers]
        raw.extend((b"set-cookie", c.to_header_value().encode("latin-1")) for c in self._cookies)
        if content_length is not None and self.get_header("content-length") is None:
            raw.append((b"content-length", str(content_length).encode("latin-1")))
        self._headers_sent = True
        await self._send({"type": "http.response.start", "status": self._status, "headers": raw})
