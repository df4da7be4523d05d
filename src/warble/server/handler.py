"""ASGI middleware serving functions under a URL prefix.

The only component that touches raw ASGI on the serving side.  For every
HTTP request under ``<prefix>/`` it takes one snapshot of the route
table, resolves the path, builds a ``Request``/``Response`` pair and
hands them to the executor.  Anything it does not serve falls through
to the wrapped application (or a plain 404 when there is none).
"""

import logging

from warble._internal.asgi import ASGIApp, Receive, Scope, Send
from warble.executor import execute
from warble.http.request import Request
from warble.http.response import TEXT_PLAIN, Response
from warble.reporter import Reporter
from warble.routing.router import resolve, strip_prefix
from warble.state import FunctionsState

logger = logging.getLogger("warble.server")


class FunctionsMiddleware:
    """Route ``<prefix>/*`` requests to functions.

    Usage::

        state = FunctionsState.from_manifest(".cache/functions/manifest.json")
        app = FunctionsMiddleware(site_app, state=state)
    """

    __slots__ = ("app", "prefix", "reporter", "state")

    def __init__(
        self,
        app: ASGIApp | None = None,
        *,
        state: FunctionsState,
        prefix: str = "/api",
        reporter: Reporter | None = None,
    ) -> None:
        self.app = app
        self.state = state
        self.prefix = prefix.rstrip("/")
        self.reporter = reporter or Reporter(logging.getLogger("warble.functions"))

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self._fall_through(scope, receive, send)
            return

        suffix = strip_prefix(scope["path"], self.prefix)
        if suffix is None:
            await self._fall_through(scope, receive, send)
            return

        # One snapshot per request: a concurrent rebuild publishes a new
        # table without affecting this request
        match = resolve(self.state.functions, suffix)
        if match is None:
            await self._fall_through(scope, receive, send)
            return

        response = Response(send, method=scope["method"])
        try:
            request = await Request.from_asgi(scope, receive, match.params)
        except ValueError as exc:
            logger.debug("Rejecting %s %s: %s", scope["method"], scope["path"], exc)
            response.status(400).set_header("content-type", TEXT_PLAIN)
            await response.send(f"Invalid request body: {exc}")
            return

        await execute(match.entry, request, response, prefix=self.prefix, reporter=self.reporter)

    async def _fall_through(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self.app is not None:
            await self.app(scope, receive, send)
        elif scope["type"] == "http":
            response = Response(send, method=scope["method"])
            response.status(404).set_header("content-type", TEXT_PLAIN)
            await response.send("Not Found")
        elif scope["type"] == "lifespan":
            await _acknowledge_lifespan(receive, send)


async def _acknowledge_lifespan(receive: Receive, send: Send) -> None:
    """Complete the lifespan protocol for a middleware with no inner app."""
    while True:
        message = await receive()
        if message["type"] == "lifespan.startup":
            await send({"type": "lifespan.startup.complete"})
        elif message["type"] == "lifespan.shutdown":
            await send({"type": "lifespan.shutdown.complete"})
            return
