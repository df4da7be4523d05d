"""warble: file-based serverless functions for static sites.

Drop Python modules under ``src/api/`` and each one answers requests
under ``/api/``: ``src/api/users/[id].py`` serves ``/api/users/42``.

Basic usage::

    from warble import BuildOrchestrator, FunctionsConfig, FunctionsMiddleware, FunctionsState

    config = FunctionsConfig(site_dir="mysite")
    state = FunctionsState()
    session = BuildOrchestrator(config, state).watch()
    app = FunctionsMiddleware(site_app, state=state)

A function module::

    async def default(request, response):
        await response.json({"id": request.params["id"]})
"""

__version__ = "0.1.0"
__all__ = [
    "BuildOrchestrator",
    "CompileError",
    "ConfigurationError",
    "FunctionsConfig",
    "FunctionsMiddleware",
    "FunctionsState",
    "Plugin",
    "Request",
    "Response",
    "RouteEntry",
    "WarbleError",
    "resolve",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import warble`` from pulling in watchdog and the compiler.
    """
    if name in ("FunctionsConfig", "Plugin"):
        from warble import config as _config

        return getattr(_config, name)

    if name == "BuildOrchestrator":
        from warble.build.orchestrator import BuildOrchestrator

        return BuildOrchestrator

    if name == "FunctionsState":
        from warble.state import FunctionsState

        return FunctionsState

    if name == "FunctionsMiddleware":
        from warble.server.handler import FunctionsMiddleware

        return FunctionsMiddleware

    if name == "Request":
        from warble.http.request import Request

        return Request

    if name == "Response":
        from warble.http.response import Response

        return Response

    if name == "RouteEntry":
        from warble.functions.types import RouteEntry

        return RouteEntry

    if name == "resolve":
        from warble.routing.router import resolve

        return resolve

    if name in ("CompileError", "ConfigurationError", "WarbleError"):
        from warble import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
