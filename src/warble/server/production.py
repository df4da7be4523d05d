"""Production server.

Serves a route table loaded from the persisted manifest: no discovery,
no compilation, artifacts are expected to exist already.
"""

from warble._internal.asgi import ASGIApp
from warble.server._pounce import load_pounce


def run_production_server(
    app: ASGIApp,
    host: str = "0.0.0.0",
    port: int = 8000,
    workers: int = 0,  # 0 = auto-detect from CPU count
    *,
    log_level: str = "info",
) -> None:
    """Run *app* on a multi-worker pounce server.

    Example:
        >>> state = FunctionsState.from_manifest(".cache/functions/manifest.json")
        >>> run_production_server(FunctionsMiddleware(state=state), workers=4)
    """
    ServerConfig, Server = load_pounce()
    config = ServerConfig(
        host=host,
        port=port,
        workers=workers,
        log_level=log_level,
    )
    Server(config, app).run()
