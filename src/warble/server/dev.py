"""Development server.

Serves the functions middleware with a single pounce worker.  Pounce's
own reload stays off: function changes are picked up by the watch
session, which recompiles artifacts that the executor reloads on every
request.
"""

from warble._internal.asgi import ASGIApp
from warble.server._pounce import load_pounce


def run_dev_server(app: ASGIApp, host: str, port: int, *, log_level: str = "info") -> None:
    """Start a single-worker pounce server for *app*.  Blocks until interrupted."""
    ServerConfig, Server = load_pounce()
    config = ServerConfig(
        host=host,
        port=port,
        workers=1,
        reload=False,
        log_level=log_level,
    )
    Server(config, app).run()
