"""Lazy access to the pounce ASGI server (``pip install warble[server]``)."""

from typing import Any

from warble.errors import ConfigurationError


def load_pounce() -> tuple[Any, Any]:
    """Return pounce's ``(ServerConfig, Server)`` classes.

    Raises:
        ConfigurationError: If pounce is not installed.
    """
    try:
        from pounce.config import ServerConfig
        from pounce.server import Server
    except ImportError:
        msg = "Serving functions requires the 'pounce' package. Install it with: pip install warble[server]"
        raise ConfigurationError(msg) from None
    return ServerConfig, Server
