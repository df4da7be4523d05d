"""Shared CLI helpers: configuration from arguments and app resolution."""

import argparse
import importlib
import sys
from typing import Any

from warble.config import FunctionsConfig, Plugin
from warble.errors import ConfigurationError


def parse_plugin(value: str) -> Plugin:
    """Parse a ``NAME=PATH`` plugin argument.

    Raises:
        ConfigurationError: If either side is empty or ``=`` is missing.
    """
    name, sep, path = value.partition("=")
    if not sep or not name.strip() or not path.strip():
        msg = f"Invalid plugin {value!r}, expected NAME=PATH"
        raise ConfigurationError(msg)
    return Plugin(name=name.strip(), resolve=path.strip())


def config_from_args(args: argparse.Namespace, *, production: bool) -> FunctionsConfig:
    """Build a ``FunctionsConfig`` from parsed CLI arguments.

    Exits with status 1 on invalid configuration.
    """
    overrides: dict[str, Any] = {}
    for name in ("host", "port", "workers"):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    try:
        plugins = tuple(parse_plugin(p) for p in getattr(args, "plugin", ()))
        return FunctionsConfig(
            site_dir=args.site,
            prefix=args.prefix,
            plugins=plugins,
            production=production,
            log_level="debug" if args.verbose else "info",
            **overrides,
        )
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


def resolve_app(import_string: str) -> Any:
    """Resolve ``"module:attribute"`` to an ASGI callable.

    The attribute defaults to ``app``.  The site directory is expected on
    ``sys.path`` (it is when warble runs from the site directory).

    Raises:
        ModuleNotFoundError: If the module cannot be imported.
        AttributeError: If the attribute does not exist on the module.
        TypeError: If the resolved object is not callable.
    """
    module_path, _, attr_name = import_string.partition(":")
    module = importlib.import_module(module_path)
    obj = getattr(module, attr_name or "app")
    if not callable(obj):
        msg = f"{import_string!r} resolved to {type(obj).__name__}, not an ASGI application"
        raise TypeError(msg)
    return obj


def load_app(import_string: str | None) -> Any:
    """``resolve_app`` for CLI use: ``None`` passes through, errors exit 1."""
    if import_string is None:
        return None
    try:
        return resolve_app(import_string)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
