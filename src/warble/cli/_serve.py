"""``warble serve``: serve the last production build.

Reads the manifest written by ``warble build``; nothing is discovered or
compiled.
"""

import argparse
import logging
import sys

from warble.cli._resolve import config_from_args, load_app
from warble.errors import ConfigurationError
from warble.server.handler import FunctionsMiddleware
from warble.state import FunctionsState


def run_serve(args: argparse.Namespace) -> None:
    config = config_from_args(args, production=True)
    site_app = load_app(args.app)

    try:
        state = FunctionsState.from_manifest(config.manifest_path)
    except FileNotFoundError as exc:
        print(f"Error: no build found at {config.manifest_path}. Run 'warble build' first.", file=sys.stderr)
        raise SystemExit(1) from exc

    logging.getLogger("warble.server").info("Serving %d function(s) under %s/", len(state), config.prefix)
    app = FunctionsMiddleware(site_app, state=state, prefix=config.prefix)

    from warble.server.production import run_production_server

    try:
        run_production_server(
            app,
            host=config.host,
            port=config.port,
            workers=config.workers,
            log_level=config.log_level,
        )
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
