"""``warble develop``: watch, rebuild and serve functions.

Starts a watch session (compiler watch plus restart on structural
changes) and serves ``<prefix>/*`` through the functions middleware on
the development server.  A failed restart stops the server and exits
with status 1.
"""

import _thread
import argparse
import logging
import sys

from warble.build.orchestrator import BuildOrchestrator
from warble.cli._resolve import config_from_args, load_app
from warble.errors import ConfigurationError, RestartError
from warble.reporter import Reporter
from warble.server.handler import FunctionsMiddleware
from warble.state import FunctionsState


def _interrupt_server(error: RestartError) -> None:
    # The dev server blocks the main thread; stop it like Ctrl-C would
    _thread.interrupt_main()


def run_develop(args: argparse.Namespace) -> None:
    config = config_from_args(args, production=False)
    site_app = load_app(args.app)

    state = FunctionsState()
    reporter = Reporter(logging.getLogger("warble.build"))
    orchestrator = BuildOrchestrator(config, state, reporter=reporter)
    app = FunctionsMiddleware(site_app, state=state, prefix=config.prefix)

    from warble.server.dev import run_dev_server

    reporter.verbose("Attaching functions to development server")
    session = orchestrator.watch(on_fatal=_interrupt_server)
    try:
        run_dev_server(app, config.host, config.port, log_level=config.log_level)
    except KeyboardInterrupt:
        pass
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    finally:
        session.stop()

    if session.error is not None:
        raise SystemExit(1) from session.error
