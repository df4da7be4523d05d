"""``warble build``: one-shot production build.

Discovers and compiles every function, then writes the manifest that
``warble serve`` reads.  Compile errors exit with status 1.
"""

import argparse
import logging
import sys

from warble.build.orchestrator import BuildOrchestrator
from warble.cli._resolve import config_from_args
from warble.errors import CompileError
from warble.reporter import Reporter
from warble.state import FunctionsState


def run_build(args: argparse.Namespace) -> None:
    config = config_from_args(args, production=True)
    reporter = Reporter(logging.getLogger("warble.build"))
    orchestrator = BuildOrchestrator(config, FunctionsState(), reporter=reporter)

    try:
        result = orchestrator.run_once()
    except CompileError as exc:
        reporter.panic(str(exc))
        raise SystemExit(1) from exc

    count = len(orchestrator.state)
    print(
        f"Built {count} function(s) in {result.duration:.2f}s -> {config.manifest_path}",
        file=sys.stderr,
    )
