"""warble CLI: build, develop, serve and inspect functions.

Entry point registered as ``warble`` in ``pyproject.toml``::

    [project.scripts]
    warble = "warble.cli:main"
"""

import argparse
import logging
import sys


def _add_site_arguments(parser: argparse.ArgumentParser, *, plugins: bool = True) -> None:
    parser.add_argument("--site", default=".", help="Site directory (default: current directory)")
    parser.add_argument("--prefix", default="/api", help="URL prefix functions are served under")
    if plugins:
        parser.add_argument(
            "--plugin",
            action="append",
            default=[],
            metavar="NAME=PATH",
            help="Plugin providing functions, in precedence order (repeatable)",
        )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``warble`` command."""
    parser = argparse.ArgumentParser(
        prog="warble",
        description="warble: file-based serverless functions for static sites.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- warble build -----------------------------------------------------
    build_parser = subparsers.add_parser("build", help="Compile all functions once (production)")
    _add_site_arguments(build_parser)

    # -- warble develop ---------------------------------------------------
    develop_parser = subparsers.add_parser("develop", help="Watch, rebuild and serve functions")
    _add_site_arguments(develop_parser)
    develop_parser.add_argument("--host", default=None, help="Bind host address")
    develop_parser.add_argument("--port", type=int, default=None, help="Bind port number")
    develop_parser.add_argument(
        "--app",
        default=None,
        help="ASGI app serving the rest of the site (e.g. mysite:app)",
    )

    # -- warble serve -----------------------------------------------------
    serve_parser = subparsers.add_parser("serve", help="Serve the last production build")
    _add_site_arguments(serve_parser, plugins=False)
    serve_parser.add_argument("--host", default=None, help="Bind host address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port number")
    serve_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker count (0=auto-detect)",
    )
    serve_parser.add_argument("--app", default=None, help="ASGI app serving the rest of the site")

    # -- warble routes ----------------------------------------------------
    routes_parser = subparsers.add_parser("routes", help="List discovered function routes")
    _add_site_arguments(routes_parser)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    _configure_logging(args.verbose)

    if args.command == "build":
        from warble.cli._build import run_build

        run_build(args)
    elif args.command == "develop":
        from warble.cli._develop import run_develop

        run_develop(args)
    elif args.command == "serve":
        from warble.cli._serve import run_serve

        run_serve(args)
    elif args.command == "routes":
        from warble.cli._routes import run_routes

        run_routes(args)
