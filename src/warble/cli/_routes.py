"""``warble routes``: list discovered function routes.

Runs discovery only (no compilation) and prints the route table in
precedence order.
"""

import argparse

from warble.cli._resolve import config_from_args
from warble.functions.discovery import create_source_roots, discover_functions


def run_routes(args: argparse.Namespace) -> None:
    config = config_from_args(args, production=False)
    functions = discover_functions(create_source_roots(config), config.compiled_dir)

    if not functions:
        print("No functions found.")
        return

    rows = [
        (f"{config.prefix}/{entry.match_pattern or entry.route}", entry.source_root, entry.original_relative_path)
        for entry in functions
    ]

    # Column widths
    max_route = max(max(len(r[0]) for r in rows), 5)  # "ROUTE" header
    max_root = max(max(len(r[1]) for r in rows), 4)  # "ROOT" header

    fmt = f"{{:<{max_route}}}  {{:<{max_root}}}  {{}}"
    print(fmt.format("ROUTE", "ROOT", "SOURCE"))
    sep_len = max_route + max_root + 4 + max(len(r[2]) for r in rows)
    print("-" * min(sep_len, 80))
    for route, root, source in rows:
        print(fmt.format(route, root, source))
