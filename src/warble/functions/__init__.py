"""Function discovery and the route-table data model.

Conventions::

    src/api/
      index.py             # /api/
      hello.py             # /api/hello
      users/
        index.py           # /api/users
        [id].py            # /api/users/:id
      docs/
        [...slug].py       # /api/docs/*slug
      _helpers.py          # not a function

Plugin functions live under ``<plugin>/src/api/<plugin name>/`` and are
served under ``/api/<plugin name>/``.
"""

from warble.functions.discovery import (
    create_source_roots,
    discover_functions,
    match_pattern_for,
    route_from_relative_path,
)
from warble.functions.types import RouteEntry, RouteTable, SourceRoot

__all__ = [
    "RouteEntry",
    "RouteTable",
    "SourceRoot",
    "create_source_roots",
    "discover_functions",
    "match_pattern_for",
    "route_from_relative_path",
]
