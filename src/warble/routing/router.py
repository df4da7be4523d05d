"""Request routing against the discovered route table.

Resolution order:

1. Exact ``route`` equality.  Routes are unique, so at most one entry
   matches and its parameter map is empty.
2. Dynamic patterns, tested in table order.  The first pattern that
   matches wins, even if a later one is more specific.

No match returns ``None`` so the caller can fall through to the next
handler in its chain.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from warble.functions.types import RouteEntry


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match."""

    entry: RouteEntry
    params: dict[str, str] = field(default_factory=dict)


def strip_prefix(path: str, prefix: str) -> str | None:
    """Return the part of *path* below ``<prefix>/``, or ``None``.

    Examples::

        strip_prefix("/api/hello", "/api")   -> "hello"
        strip_prefix("/api/", "/api")        -> ""
        strip_prefix("/apiary", "/api")      -> None
    """
    if not prefix:
        return path.lstrip("/")
    head = prefix + "/"
    if not path.startswith(head):
        return None
    return path[len(head) :]


def resolve(
    table: Iterable[RouteEntry],
    path: str,
    *,
    prefix: str = "",
) -> RouteMatch | None:
    """Resolve a request path to a route entry and its parameters.

    Args:
        table: Route table, in precedence order.
        path: Request path.  When *prefix* is given, the path must live
            below it; otherwise it is taken as already stripped.
        prefix: Routing prefix to strip first (e.g. ``"/api"``).

    Returns:
        A ``RouteMatch``, or ``None`` when nothing matches.
    """
    if prefix:
        fragment = strip_prefix(path, prefix)
        if fragment is None:
            return None
    else:
        fragment = path

    entries = tuple(table)

    for entry in entries:
        # A dynamic route's own text ("users/[id]") is not a request path
        if entry.matcher is None and entry.route == fragment:
            return RouteMatch(entry=entry)

    for entry in entries:
        if entry.matcher is None:
            continue
        params = entry.matcher.match(fragment)
        if params is not None:
            return RouteMatch(entry=entry, params=params)

    return None
