"""Routing: resolves a request path against the discovered route table.

Exact routes are checked first, then dynamic ``:name`` patterns in
table order (first match wins).
"""

from warble.routing.pattern import RoutePattern
from warble.routing.router import RouteMatch, resolve, strip_prefix

__all__ = ["RouteMatch", "RoutePattern", "resolve", "strip_prefix"]
