"""Compiled dynamic route patterns.

A pattern is a route whose segments may be placeholders::

    "products/:id"       -> one segment captured as ``id``
    "docs/*slug"         -> the rest of the path captured as ``slug``

Patterns are compiled once, when their RouteEntry is built, and reused
for every request.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from warble.errors import ConfigurationError

# (regex fragment) for each placeholder kind
SEGMENT = r"([^/]+?)"
REST = r"(.*)"

_PARAM_RE = re.compile(r"^:(\w+)$")
_SPLAT_RE = re.compile(r"^\*(\w*)$")


def is_placeholder(segment: str) -> bool:
    """True if *segment* is a ``:name`` or ``*name`` placeholder."""
    return bool(_PARAM_RE.match(segment) or _SPLAT_RE.match(segment))


@dataclass(frozen=True, slots=True)
class RoutePattern:
    """A compiled route pattern.

    Matching is anchored, case-insensitive and tolerates one trailing
    slash.  Parameter names are kept in declaration order; when a name
    repeats, the last capture wins.
    """

    pattern: str
    regex: re.Pattern[str]
    names: tuple[str, ...]

    @classmethod
    def compile(cls, pattern: str) -> RoutePattern:
        """Compile a ``:name`` pattern string.

        Raises ``ConfigurationError`` if a ``*`` placeholder is not the
        last segment.
        """
        segments = [s for s in pattern.strip("/").split("/") if s]
        parts: list[str] = []
        names: list[str] = []
        for index, segment in enumerate(segments):
            param = _PARAM_RE.match(segment)
            if param:
                parts.append(SEGMENT)
                names.append(param.group(1))
                continue
            splat = _SPLAT_RE.match(segment)
            if splat:
                if index != len(segments) - 1:
                    msg = f"Route pattern {pattern!r}: '*' must be the last segment."
                    raise ConfigurationError(msg)
                parts.append(REST)
                names.append(splat.group(1) or "*")
                continue
            parts.append(re.escape(segment))

        regex = re.compile("^" + "/".join(parts) + "/?$", re.IGNORECASE)
        return cls(pattern=pattern, regex=regex, names=tuple(names))

    @property
    def is_dynamic(self) -> bool:
        return bool(self.names)

    def match(self, path: str) -> dict[str, str] | None:
        """Match *path* and return its parameters, or ``None``."""
        found = self.regex.match(path)
        if found is None:
            return None
        return dict(zip(self.names, found.groups(), strict=True))
