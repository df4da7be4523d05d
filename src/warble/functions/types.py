"""Data models for discovered functions.

Immutable frozen dataclasses representing source roots and the route
entries found under them.  Built once per build cycle during discovery.
"""

from __future__ import annotations

import glob
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from warble.routing.pattern import RoutePattern


@dataclass(frozen=True, slots=True)
class SourceRoot:
    """A configured directory scanned for function modules.

    Attributes:
        id: Owning root id (the site root or a plugin name).
        base_dir: Directory routes are computed relative to.
        pattern: Recursive glob, relative to *base_dir*, selecting
            candidate function files (e.g. ``**/*.py``).
    """

    id: str
    base_dir: Path
    pattern: str
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        regex = glob.translate(self.pattern, recursive=True, include_hidden=False)
        object.__setattr__(self, "_regex", re.compile(regex))

    @property
    def absolute_pattern(self) -> str:
        return str(self.base_dir / self.pattern)

    @property
    def watch_dir(self) -> Path:
        """Deepest directory above every file the pattern can select."""
        static: list[str] = []
        for part in Path(self.pattern).parts:
            if glob.has_magic(part):
                break
            static.append(part)
        return self.base_dir.joinpath(*static)

    def matches(self, path: str | Path) -> bool:
        """True if *path* is selected by this root's pattern."""
        try:
            relative = Path(path).relative_to(self.base_dir)
        except ValueError:
            return False
        if any(part.startswith("_") for part in relative.parts):
            return False
        return self._regex.match(relative.as_posix()) is not None


@dataclass(frozen=True, slots=True)
class RouteEntry:
    """One discovered function and the route it is served on.

    Attributes:
        route: Normalized URL path below the routing prefix
            (``""`` for the root ``index``).
        source_root: Id of the root that owns this function.
        original_source_path: Absolute path of the source module.
        original_relative_path: Source path relative to the root.
        compiled_relative_path: Artifact path relative to the output
            directory (always ``.py``).
        compiled_absolute_path: Absolute artifact path.
        match_pattern: ``:name`` pattern when the route is dynamic.
        matcher: The compiled *match_pattern*.  Built on construction,
            not serialized, not compared.
    """

    route: str
    source_root: str
    original_source_path: str
    original_relative_path: str
    compiled_relative_path: str
    compiled_absolute_path: str
    match_pattern: str | None = None
    matcher: RoutePattern | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.match_pattern is not None and self.matcher is None:
            object.__setattr__(self, "matcher", RoutePattern.compile(self.match_pattern))

    @property
    def is_dynamic(self) -> bool:
        return self.matcher is not None

    def to_dict(self) -> dict[str, Any]:
        """Manifest representation."""
        return {
            "route": self.route,
            "source_root": self.source_root,
            "original_source_path": self.original_source_path,
            "original_relative_path": self.original_relative_path,
            "compiled_relative_path": self.compiled_relative_path,
            "compiled_absolute_path": self.compiled_absolute_path,
            "match_pattern": self.match_pattern,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RouteEntry:
        return cls(
            route=data["route"],
            source_root=data["source_root"],
            original_source_path=data["original_source_path"],
            original_relative_path=data["original_relative_path"],
            compiled_relative_path=data["compiled_relative_path"],
            compiled_absolute_path=data["compiled_absolute_path"],
            match_pattern=data.get("match_pattern"),
        )


# Ordered, insertion order significant
type RouteTable = tuple[RouteEntry, ...]
