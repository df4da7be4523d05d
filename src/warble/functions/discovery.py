"""Filesystem discovery of function modules.

Scans every source root for ``.py`` function files and builds the route
table:

- ``index.py`` maps to its directory's URL, other files append their stem
- ``[name]`` and ``:name`` segments become ``:name`` path parameters,
  ``[...name]`` captures the rest of the path
- files and directories starting with ``_`` or ``.`` are not functions

Roots are scanned concurrently.  The site root is folded in first, then
plugin roots in configuration order; the first entry registered for a
route wins, so the site overrides any plugin's function on the same route.
"""

from __future__ import annotations

import glob
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from warble.config import SITE_ROOT_ID, FunctionsConfig
from warble.errors import ConfigurationError, DiscoveryError
from warble.functions.types import RouteEntry, RouteTable, SourceRoot
from warble.routing.pattern import is_placeholder

if TYPE_CHECKING:
    from warble.reporter import Reporter

logger = logging.getLogger("warble.build")

FUNCTION_GLOB = "**/*.py"

# [id] -> :id
_BRACKET_PARAM_RE = re.compile(r"^\[(\w+)\]$")
# [...slug] -> *slug
_BRACKET_SPLAT_RE = re.compile(r"^\[\.\.\.(\w+)\]$")


def create_source_roots(config: FunctionsConfig) -> list[SourceRoot]:
    """Build the source roots for the site and its plugins.

    The site root comes first.  Plugins follow in configuration order,
    skipping the site's own plugin entry, plugins whose ``resolve`` path
    contains an ignored marker, and repeated plugins.
    """
    roots = [
        SourceRoot(
            id=SITE_ROOT_ID,
            base_dir=config.site_path / config.functions_dir,
            pattern=FUNCTION_GLOB,
        )
    ]
    seen: set[tuple[str, Path]] = set()

    for plugin in config.plugins:
        if plugin.name == SITE_ROOT_ID:
            continue
        resolve = Path(plugin.resolve).resolve()
        if any(marker in str(resolve) for marker in config.ignored_plugins):
            continue
        key = (plugin.name, resolve)
        if key in seen:
            continue
        seen.add(key)
        roots.append(
            SourceRoot(
                id=plugin.name,
                base_dir=resolve / config.functions_dir,
                pattern=f"{glob.escape(plugin.name)}/{FUNCTION_GLOB}",
            )
        )

    return roots


def route_from_relative_path(relative_path: str | PurePosixPath) -> str:
    """Normalize a root-relative source path into a route.

    Examples::

        "index.py"          -> ""
        "foo/index.py"      -> "foo"
        "foo/bar.py"        -> "foo/bar"
        "users/[id].py"     -> "users/[id]"
    """
    path = PurePosixPath(relative_path)
    name = "" if path.stem == "index" else path.stem
    parts = [p for p in (*path.parent.parts, name) if p and p != "."]
    return "/".join(parts)


def match_pattern_for(route: str) -> str | None:
    """Return the ``:name`` pattern for a dynamic route, else ``None``.

    Examples::

        "users/[id]"        -> "users/:id"
        "users/:id"         -> "users/:id"
        "docs/[...slug]"    -> "docs/*slug"
        "hello"             -> None
    """
    segments: list[str] = []
    dynamic = False
    for segment in route.split("/"):
        splat = _BRACKET_SPLAT_RE.match(segment)
        param = _BRACKET_PARAM_RE.match(segment)
        if splat:
            segments.append("*" + splat.group(1))
            dynamic = True
        elif param:
            segments.append(":" + param.group(1))
            dynamic = True
        else:
            dynamic = dynamic or is_placeholder(segment)
            segments.append(segment)
    return "/".join(segments) if dynamic else None


def discover_functions(
    roots: list[SourceRoot],
    compiled_dir: str | Path,
    *,
    reporter: Reporter | None = None,
) -> RouteTable:
    """Scan every root and fold the results into one route table.

    Args:
        roots: Source roots in precedence order (site first).
        compiled_dir: Output directory of the compiler, used to compute
            each entry's compiled artifact path.
        reporter: Receives a ``DiscoveryError`` for each root that
            could not be scanned.

    Returns:
        The route table, unique by route, in fold order.
    """
    compiled = Path(compiled_dir)
    if not roots:
        return ()

    with ThreadPoolExecutor(max_workers=len(roots), thread_name_prefix="warble-discover") as pool:
        futures = [pool.submit(_scan_root, root, compiled) for root in roots]

    per_root: list[list[RouteEntry]] = []
    for root, future in zip(roots, futures, strict=True):
        try:
            entries, skipped = future.result()
        except (OSError, ConfigurationError) as exc:
            _report(DiscoveryError(root.id, exc), reporter)
            per_root.append([])
            continue
        for error in skipped:
            _report(error, reporter)
        per_root.append(entries)

    table: list[RouteEntry] = []
    known: set[str] = set()
    for entries in per_root:
        for entry in entries:
            if entry.route in known:
                logger.debug(
                    "Skipping %s: route %r is already served by another function",
                    entry.original_source_path,
                    entry.route,
                )
                continue
            known.add(entry.route)
            table.append(entry)
    return tuple(table)


def _report(error: DiscoveryError, reporter: Reporter | None) -> None:
    if reporter is not None:
        reporter.error(str(error), error)
    else:
        logger.error("%s", error)


def _scan_root(root: SourceRoot, compiled_dir: Path) -> tuple[list[RouteEntry], list[DiscoveryError]]:
    """Expand one root's glob into route entries, sorted by path.

    A file whose path cannot become a route is skipped and returned as a
    ``DiscoveryError``; the rest of the root is unaffected.
    """
    if not root.base_dir.is_dir():
        return [], []

    files = glob.glob(root.pattern, root_dir=root.base_dir, recursive=True)
    entries: list[RouteEntry] = []
    skipped: list[DiscoveryError] = []
    for relative in sorted(files):
        relative_path = PurePosixPath(Path(relative).as_posix())
        if any(part.startswith(("_", ".")) for part in relative_path.parts):
            continue
        source = root.base_dir / relative_path
        if not source.is_file():
            continue

        compiled_relative = relative_path.with_suffix(".py").as_posix()
        route = route_from_relative_path(relative_path)
        try:
            entry = RouteEntry(
                route=route,
                source_root=root.id,
                original_source_path=str(source),
                original_relative_path=relative_path.as_posix(),
                compiled_relative_path=compiled_relative,
                compiled_absolute_path=str(compiled_dir / compiled_relative),
                match_pattern=match_pattern_for(route),
            )
        except ConfigurationError as exc:
            skipped.append(DiscoveryError(root.id, exc, path=str(source)))
            continue
        entries.append(entry)
    return entries, skipped
