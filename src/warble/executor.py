"""Function execution.

Each request loads the function's compiled artifact from disk, so a
recompiled function takes effect on the next request without a server
restart.  The invocable is the module's ``default`` attribute, else its
``handler`` attribute, else the module itself (which is never callable,
so a module exporting neither name fails to load).

A function imports its helpers (``_``-prefixed modules, which are never
routed) from its own source directory or its root's base directory.

Errors never escape ``execute()``: they are reported and, while the
response headers are still unsent, turned into a 500 page naming the
function's source file.
"""

from __future__ import annotations

import asyncio
import hashlib
import importlib.machinery
import importlib.util
import logging
import sys
import threading
import time
from html import escape
from pathlib import Path, PurePosixPath
from types import ModuleType
from typing import Any

from warble._internal.invoke import invoke
from warble.errors import ExecutionError, LoadError
from warble.functions.types import RouteEntry
from warble.http.request import Request
from warble.http.response import TEXT_HTML, Response
from warble.reporter import Reporter

logger = logging.getLogger("warble.functions")

EXPORT_NAMES = ("default", "handler")

# Loads touch the process-wide sys.path and sys.modules; one at a time
_load_lock = threading.Lock()


class _FreshSourceLoader(importlib.machinery.SourceFileLoader):
    """Source loader that never reads or writes cached bytecode.

    Artifacts are rewritten in place by the compiler; ``.pyc`` staleness
    checks are based on mtime and size, which a quick rewrite can defeat.
    """

    def get_code(self, fullname: str) -> Any:
        source = self.get_data(self.path)
        return self.source_to_code(source, self.path)


def module_name_for(entry: RouteEntry) -> str:
    digest = hashlib.sha1(entry.compiled_absolute_path.encode("utf-8"), usedforsecurity=False)
    return f"warble_function_{digest.hexdigest()[:12]}"


def import_paths_for(entry: RouteEntry) -> list[str]:
    """Directories a function imports its helper modules from.

    The function's own source directory first, then its root's base
    directory::

        src/api/users/[id].py  ->  ["src/api/users", "src/api"]
    """
    source = Path(entry.original_source_path)
    base = source
    for _ in PurePosixPath(entry.original_relative_path).parts:
        base = base.parent
    paths = [str(source.parent)]
    if str(base) not in paths:
        paths.append(str(base))
    return paths


def load_function(entry: RouteEntry) -> Any:
    """Load *entry*'s artifact fresh and return its invocable export.

    Helper modules next to the source (``_helpers.py`` and the like) are
    importable while the artifact loads, and are dropped again afterwards
    so an edited helper is picked up by the next load.

    Raises:
        LoadError: The artifact is missing, fails to import, or exports
            nothing callable.
    """
    path = Path(entry.compiled_absolute_path)
    if not path.is_file():
        msg = f'Compiled function "{path}" for "{entry.original_source_path}" does not exist.'
        raise LoadError(entry.original_source_path, msg)

    name = module_name_for(entry)
    loader = _FreshSourceLoader(name, str(path))
    spec = importlib.util.spec_from_file_location(name, path, loader=loader)
    if spec is None:
        msg = f'Cannot load "{path}" for "{entry.original_source_path}".'
        raise LoadError(entry.original_source_path, msg)

    import_paths = import_paths_for(entry)
    with _load_lock:
        # Drop the previous instance so the recompiled code takes effect
        sys.modules.pop(name, None)
        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module

        preloaded = set(sys.modules)
        added = [p for p in import_paths if p not in sys.path]
        sys.path[:0] = added
        # Helpers are re-imported from source on every load
        write_bytecode = sys.dont_write_bytecode
        sys.dont_write_bytecode = True
        importlib.invalidate_caches()
        try:
            loader.exec_module(module)
        except Exception as exc:
            sys.modules.pop(name, None)
            raise LoadError(entry.original_source_path, f"{type(exc).__name__}: {exc}") from exc
        finally:
            sys.dont_write_bytecode = write_bytecode
            for directory in added:
                sys.path.remove(directory)
            _forget_helpers(preloaded, import_paths)

    fn = resolve_export(module)
    if not callable(fn):
        raise LoadError(entry.original_source_path, f"{entry.original_source_path} does not export a function.")
    return fn


def _forget_helpers(preloaded: set[str], import_paths: list[str]) -> None:
    """Remove modules imported from *import_paths* since *preloaded*."""
    roots = [Path(p) for p in import_paths]
    for module_name in set(sys.modules) - preloaded:
        filename = getattr(sys.modules.get(module_name), "__file__", None)
        if filename and any(Path(filename).is_relative_to(root) for root in roots):
            sys.modules.pop(module_name, None)


def resolve_export(module: ModuleType) -> Any:
    for name in EXPORT_NAMES:
        export = getattr(module, name, None)
        if export is not None:
            return export
    return module


def error_page(entry: RouteEntry, error: BaseException) -> str:
    return f'Error when executing function "{entry.original_source_path}":<br /><br />{escape(str(error), quote=False)}'


async def execute(
    entry: RouteEntry,
    request: Request,
    response: Response,
    *,
    prefix: str = "/api",
    reporter: Reporter | None = None,
) -> None:
    """Run the function behind *entry* for one request.

    A non-``None`` return value is sent as the response body unless the
    function already responded.  If the function neither responded nor
    returned anything, the response is ended with its current status.
    """
    reporter = reporter or Reporter(logger)
    reporter.verbose(f"Running {entry.route}")
    start = time.perf_counter()

    try:
        fn = await asyncio.to_thread(load_function, entry)
        try:
            result = await invoke(fn, request, response)
            if not response.headers_sent:
                await response.send(result)
            elif not response.finished:
                await response.end()
        except Exception as exc:
            raise ExecutionError(entry.original_source_path, exc) from exc
    except (LoadError, ExecutionError) as exc:
        cause = exc.__cause__ if isinstance(exc, ExecutionError) else exc
        reporter.error(f'Error in function "{entry.original_source_path}": {exc}', cause)
        # Only while nothing has been sent yet
        if not response.headers_sent:
            response.status(500).set_header("content-type", TEXT_HTML)
            await response.send(error_page(entry, exc))
        elif not response.finished:
            # A partly streamed body still needs its final message
            try:
                await response.end()
            except Exception as end_exc:
                reporter.verbose(f'Could not finish the response for "{entry.original_source_path}": {end_exc}')

    elapsed_ms = (time.perf_counter() - start) * 1000
    reporter.info(f'Executed function "{prefix}/{entry.route}" in {elapsed_ms:.0f}ms')

