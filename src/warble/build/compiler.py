"""Compiler contract and the default Python compiler.

The build orchestrator only depends on the ``Compiler`` protocol::

    compile(entries, options) -> CompileResult
    watch(entries, options, on_result) -> WatchHandle   # handle.stop()

``entries`` maps an output name (the function's relative path without
extension, e.g. ``"users/[id]"``) to the absolute source path.

``PythonCompiler`` is the implementation warble ships with.  For each
entry it:

- parses the source for the configured target version
- substitutes build-time constants: ``os.environ["KEY"]``,
  ``os.environ.get("KEY", default)`` and ``os.getenv("KEY", default)``
  become the literal value when ``KEY`` is defined
- strips docstrings when minifying
- byte-compiles the result so syntax errors and warnings surface as
  diagnostics
- writes ``<output_dir>/<name>.py`` atomically, plus ``<name>.py.map``
  when source maps are enabled

Unchanged entries are skipped using a per-stage fingerprint cache.
"""

from __future__ import annotations

import ast
import hashlib
import json
import logging
import os
import tempfile
import threading
import time
import warnings
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger("warble.build")

# Seconds to coalesce bursts of file events into one recompile
DEBOUNCE_SECONDS = 0.05


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A compiler error or warning."""

    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None
    severity: str = "error"

    def format(self) -> str:
        location = self.file or "<unknown>"
        if self.line is not None:
            location = f"{location}:{self.line}"
            if self.column is not None:
                location = f"{location}:{self.column}"
        return f"{location}: {self.severity}: {self.message}"


@dataclass(frozen=True, slots=True)
class CompileResult:
    """Outcome of one compile pass.

    Attributes:
        errors: Error diagnostics.  Any error makes the pass fail.
        warnings: Warning diagnostics.
        emitted: Absolute paths of the artifacts written.
        skipped: Entry names reused from the cache.
        duration: Wall-clock seconds.
    """

    errors: tuple[Diagnostic, ...] = ()
    warnings: tuple[Diagnostic, ...] = ()
    emitted: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class CompileOptions:
    """Options for a compile pass.

    Attributes:
        output_dir: Directory artifacts are written to.
        target: Interpreter version sources are parsed for (``"3.13"``).
        source_map: Write a ``.map`` file next to each artifact.
        minify: Strip docstrings.
        defines: Build-time constants substituted into sources.
        cache_dir: Where the fingerprint cache lives (``None`` disables it).
        stage: Cache namespace, e.g. ``"functions-development"``.
    """

    output_dir: Path
    target: str = "3.13"
    source_map: bool = False
    minify: bool = False
    defines: Mapping[str, str] = field(default_factory=dict)
    cache_dir: Path | None = None
    stage: str = "functions-development"

    @property
    def feature_version(self) -> tuple[int, int]:
        major, _, minor = self.target.partition(".")
        return int(major), int(minor or 0)

    @property
    def cache_key(self) -> str:
        """Digest of everything besides the source that shapes an artifact."""
        settings = {
            "defines": dict(self.defines),
            "minify": self.minify,
            "source_map": self.source_map,
            "target": self.target,
        }
        payload = json.dumps(settings, sort_keys=True).encode("utf-8")
        return hashlib.sha256(payload).hexdigest()


class WatchHandle(Protocol):
    """A running compiler watch."""

    def stop(self) -> None:
        """Stop watching.  Returns once no compile is in flight."""
        ...


class Compiler(Protocol):
    """What the build orchestrator needs from a compiler."""

    def compile(self, entries: Mapping[str, str], options: CompileOptions) -> CompileResult: ...

    def watch(
        self,
        entries: Mapping[str, str],
        options: CompileOptions,
        on_result: Callable[[CompileResult], None],
    ) -> WatchHandle: ...


# -- Source transforms --


def _is_os_attr(node: ast.expr, attr: str) -> bool:
    return (
        isinstance(node, ast.Attribute)
        and node.attr == attr
        and isinstance(node.value, ast.Name)
        and node.value.id == "os"
    )


def _constant_key(node: ast.expr) -> str | None:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value
    return None


class DefineTransformer(ast.NodeTransformer):
    """Replace reads of defined environment variables with literals."""

    def __init__(self, defines: Mapping[str, str]) -> None:
        self.defines = defines

    def visit_Subscript(self, node: ast.Subscript) -> ast.AST:
        self.generic_visit(node)
        if isinstance(node.ctx, ast.Load) and _is_os_attr(node.value, "environ"):
            key = _constant_key(node.slice)
            if key is not None and key in self.defines:
                return ast.copy_location(ast.Constant(self.defines[key]), node)
        return node

    def visit_Call(self, node: ast.Call) -> ast.AST:
        self.generic_visit(node)
        func = node.func
        is_environ_get = (
            isinstance(func, ast.Attribute)
            and func.attr == "get"
            and _is_os_attr(func.value, "environ")
        )
        if (is_environ_get or _is_os_attr(func, "getenv")) and node.args and not node.keywords:
            key = _constant_key(node.args[0])
            if key is not None and key in self.defines:
                return ast.copy_location(ast.Constant(self.defines[key]), node)
        return node


def strip_docstrings(tree: ast.Module) -> ast.Module:
    """Remove module, class and function docstrings in place."""
    for node in ast.walk(tree):
        if not isinstance(node, ast.Module | ast.ClassDef | ast.FunctionDef | ast.AsyncFunctionDef):
            continue
        body = node.body
        if body and isinstance(body[0], ast.Expr) and _constant_key(body[0].value) is not None:
            body.pop(0)
            if not body:
                body.append(ast.Pass())
    return tree


def _write_atomic(path: Path, text: str) -> None:
    """Write *text* to *path* via a temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def _fingerprint(source: Path) -> dict[str, Any]:
    stat = source.stat()
    return {"source": str(source), "mtime_ns": stat.st_mtime_ns, "size": stat.st_size}


# -- Compiler --


class PythonCompiler:
    """Compile Python function modules into the output directory."""

    __slots__ = ("_cache_lock",)

    def __init__(self) -> None:
        self._cache_lock = threading.Lock()

    def compile(self, entries: Mapping[str, str], options: CompileOptions) -> CompileResult:
        start = time.perf_counter()
        errors: list[Diagnostic] = []
        warns: list[Diagnostic] = []
        emitted: list[str] = []
        skipped: list[str] = []

        with self._cache_lock:
            cache = self._load_cache(options)
            fresh: dict[str, Any] = {}

            for name, source in entries.items():
                source_path = Path(source)
                output = options.output_dir / f"{name}.py"
                try:
                    fingerprint = _fingerprint(source_path)
                except OSError as exc:
                    errors.append(Diagnostic(f"Cannot read source: {exc}", file=source))
                    continue

                if cache.get(name) == fingerprint and output.is_file():
                    skipped.append(name)
                    fresh[name] = fingerprint
                    continue

                entry_errors, entry_warnings = self._compile_entry(source_path, output, options)
                errors.extend(entry_errors)
                warns.extend(entry_warnings)
                if entry_errors:
                    cache.pop(name, None)
                else:
                    emitted.append(str(output))
                    fresh[name] = fingerprint

            self._save_cache(options, {**cache, **fresh})

        result = CompileResult(
            errors=tuple(errors),
            warnings=tuple(warns),
            emitted=tuple(emitted),
            skipped=tuple(skipped),
            duration=time.perf_counter() - start,
        )
        logger.debug(
            "Compiled %d function(s), %d cached, %d error(s) in %.3fs",
            len(emitted),
            len(skipped),
            len(errors),
            result.duration,
        )
        return result

    def watch(
        self,
        entries: Mapping[str, str],
        options: CompileOptions,
        on_result: Callable[[CompileResult], None],
    ) -> PythonWatchHandle:
        return PythonWatchHandle(self, entries, options, on_result)

    def _compile_entry(
        self,
        source: Path,
        output: Path,
        options: CompileOptions,
    ) -> tuple[list[Diagnostic], list[Diagnostic]]:
        filename = str(source)
        try:
            text = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return [Diagnostic(f"Cannot read source: {exc}", file=filename)], []

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                tree = ast.parse(text, filename=filename, feature_version=options.feature_version)
                tree = DefineTransformer(options.defines).visit(tree)
                if options.minify:
                    tree = strip_docstrings(tree)
                ast.fix_missing_locations(tree)
                compile(tree, filename, "exec", dont_inherit=True)
            except SyntaxError as exc:
                diagnostic = Diagnostic(
                    exc.msg,
                    file=exc.filename or filename,
                    line=exc.lineno,
                    column=exc.offset,
                )
                return [diagnostic], []

        found_warnings = [
            Diagnostic(
                str(w.message),
                file=str(w.filename),
                line=w.lineno,
                severity="warning",
            )
            for w in caught
            if issubclass(w.category, SyntaxWarning | DeprecationWarning)
        ]

        _write_atomic(output, f"# Compiled by warble from {filename}\n{ast.unparse(tree)}\n")
        if options.source_map:
            source_map = {"version": 1, "file": output.name, "sources": [filename]}
            _write_atomic(output.with_name(output.name + ".map"), json.dumps(source_map))
        return [], found_warnings

    def _cache_file(self, options: CompileOptions) -> Path | None:
        if options.cache_dir is None:
            return None
        return options.cache_dir / f"stage-{options.stage}.json"

    def _load_cache(self, options: CompileOptions) -> dict[str, Any]:
        path = self._cache_file(options)
        if path is None or not path.is_file():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        if data.get("key") != options.cache_key:
            return {}
        return data.get("entries", {})

    def _save_cache(self, options: CompileOptions, entries: dict[str, Any]) -> None:
        path = self._cache_file(options)
        if path is None:
            return
        payload = {"key": options.cache_key, "entries": entries}
        _write_atomic(path, json.dumps(payload, indent=2))


class _SourceChangeHandler(FileSystemEventHandler):
    """Forward edits of entry sources to the watch handle."""

    def __init__(self, handle: PythonWatchHandle) -> None:
        self.handle = handle

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in ("modified", "created", "moved"):
            return
        paths = [os.fsdecode(event.src_path)]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(os.fsdecode(dest))
        self.handle.sources_changed(paths)


class PythonWatchHandle:
    """Compile everything once, then recompile entries as their sources change.

    Thread safety:
        Compiles run on a background thread and are serialized by a lock.
        ``stop()`` stops the observer, cancels any pending recompile and
        waits for an in-flight compile before returning, so a new handle
        never races this one on the output directory.
    """

    __slots__ = (
        "_compile_lock",
        "_compiler",
        "_entries",
        "_initial",
        "_observer",
        "_on_result",
        "_options",
        "_pending",
        "_pending_lock",
        "_sources",
        "_stopped",
        "_timer",
    )

    def __init__(
        self,
        compiler: PythonCompiler,
        entries: Mapping[str, str],
        options: CompileOptions,
        on_result: Callable[[CompileResult], None],
    ) -> None:
        self._compiler = compiler
        self._entries = dict(entries)
        self._options = options
        self._on_result = on_result
        self._sources = {str(Path(src).resolve()): name for name, src in self._entries.items()}
        self._compile_lock = threading.RLock()
        self._pending_lock = threading.Lock()
        self._pending: set[str] = set()
        self._timer: threading.Timer | None = None
        self._stopped = threading.Event()

        self._observer = Observer()
        handler = _SourceChangeHandler(self)
        for directory in sorted({str(Path(src).parent) for src in self._sources}):
            if Path(directory).is_dir():
                self._observer.schedule(handler, directory, recursive=False)
        self._observer.daemon = True
        self._observer.start()

        self._initial = threading.Thread(
            target=self._compile,
            args=(self._entries,),
            name="warble-compile",
            daemon=True,
        )
        self._initial.start()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def sources_changed(self, paths: list[str]) -> None:
        """Queue the entries whose sources are among *paths*."""
        names = {self._sources[p] for p in (str(Path(p).resolve()) for p in paths) if p in self._sources}
        if not names or self._stopped.is_set():
            return
        with self._pending_lock:
            self._pending.update(names)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(DEBOUNCE_SECONDS, self._flush)
            self._timer.daemon = True
            self._timer.start()

    def _flush(self) -> None:
        with self._pending_lock:
            names = self._pending
            self._pending = set()
            self._timer = None
        if names:
            self._compile({name: self._entries[name] for name in sorted(names)})

    def _compile(self, entries: Mapping[str, str]) -> None:
        with self._compile_lock:
            if self._stopped.is_set():
                return
            try:
                result = self._compiler.compile(entries, self._options)
            except Exception as exc:
                logger.exception("Function compiler crashed")
                result = CompileResult(errors=(Diagnostic(f"Compiler crashed: {exc}"),))
            if not self._stopped.is_set():
                self._on_result(result)

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        with self._pending_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending.clear()
        self._observer.stop()
        if threading.current_thread() is not self._observer:
            self._observer.join()
        if threading.current_thread() is not self._initial:
            self._initial.join()
        # Wait out a recompile that started before stop()
        with self._compile_lock:
            pass
