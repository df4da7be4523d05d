"""Build orchestration: one-shot builds and watch sessions.

The orchestrator turns the discovered route table into compiler entries,
drives the compiler, persists the manifest and publishes each new table
to the shared ``FunctionsState``.

State machine::

    IDLE -> BUILDING (first build) -> WATCHING <-> RESTARTING
                |                         |
                +-> FATAL (one-shot)      +-> FATAL (restart failed)

A one-shot build that reports errors ends in ``FATAL`` and raises
``CompileError``.  In a watch session compile errors are only reported:
the previous artifacts keep serving until a later cycle succeeds.

Restarts are for structural changes only: a function file created,
deleted or moved, or an env file touched.  Editing an existing function
is left to the compiler's own watch, which recompiles it in place.
"""

from __future__ import annotations

import fnmatch
import functools
import logging
import os
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from warble.build.compiler import CompileOptions, CompileResult, Compiler, PythonCompiler, WatchHandle
from warble.build.env import load_build_env
from warble.build.manifest import write_manifest
from warble.config import FunctionsConfig
from warble.errors import CompileError, RestartError
from warble.functions.discovery import create_source_roots, discover_functions
from warble.functions.types import RouteTable, SourceRoot
from warble.reporter import Reporter
from warble.state import FunctionsState

logger = logging.getLogger("warble.build")

ENV_FILE_PATTERN = ".env*"


class BuildState(Enum):
    IDLE = "idle"
    BUILDING = "building"
    WATCHING = "watching"
    RESTARTING = "restarting"
    STOPPED = "stopped"
    FATAL = "fatal"


def build_entry_map(functions: RouteTable) -> dict[str, str]:
    """Map each function's relative path without extension to its source.

    Example::

        {"users/[id]": "/site/src/api/users/[id].py"}
    """
    entries: dict[str, str] = {}
    for entry in functions:
        name = PurePosixPath(entry.original_relative_path).with_suffix("").as_posix()
        entries[name] = entry.original_source_path
    return entries


@dataclass(frozen=True, slots=True)
class BuildPlan:
    """Everything one build cycle needs: the table and its compiler input."""

    functions: RouteTable
    entries: dict[str, str]
    options: CompileOptions


class BuildOrchestrator:
    """Drive discovery, compilation and manifest persistence.

    Usage::

        state = FunctionsState()
        orchestrator = BuildOrchestrator(FunctionsConfig(site_dir="site"), state)
        orchestrator.run_once()
    """

    __slots__ = ("_build_state", "_environ", "compiler", "config", "reporter", "state")

    def __init__(
        self,
        config: FunctionsConfig,
        state: FunctionsState,
        *,
        compiler: Compiler | None = None,
        reporter: Reporter | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self.state = state
        self.compiler: Compiler = compiler or PythonCompiler()
        self.reporter = reporter or Reporter(logging.getLogger("warble.build"))
        self._environ = environ
        self._build_state = BuildState.IDLE

    @property
    def build_state(self) -> BuildState:
        return self._build_state

    def source_roots(self) -> list[SourceRoot]:
        return create_source_roots(self.config)

    def prepare(self) -> BuildPlan:
        """Discover functions, publish them and derive the compiler input."""
        self.config.compiled_dir.mkdir(parents=True, exist_ok=True)

        functions = discover_functions(
            self.source_roots(),
            self.config.compiled_dir,
            reporter=self.reporter,
        )
        self.state.publish(functions)
        self.reporter.verbose(f"Discovered {len(functions)} function(s)")

        defines = load_build_env(
            self.config.site_path,
            production=self.config.production,
            public_dir=self.config.public_dir,
            environ=self._environ,
            reporter=self.reporter,
        )
        options = CompileOptions(
            output_dir=self.config.compiled_dir,
            target=self.config.target,
            source_map=self.config.emit_source_maps,
            # Server-side functions are never minified
            minify=False,
            defines=defines,
            cache_dir=self.config.compiler_cache_dir,
            stage=self.config.stage,
        )
        return BuildPlan(functions=functions, entries=build_entry_map(functions), options=options)

    def run_once(self) -> CompileResult:
        """Compile every function once and persist the manifest.

        Raises:
            CompileError: If the compiler reported any error.
        """
        self._build_state = BuildState.BUILDING
        with self.reporter.activity("Compiling functions"):
            plan = self.prepare()
            result = self.compiler.compile(plan.entries, plan.options)

        self.reporter.diagnostics(warnings=result.warnings)
        if not result.ok:
            self.reporter.diagnostics(errors=result.errors)
            self._build_state = BuildState.FATAL
            raise CompileError(result.errors)

        write_manifest(self.config.manifest_path, plan.functions)
        self._build_state = BuildState.IDLE
        return result

    def watch(
        self,
        on_cycle: Callable[[CompileResult], None] | None = None,
        *,
        on_fatal: Callable[[RestartError], None] | None = None,
    ) -> WatchSession:
        """Start a watch session (development mode)."""
        session = WatchSession(self, on_cycle=on_cycle, on_fatal=on_fatal)
        session.start()
        return session


class _StructureChangeHandler(FileSystemEventHandler):
    """Forward filesystem events to the watch session."""

    def __init__(self, session: WatchSession) -> None:
        self.session = session

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in ("created", "deleted", "modified", "moved"):
            return
        src = os.fsdecode(event.src_path)
        # A move is a delete of the old path plus a create of the new one
        if event.event_type == "moved":
            changes = [("deleted", src), ("created", os.fsdecode(event.dest_path))]
        else:
            changes = [(event.event_type, src)]
        for event_type, path in changes:
            if self.session.handle_event(event_type, path, is_directory=event.is_directory):
                return


class WatchSession:
    """A development-mode build: compiler watch plus restart-on-structure-change.

    Thread safety:
        Compiler results arrive on the compiler's threads and file events
        on the observer thread.  State transitions are guarded by a lock,
        and restarts are serialized so the previous compiler watch is
        fully stopped before the next one starts.
    """

    __slots__ = (
        "_error",
        "_handle",
        "_observer",
        "_on_cycle",
        "_on_fatal",
        "_orchestrator",
        "_plan",
        "_restart_lock",
        "_roots",
        "_state",
        "_state_lock",
        "_stopped",
    )

    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        *,
        on_cycle: Callable[[CompileResult], None] | None = None,
        on_fatal: Callable[[RestartError], None] | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._on_cycle = on_cycle
        self._on_fatal = on_fatal
        self._state = BuildState.IDLE
        self._state_lock = threading.Lock()
        self._restart_lock = threading.Lock()
        self._handle: WatchHandle | None = None
        self._plan: BuildPlan | None = None
        self._observer: Observer | None = None
        self._roots: list[SourceRoot] = []
        self._stopped = threading.Event()
        self._error: RestartError | None = None

    # -- Introspection --

    @property
    def state(self) -> BuildState:
        with self._state_lock:
            return self._state

    @property
    def error(self) -> RestartError | None:
        return self._error

    @property
    def functions(self) -> RouteTable:
        return self._plan.functions if self._plan is not None else ()

    # -- Lifecycle --

    def start(self) -> None:
        """Run the first build under the compiler's watch and subscribe to file events."""
        with self._state_lock:
            if self._state is not BuildState.IDLE:
                msg = f"Cannot start a watch session in state {self._state.value!r}"
                raise RuntimeError(msg)
            self._state = BuildState.BUILDING

        self._start_handle()
        self._roots = self._orchestrator.source_roots()
        self._observer = self._subscribe()

    def restart(self) -> None:
        """Stop the compiler watch, rediscover, publish, and watch again.

        Raises:
            RestartError: If stopping or starting the compiler watch failed.
                The session is then ``FATAL`` and stopped.
        """
        with self._restart_lock:
            with self._state_lock:
                if self._state in (BuildState.STOPPED, BuildState.FATAL):
                    return
                self._state = BuildState.RESTARTING

            try:
                if self._handle is not None:
                    self._handle.stop()
                    self._handle = None
                self._start_handle()
                self._roots = self._orchestrator.source_roots()
            except Exception as exc:
                error = RestartError(f"Failed to restart the function watcher: {exc}")
                error.__cause__ = exc
                self._fail(error)
                raise error from exc

            with self._state_lock:
                if self._state is BuildState.RESTARTING:
                    self._state = BuildState.WATCHING

    def stop(self) -> None:
        """Stop the subscription and the compiler watch."""
        with self._state_lock:
            if self._state is BuildState.STOPPED:
                return
            if self._state is not BuildState.FATAL:
                self._state = BuildState.STOPPED
        self._teardown()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the session stops.

        Returns ``False`` on timeout.  Re-raises the ``RestartError``
        that ended the session, if any.
        """
        stopped = self._stopped.wait(timeout)
        if self._error is not None:
            raise self._error
        return stopped

    def __enter__(self) -> WatchSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()

    # -- Compiler results --

    def _start_handle(self) -> None:
        plan = self._orchestrator.prepare()
        self._plan = plan
        self._handle = self._orchestrator.compiler.watch(
            plan.entries,
            plan.options,
            functools.partial(self._on_result, plan),
        )

    def _on_result(self, plan: BuildPlan, result: CompileResult) -> None:
        reporter = self._orchestrator.reporter
        reporter.diagnostics(warnings=result.warnings)
        if result.ok:
            write_manifest(self._orchestrator.config.manifest_path, plan.functions)
        else:
            reporter.diagnostics(errors=result.errors)

        with self._state_lock:
            first_build = self._state is BuildState.BUILDING
            if first_build:
                self._state = BuildState.WATCHING
        if not first_build:
            reporter.success("Re-building functions")

        if self._on_cycle is not None:
            self._on_cycle(result)

    # -- File events --

    def handle_event(self, event_type: str, path: str, *, is_directory: bool = False) -> bool:
        """Decide whether a file event restarts the session.

        Returns ``True`` if a restart was performed.
        """
        if self.state in (BuildState.STOPPED, BuildState.FATAL):
            return False
        if not self._is_structural(event_type, path, is_directory):
            return False

        self._orchestrator.reporter.info(f'Restarting function watcher due to change to "{path}"')
        try:
            self.restart()
        except RestartError:
            # Already reported and escalated by _fail()
            return False
        return True

    def _is_structural(self, event_type: str, path: str, is_directory: bool) -> bool:
        target = Path(path)
        if self._is_env_file(target):
            return True
        if event_type == "modified" and self._in_functions_tree(target):
            return False
        if is_directory:
            return event_type == "deleted" and self._in_functions_tree(target)
        if not any(root.matches(target) for root in self._roots):
            return False
        # Editors that save by rename recreate a file the table already has
        return not (event_type == "created" and path in self._known_sources())

    def _known_sources(self) -> set[str]:
        return {entry.original_source_path for entry in self.functions}

    def _is_env_file(self, path: Path) -> bool:
        site = self._orchestrator.config.site_path
        return path.parent == site and fnmatch.fnmatch(path.name, ENV_FILE_PATTERN)

    def _in_functions_tree(self, path: Path) -> bool:
        return any(path.is_relative_to(root.base_dir) for root in self._roots)

    def _subscribe(self) -> Observer:
        """Watch every source root and the site's env files."""
        site = self._orchestrator.config.site_path
        recursive: set[Path] = set()
        for root in self._roots:
            recursive.add(_nearest_existing(root.watch_dir))

        # Nested watches would deliver the same event twice
        recursive = {d for d in recursive if not any(d != o and d.is_relative_to(o) for o in recursive)}

        observer = Observer()
        handler = _StructureChangeHandler(self)
        for directory in sorted(recursive):
            observer.schedule(handler, str(directory), recursive=True)
        if site.is_dir() and not any(site.is_relative_to(d) for d in recursive):
            observer.schedule(handler, str(site), recursive=False)
        observer.daemon = True
        observer.start()
        return observer

    # -- Failure / teardown --

    def _fail(self, error: RestartError) -> None:
        with self._state_lock:
            self._state = BuildState.FATAL
        self._error = error
        self._orchestrator.reporter.panic(str(error), error.__cause__)
        self._teardown()
        if self._on_fatal is not None:
            self._on_fatal(error)

    def _teardown(self) -> None:
        observer = self._observer
        if observer is not None:
            observer.stop()
            if threading.current_thread() is not observer:
                observer.join()
            self._observer = None
        handle = self._handle
        if handle is not None:
            self._handle = None
            handle.stop()
        self._stopped.set()


def _nearest_existing(directory: Path) -> Path:
    """*directory*, or its closest ancestor that exists."""
    current = directory
    while not current.exists() and current.parent != current:
        current = current.parent
    return current
