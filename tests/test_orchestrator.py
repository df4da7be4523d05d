"""Tests for warble.build.orchestrator: one-shot builds and watch sessions."""

import logging
import threading
import time
from collections.abc import Callable, Mapping
from pathlib import Path

import pytest

from warble.build import orchestrator as orchestrator_module
from warble.build.compiler import CompileOptions, CompileResult, Diagnostic
from warble.build.manifest import read_manifest
from warble.build.orchestrator import BuildOrchestrator, BuildState, build_entry_map
from warble.config import FunctionsConfig
from warble.errors import CompileError, RestartError
from warble.functions.types import RouteEntry
from warble.state import FunctionsState

FUNCTION = "def default(request, response):\n    return 'ok'\n"


class FakeHandle:
    def __init__(self, compiler: "FakeCompiler", number: int) -> None:
        self.compiler = compiler
        self.number = number
        self.stopped = False

    def stop(self) -> None:
        self.compiler.events.append(f"stop {self.number}")
        self.stopped = True


class FakeCompiler:
    """Records calls; watch cycles are delivered by the test via ``emit``."""

    def __init__(self, result: CompileResult | None = None, fail_watch_after: int | None = None) -> None:
        self.result = result or CompileResult()
        self.fail_watch_after = fail_watch_after
        self.events: list[str] = []
        self.entries: list[dict[str, str]] = []
        self.options: list[CompileOptions] = []
        self.callbacks: list[Callable[[CompileResult], None]] = []
        self.handles: list[FakeHandle] = []

    def compile(self, entries: Mapping[str, str], options: CompileOptions) -> CompileResult:
        self.events.append("compile")
        self.entries.append(dict(entries))
        self.options.append(options)
        return self.result

    def watch(
        self,
        entries: Mapping[str, str],
        options: CompileOptions,
        on_result: Callable[[CompileResult], None],
    ) -> FakeHandle:
        if self.fail_watch_after is not None and len(self.handles) >= self.fail_watch_after:
            raise OSError("watch limit reached")
        handle = FakeHandle(self, len(self.handles) + 1)
        self.events.append(f"watch {handle.number}")
        self.entries.append(dict(entries))
        self.options.append(options)
        self.callbacks.append(on_result)
        self.handles.append(handle)
        return handle

    def emit(self, result: CompileResult | None = None) -> None:
        self.callbacks[-1](result or self.result)


@pytest.fixture
def functions_site(site: Path, write_file) -> Path:
    write_file(site, "src/api/hello.py", FUNCTION)
    write_file(site, "src/api/users/[id].py", FUNCTION)
    return site


class InertObserver:
    """Stands in for the watchdog observer so tests drive events by hand."""

    daemon = False

    def schedule(self, handler: object, path: str, recursive: bool = False) -> None:
        pass

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def join(self, timeout: float | None = None) -> None:
        pass


def _orchestrator(site: Path, compiler: FakeCompiler, **config) -> BuildOrchestrator:
    return BuildOrchestrator(
        FunctionsConfig(site_dir=site, **config),
        FunctionsState(),
        compiler=compiler,
        environ={"API_KEY": "k"},
    )


class TestBuildEntryMap:
    def test_keys_drop_extension(self) -> None:
        entry = RouteEntry(
            route="users/[id]",
            source_root="default-site-plugin",
            original_source_path="/site/src/api/users/[id].py",
            original_relative_path="users/[id].py",
            compiled_relative_path="users/[id].py",
            compiled_absolute_path="/site/.cache/functions/users/[id].py",
            match_pattern="users/:id",
        )
        assert build_entry_map((entry,)) == {"users/[id]": "/site/src/api/users/[id].py"}


class TestPrepare:
    def test_publishes_and_builds_options(self, functions_site: Path) -> None:
        orchestrator = _orchestrator(functions_site, FakeCompiler())

        plan = orchestrator.prepare()

        assert orchestrator.state.functions == plan.functions
        assert set(plan.entries) == {"hello", "users/[id]"}
        assert plan.options.output_dir == orchestrator.config.compiled_dir
        assert plan.options.output_dir.is_dir()
        assert plan.options.minify is False
        assert plan.options.source_map is True
        assert plan.options.stage == "functions-development"
        assert plan.options.defines["API_KEY"] == "k"
        assert plan.options.defines["WARBLE_ENV"] == "development"


class TestRunOnce:
    def test_success_writes_manifest(self, functions_site: Path) -> None:
        orchestrator = _orchestrator(functions_site, FakeCompiler(), production=True)

        orchestrator.run_once()

        manifest = read_manifest(orchestrator.config.manifest_path)
        assert {e.route for e in manifest} == {"hello", "users/[id]"}
        assert orchestrator.build_state is BuildState.IDLE
        assert orchestrator.compiler.options[0].source_map is False

    def test_errors_are_fatal(self, functions_site: Path) -> None:
        failing = CompileResult(errors=(Diagnostic("invalid syntax", file="hello.py", line=1),))
        orchestrator = _orchestrator(functions_site, FakeCompiler(failing), production=True)

        with pytest.raises(CompileError) as exc_info:
            orchestrator.run_once()

        assert exc_info.value.diagnostics == failing.errors
        assert orchestrator.build_state is BuildState.FATAL
        assert not orchestrator.config.manifest_path.exists()

    def test_compiles_with_real_compiler(self, functions_site: Path) -> None:
        orchestrator = BuildOrchestrator(FunctionsConfig(site_dir=functions_site, production=True), FunctionsState())

        result = orchestrator.run_once()

        assert result.ok
        compiled = orchestrator.config.compiled_dir
        assert (compiled / "hello.py").is_file()
        assert (compiled / "users" / "[id].py").is_file()


class TestWatchSession:
    @pytest.fixture(autouse=True)
    def _no_filesystem_events(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(orchestrator_module, "Observer", InertObserver)

    def test_first_cycle_is_silent(self, functions_site: Path, caplog: pytest.LogCaptureFixture) -> None:
        compiler = FakeCompiler()
        session = _orchestrator(functions_site, compiler).watch()
        try:
            assert session.state is BuildState.BUILDING
            with caplog.at_level(logging.INFO, logger="warble.build"):
                compiler.emit()
            assert session.state is BuildState.WATCHING
            assert "Re-building functions" not in caplog.text

            with caplog.at_level(logging.INFO, logger="warble.build"):
                compiler.emit()
            assert "success Re-building functions" in caplog.text
        finally:
            session.stop()

    def test_cycle_writes_manifest_and_calls_back(self, functions_site: Path) -> None:
        compiler = FakeCompiler()
        cycles: list[CompileResult] = []
        orchestrator = _orchestrator(functions_site, compiler)
        session = orchestrator.watch(cycles.append)
        try:
            compiler.emit()
        finally:
            session.stop()

        assert len(cycles) == 1
        assert orchestrator.config.manifest_path.is_file()

    def test_errors_are_advisory(self, functions_site: Path) -> None:
        compiler = FakeCompiler()
        orchestrator = _orchestrator(functions_site, compiler)
        session = orchestrator.watch()
        try:
            compiler.emit(CompileResult(errors=(Diagnostic("boom"),)))
            assert session.state is BuildState.WATCHING
            assert not orchestrator.config.manifest_path.exists()
        finally:
            session.stop()

    def test_content_edit_does_not_restart(self, functions_site: Path) -> None:
        compiler = FakeCompiler()
        session = _orchestrator(functions_site, compiler).watch()
        try:
            hello = functions_site.resolve() / "src/api/hello.py"
            assert session.handle_event("modified", str(hello)) is False
            # Editors that save by rename recreate the same file
            assert session.handle_event("created", str(hello)) is False
        finally:
            session.stop()
        assert compiler.events.count("watch 1") == 1
        assert "watch 2" not in compiler.events

    def test_added_function_restarts(self, functions_site: Path, write_file) -> None:
        compiler = FakeCompiler()
        orchestrator = _orchestrator(functions_site, compiler)
        session = orchestrator.watch()
        try:
            compiler.emit()
            version = orchestrator.state.version
            added = write_file(functions_site, "src/api/bye.py", FUNCTION)

            assert session.handle_event("created", str(added.resolve())) is True

            assert compiler.events[-2:] == ["stop 1", "watch 2"]
            assert "bye" in compiler.entries[-1]
            assert orchestrator.state.version > version
            assert "bye" in {e.route for e in orchestrator.state.functions}
            assert session.state is BuildState.WATCHING
        finally:
            session.stop()

    def test_removed_function_restarts(self, functions_site: Path) -> None:
        compiler = FakeCompiler()
        orchestrator = _orchestrator(functions_site, compiler)
        session = orchestrator.watch()
        try:
            hello = functions_site.resolve() / "src/api/hello.py"
            hello.unlink()

            assert session.handle_event("deleted", str(hello)) is True

            assert "hello" not in compiler.entries[-1]
            assert "hello" not in {e.route for e in orchestrator.state.functions}
        finally:
            session.stop()

    def test_env_file_restarts(self, functions_site: Path) -> None:
        compiler = FakeCompiler()
        session = _orchestrator(functions_site, compiler).watch()
        try:
            env_file = functions_site.resolve() / ".env.development"
            assert session.handle_event("modified", str(env_file)) is True
        finally:
            session.stop()
        assert "watch 2" in compiler.events

    def test_deleted_directory_restarts(self, functions_site: Path) -> None:
        compiler = FakeCompiler()
        session = _orchestrator(functions_site, compiler).watch()
        try:
            users = functions_site.resolve() / "src/api/users"
            assert session.handle_event("deleted", str(users), is_directory=True) is True
        finally:
            session.stop()

    @pytest.mark.parametrize(
        "relative",
        ["src/api/_helpers.py", "src/api/notes.txt", "README.md", "src/other/x.py"],
    )
    def test_irrelevant_files_ignored(self, functions_site: Path, relative: str) -> None:
        compiler = FakeCompiler()
        session = _orchestrator(functions_site, compiler).watch()
        try:
            path = functions_site.resolve() / relative
            assert session.handle_event("created", str(path)) is False
        finally:
            session.stop()
        assert "watch 2" not in compiler.events

    def test_restart_failure_is_fatal(self, functions_site: Path) -> None:
        compiler = FakeCompiler(fail_watch_after=1)
        fatal: list[RestartError] = []
        session = _orchestrator(functions_site, compiler).watch(on_fatal=fatal.append)

        new_file = functions_site.resolve() / "src/api/new.py"
        assert session.handle_event("created", str(new_file)) is False

        assert session.state is BuildState.FATAL
        assert isinstance(session.error, RestartError)
        assert fatal == [session.error]
        assert compiler.handles[0].stopped
        with pytest.raises(RestartError):
            session.wait(0)
        # A fatal session ignores further events
        assert session.handle_event("created", str(new_file)) is False

    def test_stop(self, functions_site: Path) -> None:
        compiler = FakeCompiler()
        session = _orchestrator(functions_site, compiler).watch()

        session.stop()

        assert session.state is BuildState.STOPPED
        assert compiler.handles[0].stopped
        assert session.wait(0) is True
        assert session.restart() is None
        assert "watch 2" not in compiler.events

    def test_context_manager_stops(self, functions_site: Path) -> None:
        compiler = FakeCompiler()
        with _orchestrator(functions_site, compiler).watch() as session:
            pass
        assert session.state is BuildState.STOPPED


class TestWatchSessionFilesystem:
    def test_new_file_on_disk_triggers_restart(self, functions_site: Path, write_file) -> None:
        orchestrator = BuildOrchestrator(FunctionsConfig(site_dir=functions_site), FunctionsState())
        first_cycle = threading.Event()
        session = orchestrator.watch(lambda result: first_cycle.set())
        try:
            assert first_cycle.wait(5)
            write_file(functions_site, "src/api/added.py", FUNCTION)

            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                if "added" in {e.route for e in orchestrator.state.functions}:
                    break
                time.sleep(0.05)

            assert "added" in {e.route for e in orchestrator.state.functions}
        finally:
            session.stop()
        assert session.state is BuildState.STOPPED
