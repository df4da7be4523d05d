"""Tests for warble.state and warble.build.manifest: publishing the route table."""

import json
from pathlib import Path

import pytest

from warble.build.manifest import read_manifest, write_manifest
from warble.functions.types import RouteEntry
from warble.state import FunctionsState


def _entry(route: str, match_pattern: str | None = None) -> RouteEntry:
    return RouteEntry(
        route=route,
        source_root="default-site-plugin",
        original_source_path=f"/site/src/api/{route}.py",
        original_relative_path=f"{route}.py",
        compiled_relative_path=f"{route}.py",
        compiled_absolute_path=f"/site/.cache/functions/{route}.py",
        match_pattern=match_pattern,
    )


class TestManifest:
    def test_write_then_read(self, tmp_path: Path) -> None:
        table = (_entry("hello"), _entry("users/[id]", "users/:id"))
        path = tmp_path / "functions" / "manifest.json"

        write_manifest(path, table)

        loaded = read_manifest(path)
        assert loaded == table
        assert loaded[1].matcher is not None
        assert loaded[1].matcher.match("users/3") == {"id": "3"}

    def test_json_layout(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.json"
        write_manifest(path, (_entry("hello"),))

        text = path.read_text()
        data = json.loads(text)
        assert data[0]["route"] == "hello"
        assert data[0]["match_pattern"] is None
        assert "matcher" not in data[0]
        assert text.startswith("[\n    {")

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        write_manifest(tmp_path / "manifest.json", (_entry("hello"),))
        assert [p.name for p in tmp_path.iterdir()] == ["manifest.json"]

    def test_missing_manifest(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_manifest(tmp_path / "manifest.json")


class TestFunctionsState:
    def test_empty_by_default(self) -> None:
        state = FunctionsState()
        assert state.functions == ()
        assert len(state) == 0
        assert state.version == 0

    def test_publish_replaces_table(self) -> None:
        state = FunctionsState()
        state.publish([_entry("a")])
        state.publish([_entry("b")])
        assert [e.route for e in state.functions] == ["b"]
        assert state.version == 2

    def test_snapshot_unaffected_by_publish(self) -> None:
        state = FunctionsState((_entry("a"),))
        snapshot = state.functions
        state.publish([_entry("b")])
        assert [e.route for e in snapshot] == ["a"]

    def test_published_table_is_a_tuple(self) -> None:
        entries = [_entry("a")]
        state = FunctionsState()
        state.publish(entries)
        entries.append(_entry("b"))
        assert isinstance(state.functions, tuple)
        assert len(state) == 1

    def test_from_manifest(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.json"
        write_manifest(path, (_entry("hello"),))
        assert [e.route for e in FunctionsState.from_manifest(path).functions] == ["hello"]
