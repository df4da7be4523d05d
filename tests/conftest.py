"""Shared fixtures: throwaway site trees."""

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

type WriteFile = Callable[..., Path]


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """An empty site directory with a ``src/api`` functions folder."""
    root = tmp_path / "site"
    (root / "src" / "api").mkdir(parents=True)
    return root


@pytest.fixture
def write_file() -> WriteFile:
    """Write dedented *content* to ``root / relative``, creating parents."""

    def write(root: Path, relative: str, content: str = "") -> Path:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content), encoding="utf-8")
        return path

    return write
