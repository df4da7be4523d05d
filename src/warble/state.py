"""Shared route-table state.

The build orchestrator is the only writer; the request middleware only
reads.  A publish swaps the whole table reference under a lock, so a
reader that takes one snapshot per request never sees a half-built
table.

Thread safety:
    ``publish()`` runs on watcher threads while requests read on the
    event loop.  Tables are immutable tuples and the reference swap is
    guarded by a ``threading.Lock``.
"""

from __future__ import annotations

import threading
from pathlib import Path

from warble.build.manifest import read_manifest
from warble.functions.types import RouteEntry, RouteTable


class FunctionsState:
    """An atomically swappable reference to the current route table."""

    __slots__ = ("_functions", "_lock", "_version")

    def __init__(self, functions: RouteTable = ()) -> None:
        self._lock = threading.Lock()
        self._functions: RouteTable = tuple(functions)
        self._version = 0

    @classmethod
    def from_manifest(cls, path: str | Path) -> FunctionsState:
        """Load the table persisted by the last successful build."""
        return cls(read_manifest(path))

    @property
    def functions(self) -> RouteTable:
        """The current table.  Take it once per request."""
        with self._lock:
            return self._functions

    @property
    def version(self) -> int:
        """Incremented on every publish."""
        with self._lock:
            return self._version

    def publish(self, functions: tuple[RouteEntry, ...] | list[RouteEntry]) -> None:
        """Replace the current table with *functions*."""
        table = tuple(functions)
        with self._lock:
            self._functions = table
            self._version += 1

    def __len__(self) -> int:
        return len(self.functions)
