"""Function manifest: the route table persisted for out-of-process servers.

``warble serve`` reads it to route requests without discovering or
compiling anything.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from warble.functions.types import RouteEntry, RouteTable


def write_manifest(path: str | Path, functions: RouteTable) -> None:
    """Serialize *functions* to *path* as a JSON array.

    The file is replaced atomically so a concurrent reader sees either
    the previous manifest or the new one.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps([entry.to_dict() for entry in functions], indent=4)

    fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=".manifest-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.replace(tmp, target)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def read_manifest(path: str | Path) -> RouteTable:
    """Load a manifest written by :func:`write_manifest`.

    Raises ``FileNotFoundError`` if no build has written one yet.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return tuple(RouteEntry.from_dict(item) for item in raw)
