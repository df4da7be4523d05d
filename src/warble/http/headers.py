"""Request headers."""

from __future__ import annotations

from warble._internal.multimap import MultiDict


class Headers(MultiDict):
    """Case-insensitive request headers decoded from ASGI byte pairs.

    Keys are stored lower-cased::

        headers = Headers.from_raw([(b"Content-Type", b"text/plain")])
        headers["content-type"]  # "text/plain"
    """

    __slots__ = ()

    @staticmethod
    def _normalize(key: str) -> str:
        return key.lower()

    @classmethod
    def from_raw(cls, raw: list[tuple[bytes, bytes]] | tuple[tuple[bytes, bytes], ...]) -> Headers:
        return cls((name.decode("latin-1"), value.decode("latin-1")) for name, value in raw)
