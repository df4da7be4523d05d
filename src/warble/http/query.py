"""Query string parameters."""

from __future__ import annotations

from urllib.parse import parse_qsl

from warble._internal.multimap import MultiDict


class QueryParams(MultiDict):
    """Parsed query string.  Repeated keys keep every value."""

    __slots__ = ()

    @classmethod
    def from_query_string(cls, query_string: bytes | str) -> QueryParams:
        if isinstance(query_string, bytes):
            query_string = query_string.decode("latin-1")
        return cls(parse_qsl(query_string, keep_blank_values=True))
