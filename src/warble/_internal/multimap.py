"""Read-only multi-valued string mapping.

Base for ``Headers``, ``QueryParams`` and ``FormData``: ``m[key]``
returns the first value, ``m.get_list(key)`` returns all of them.
"""

from collections.abc import Iterable, Iterator, Mapping


class MultiDict(Mapping[str, str]):
    """Immutable ``Mapping[str, str]`` where a key can hold several values.

    Subclasses may override ``_normalize`` to fold keys (headers are
    case-insensitive).
    """

    __slots__ = ("_data",)

    def __init__(self, items: Iterable[tuple[str, str]] = ()) -> None:
        data: dict[str, list[str]] = {}
        for key, value in items:
            data.setdefault(self._normalize(key), []).append(value)
        object.__setattr__(self, "_data", data)

    @staticmethod
    def _normalize(key: str) -> str:
        return key

    def __setattr__(self, name: str, value: object) -> None:
        msg = f"{type(self).__name__} is immutable"
        raise AttributeError(msg)

    def __getitem__(self, key: str) -> str:
        return self._data[self._normalize(key)][0]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._normalize(key) in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {v!r}" for k, v in self.multi_items())
        return f"{type(self).__name__}([{items}])"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        values = self._data.get(self._normalize(key))
        return values[0] if values else default

    def get_list(self, key: str) -> list[str]:
        """Return every value for *key*, in arrival order."""
        return list(self._data.get(self._normalize(key), ()))

    def multi_items(self) -> list[tuple[str, str]]:
        return [(key, value) for key, values in self._data.items() for value in values]

    def to_dict(self) -> dict[str, str | list[str]]:
        """Plain dict: single values unwrapped, repeated keys as lists."""
        return {key: values[0] if len(values) == 1 else list(values) for key, values in self._data.items()}
