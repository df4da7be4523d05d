"""Form body parsing: URL-encoded and ``multipart/form-data``.

URL-encoded bodies use ``urllib.parse``; multipart bodies are fed to
``python-multipart``'s streaming parser.  Uploaded files are kept in
memory and exposed separately from the plain fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from urllib.parse import parse_qsl

from python_multipart import MultipartParser
from python_multipart.multipart import parse_options_header

from warble._internal.multimap import MultiDict

URLENCODED = "application/x-www-form-urlencoded"
MULTIPART = "multipart/form-data"


@dataclass(frozen=True, slots=True)
class UploadFile:
    """A file part of a multipart body."""

    field_name: str
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    def save(self, path: str | Path) -> None:
        Path(path).write_bytes(self.content)

    def __repr__(self) -> str:
        return f"UploadFile({self.filename!r}, {self.content_type!r}, {self.size} bytes)"


class FormData(MultiDict):
    """Parsed form fields.  Uploaded files are in ``files``.

    Usage::

        name = request.body["name"]
        tags = request.body.get_list("tag")
    """

    __slots__ = ("files",)

    def __init__(
        self,
        items: list[tuple[str, str]] | tuple[tuple[str, str], ...] = (),
        files: tuple[UploadFile, ...] = (),
    ) -> None:
        super().__init__(items)
        object.__setattr__(self, "files", files)


def is_form_content_type(media_type: str) -> bool:
    return media_type in (URLENCODED, MULTIPART)


def parse_form_data(body: bytes, content_type: str) -> FormData:
    """Parse a form body according to its ``Content-Type`` header.

    Raises:
        ValueError: Unsupported content type or malformed multipart body.
    """
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type == URLENCODED:
        return FormData(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
    if media_type == MULTIPART:
        return _parse_multipart(body, content_type)
    msg = f"Unsupported form content type: {content_type!r}"
    raise ValueError(msg)


class _PartCollector:
    """python-multipart callbacks accumulating one part at a time."""

    def __init__(self) -> None:
        self.fields: list[tuple[str, str]] = []
        self.files: list[UploadFile] = []
        self._headers: dict[str, str] = {}
        self._header_name = bytearray()
        self._header_value = bytearray()
        self._data = bytearray()

    def callbacks(self) -> dict[str, object]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}
        self._data = bytearray()

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name.extend(data[start:end])

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def on_header_end(self) -> None:
        name = self._header_name.decode("latin-1").lower()
        self._headers[name] = self._header_value.decode("latin-1")
        self._header_name.clear()
        self._header_value.clear()

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._data.extend(data[start:end])

    def on_part_end(self) -> None:
        _, params = parse_options_header(self._headers.get("content-disposition", ""))
        name = params.get(b"name")
        if name is None:
            return
        field_name = name.decode("utf-8")
        filename = params.get(b"filename")
        if filename is None:
            self.fields.append((field_name, self._data.decode("utf-8", errors="replace")))
            return
        self.files.append(
            UploadFile(
                field_name=field_name,
                filename=filename.decode("utf-8"),
                content_type=self._headers.get("content-type", "application/octet-stream"),
                content=bytes(self._data),
            )
        )


def _parse_multipart(body: bytes, content_type: str) -> FormData:
    _, options = parse_options_header(content_type)
    boundary = options.get(b"boundary")
    if not boundary:
        msg = "Multipart body is missing its boundary parameter"
        raise ValueError(msg)

    collector = _PartCollector()
    parser = MultipartParser(boundary, collector.callbacks())
    parser.write(body)
    parser.finalize()
    return FormData(collector.fields, tuple(collector.files))
