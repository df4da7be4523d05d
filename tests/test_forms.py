"""Tests for warble.http.forms: URL-encoded and multipart bodies."""

import pytest

from warble.http.forms import FormData, UploadFile, parse_form_data

BOUNDARY = "----warble-boundary"


def _multipart(*parts: tuple[str, str | None, str | None, bytes]) -> bytes:
    """Encode ``(name, filename, content_type, data)`` parts."""
    chunks: list[bytes] = []
    for name, filename, content_type, data in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        head = f"--{BOUNDARY}\r\nContent-Disposition: {disposition}\r\n"
        if content_type is not None:
            head += f"Content-Type: {content_type}\r\n"
        chunks.append(head.encode() + b"\r\n" + data + b"\r\n")
    chunks.append(f"--{BOUNDARY}--\r\n".encode())
    return b"".join(chunks)


class TestUrlencoded:
    def test_fields(self) -> None:
        form = parse_form_data(b"a=1&b=x+y&a=2&empty=", "application/x-www-form-urlencoded")
        assert form["a"] == "1"
        assert form.get_list("a") == ["1", "2"]
        assert form["b"] == "x y"
        assert form["empty"] == ""
        assert form.files == ()

    def test_to_dict(self) -> None:
        form = parse_form_data(b"a=1&a=2&b=3", "application/x-www-form-urlencoded; charset=utf-8")
        assert form.to_dict() == {"a": ["1", "2"], "b": "3"}


class TestMultipart:
    def test_fields_and_files(self) -> None:
        body = _multipart(
            ("title", None, None, b"Report"),
            ("tag", None, None, b"a"),
            ("tag", None, None, b"b"),
            ("upload", "report.csv", "text/csv", b"x,y\n1,2\n"),
        )

        form = parse_form_data(body, f"multipart/form-data; boundary={BOUNDARY}")

        assert form["title"] == "Report"
        assert form.get_list("tag") == ["a", "b"]
        (upload,) = form.files
        assert upload == UploadFile(
            field_name="upload",
            filename="report.csv",
            content_type="text/csv",
            content=b"x,y\n1,2\n",
        )
        assert upload.size == 8
        assert "upload" not in form

    def test_file_default_content_type(self) -> None:
        body = _multipart(("blob", "blob.bin", None, b"\x00\x01"))
        form = parse_form_data(body, f"multipart/form-data; boundary={BOUNDARY}")
        assert form.files[0].content_type == "application/octet-stream"

    def test_missing_boundary(self) -> None:
        with pytest.raises(ValueError, match="boundary"):
            parse_form_data(b"", "multipart/form-data")


class TestFormData:
    def test_immutable(self) -> None:
        form = FormData([("a", "1")])
        with pytest.raises(AttributeError):
            form.files = ()  # type: ignore[misc]

    def test_unsupported_content_type(self) -> None:
        with pytest.raises(ValueError, match="Unsupported"):
            parse_form_data(b"{}", "application/json")
