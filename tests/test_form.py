"""
Tests for multipart form encoding.
"""

import os

import pytest

from http_handle.form import (
    DEFAULT_FILE_TYPE,
    FormData,
    FormFile,
    encode_multipart,
    form_data,
    form_file,
)


class TestFormFile:
    def test_type_inferred_from_extension(self, tmp_path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("hello")

        part = form_file(path)

        assert part.type == "text/plain"
        assert part.filename == "notes.txt"
        assert os.path.isabs(part.path)

    def test_explicit_type(self, tmp_path) -> None:
        path = tmp_path / "data.bin"
        path.write_bytes(b"\x00\x01")
        assert form_file(path, type="image/png").type == "image/png"

    def test_unknown_extension(self, tmp_path) -> None:
        path = tmp_path / "blob.zzzunknown"
        path.write_bytes(b"x")
        assert form_file(path).type == DEFAULT_FILE_TYPE

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            form_file(tmp_path / "missing.txt")


class TestFormData:
    def test_str_is_encoded(self) -> None:
        part = form_data("{}", "application/json")
        assert part == FormData(value=b"{}", type="application/json")


class TestEncodeMultipart:
    def test_text_field(self) -> None:
        chunks, content_type = encode_multipart({"name": "value"}, boundary="XYZ")

        assert content_type == "multipart/form-data; boundary=XYZ"
        assert b"".join(chunks) == (
            b"--XYZ\r\n"
            b'Content-Disposition: form-data; name="name"\r\n'
            b"\r\n"
            b"value\r\n"
            b"--XYZ--\r\n"
        )

    def test_file_and_data_parts(self, tmp_path) -> None:
        path = tmp_path / "upload.txt"
        path.write_bytes(b"file body")
        fields = {
            "upload": form_file(path),
            "meta": form_data(b'{"a": 1}', "application/json"),
        }

        body = b"".join(encode_multipart(fields, boundary="B")[0])

        assert (
            b'Content-Disposition: form-data; name="upload"; filename="upload.txt"\r\n'
            b"Content-Type: text/plain\r\n\r\nfile body\r\n"
        ) in body
        assert (
            b'Content-Disposition: form-data; name="meta"\r\n'
            b'Content-Type: application/json\r\n\r\n{"a": 1}\r\n'
        ) in body

    def test_quotes_in_names_are_escaped(self) -> None:
        body = b"".join(encode_multipart({'we"ird': b"x"}, boundary="B")[0])
        assert b'name="we\\"ird"' in body

    def test_random_boundary(self) -> None:
        _, first = encode_multipart({"a": "b"})
        _, second = encode_multipart({"a": "b"})
        assert first != second

    def test_invalid_value(self) -> None:
        with pytest.raises(TypeError, match="must be str, bytes"):
            encode_multipart({"n": 1})

    def test_form_file_is_frozen(self) -> None:
        part = FormFile(path="/tmp/x", type="text/plain")
        with pytest.raises(AttributeError):
            part.path = "/tmp/y"
