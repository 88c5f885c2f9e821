"""
Multipart form bodies.

``handle_setform`` fields are plain text values, files on disk
(``form_file``) or in-memory parts with an explicit content type
(``form_data``). ``encode_multipart`` turns them into a
``multipart/form-data`` body.
"""

import mimetypes
import os
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

DEFAULT_FILE_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class FormFile:
    """A file uploaded from disk."""
    path: str
    type: str

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)


@dataclass(frozen=True)
class FormData:
    """An in-memory form part with a content type."""
    value: bytes
    type: Optional[str] = None


FormValue = Union[str, bytes, FormFile, FormData]


def form_file(path: Union[str, os.PathLike], type: Optional[str] = None) -> FormFile:
    """
    Reference a file to upload.

    The content type is inferred from the file extension when not given.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    path = os.fspath(path)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"File not found: {path}")

    if type is None:
        type, _ = mimetypes.guess_type(path)
    return FormFile(path=os.path.abspath(path), type=type or DEFAULT_FILE_TYPE)


def form_data(value: Union[str, bytes], type: Optional[str] = None) -> FormData:
    """Wrap an in-memory value as a form part."""
    if isinstance(value, str):
        value = value.encode("utf-8")
    return FormData(value=value, type=type)


def _quote(name: str) -> str:
    return name.replace("\\", "\\\\").replace('"', '\\"').replace("\r", "%0D").replace("\n", "%0A")


def encode_multipart(
    fields: Dict[str, FormValue],
    boundary: Optional[str] = None,
) -> Tuple[List[bytes], str]:
    """
    Encode form fields as multipart/form-data.

    Args:
        fields: Field name to value mapping
        boundary: Part boundary, random when omitted

    Returns:
        Tuple of (body chunks, Content-Type header value)
    """
    boundary = boundary or f"------------------------{uuid.uuid4().hex}"
    delimiter = f"--{boundary}\r\n".encode()
    chunks: List[bytes] = []

    for name, value in fields.items():
        disposition = f'Content-Disposition: form-data; name="{_quote(name)}"'
        content_type = None

        if isinstance(value, FormFile):
            disposition += f'; filename="{_quote(value.filename)}"'
            content_type = value.type
            with open(value.path, "rb") as f:
                body = f.read()
        elif isinstance(value, FormData):
            content_type = value.type
            body = value.value
        elif isinstance(value, bytes):
            body = value
        elif isinstance(value, str):
            body = value.encode("utf-8")
        else:
            raise TypeError(
                f"Form field {name!r} must be str, bytes, FormFile or FormData, "
                f"got {type(value).__name__}"
            )

        head = disposition + "\r\n"
        if content_type:
            head += f"Content-Type: {content_type}\r\n"
        chunks.append(delimiter)
        chunks.append(head.encode("utf-8") + b"\r\n")
        chunks.append(body)
        chunks.append(b"\r\n")

    chunks.append(f"--{boundary}--\r\n".encode())
    return chunks, f"multipart/form-data; boundary={boundary}"
