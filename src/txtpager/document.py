from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .logging_utils import _debug_log

# Chinese encodings first, then the common Western ones.
DEFAULT_ENCODINGS: tuple[str, ...] = (
    "gb18030",
    "big5",
    "utf-8",
    "utf-16",
    "cp1252",
    "ascii",
)
# Library copies are always written as UTF-8.
STORED_ENCODINGS: tuple[str, ...] = ("utf-8",) + tuple(e for e in DEFAULT_ENCODINGS if e != "utf-8")


class TextDecodeError(ValueError):
    """Raised when no supported encoding yields text for a document."""


class DocumentNotFoundError(FileNotFoundError):
    """Raised when a library has no document with the requested identity."""


@dataclass(frozen=True)
class Document:
    identity: str
    text: str
    path: Path | None = None
    encoding: str | None = None

    @property
    def length(self) -> int:
        return len(self.text)


def document_identity(path: Path | str) -> str:
    return Path(path).name


def decode_text(data: bytes, encodings: Sequence[str] = DEFAULT_ENCODINGS) -> tuple[str, str]:
    """Return ``(text, encoding)`` for the first encoding that decodes ``data`` to non-empty text."""
    for encoding in encodings:
        try:
            text = data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
        if text:
            _debug_log(f"Decoded {len(data)} bytes as {encoding}")
            return text, encoding
    raise TextDecodeError("Could not read file with any supported encoding")


def load_document(path: Path, encodings: Sequence[str] = DEFAULT_ENCODINGS) -> Document:
    data = path.read_bytes()
    try:
        text, encoding = decode_text(data, encodings)
    except TextDecodeError as exc:
        raise TextDecodeError(f"{path.name}: {exc}") from exc
    return Document(identity=document_identity(path), text=text, path=path, encoding=encoding)


__all__ = [
    "DEFAULT_ENCODINGS",
    "Document",
    "DocumentNotFoundError",
    "STORED_ENCODINGS",
    "TextDecodeError",
    "decode_text",
    "document_identity",
    "load_document",
]
