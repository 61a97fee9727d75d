from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path

from .chapters import (
    DEFAULT_TIMEOUT_SECONDS,
    Chapter,
    ChapterCache,
    chapter_sidecar_path,
    index_chapters,
    load_chapter_sidecar,
    write_chapter_sidecar,
)
from .document import (
    Document,
    STORED_ENCODINGS,
    DocumentNotFoundError,
    decode_text,
    load_document,
)
from .logging_utils import _debug_log
from .oracle import Geometry, LineBreakOracle
from .page_cache import PageCache
from .session import ReaderSession, load_document_chapters
from .settings import ReaderSettings

DOCUMENT_SUFFIX = ".txt"
_INVALID_NAME_CHARS = set('<>:"/\\|?*')


def normalize_document_filename(filename: str | None) -> str:
    candidate = Path(filename).name.strip() if isinstance(filename, str) else ""
    cleaned_chars: list[str] = []
    for ch in candidate:
        if ch in _INVALID_NAME_CHARS:
            cleaned_chars.append("_")
        elif ord(ch) < 32:
            continue
        else:
            cleaned_chars.append(ch)
    cleaned = "".join(cleaned_chars).strip(" .")
    if not cleaned:
        cleaned = "document"
    if not cleaned.lower().endswith(DOCUMENT_SUFFIX):
        cleaned = f"{cleaned}{DOCUMENT_SUFFIX}"
    return cleaned


@dataclass(slots=True)
class DocumentListing:
    identity: str
    path: Path
    size: int
    modified: float
    chapter_count: int | None


class Library:
    """A directory of imported plain-text documents plus the caches derived from them."""

    def __init__(
        self,
        root: Path,
        *,
        page_cache: PageCache | None = None,
        chapter_cache: ChapterCache | None = None,
        settings: ReaderSettings | None = None,
        chapter_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.root = root.expanduser()
        self.page_cache = page_cache if page_cache is not None else PageCache()
        self.chapter_cache = chapter_cache if chapter_cache is not None else ChapterCache()
        self.settings = settings
        self.chapter_timeout = chapter_timeout
        self._lock = threading.Lock()

    def document_path(self, identity: str) -> Path:
        name = identity.strip() if isinstance(identity, str) else ""
        if not name or Path(name).name != name or name in {".", ".."}:
            raise DocumentNotFoundError(f"Document not found: {identity}")
        if not name.lower().endswith(DOCUMENT_SUFFIX):
            raise DocumentNotFoundError(f"Document not found: {identity}")
        path = self.root / name
        if not path.is_file():
            raise DocumentNotFoundError(f"Document not found: {identity}")
        return path

    def list_documents(self, mode: str = "name") -> list[DocumentListing]:
        normalized_mode = mode.lower().strip()
        if normalized_mode not in {"name", "recent"}:
            normalized_mode = "name"
        if not self.root.is_dir():
            return []
        listings: list[DocumentListing] = []
        for entry in self.root.iterdir():
            if not entry.is_file() or entry.suffix.lower() != DOCUMENT_SUFFIX:
                continue
            try:
                stat = entry.stat()
                size = stat.st_size
                modified = stat.st_mtime
            except OSError:
                size = 0
                modified = 0.0
            sidecar = load_chapter_sidecar(entry)
            listings.append(
                DocumentListing(
                    identity=entry.name,
                    path=entry,
                    size=size,
                    modified=modified,
                    chapter_count=len(sidecar) if sidecar is not None else None,
                )
            )
        if normalized_mode == "recent":
            listings.sort(key=lambda item: (-item.modified, item.identity.casefold()))
        else:
            listings.sort(key=lambda item: item.identity.casefold())
        return listings

    def import_bytes(self, data: bytes, filename: str | None) -> Document:
        """
        Decode ``data`` and store it in the library as UTF-8.

        Chapters are indexed under the configured timeout and written to the
        sidecar; a sidecar that cannot be written does not fail the import.
        Raises :class:`TextDecodeError` when no encoding fits.
        """
        text, encoding = decode_text(data)
        name = normalize_document_filename(filename)
        destination = self.root / name
        with self._lock:
            self.root.mkdir(parents=True, exist_ok=True)
            destination.write_text(text, encoding="utf-8")
        self.page_cache.clear(name)
        self.chapter_cache.clear(name)
        if self.settings is not None:
            self.settings.forget(name)
        chapters = index_chapters(text, self.chapter_timeout)
        try:
            write_chapter_sidecar(destination, chapters)
        except OSError as exc:
            _debug_log(f"Failed to write chapters for {name}: {exc}")
        self.chapter_cache.put(name, chapters)
        return Document(identity=name, text=text, path=destination, encoding=encoding)

    def import_file(self, source: Path, name: str | None = None) -> Document:
        return self.import_bytes(source.read_bytes(), name or source.name)

    def open_document(self, identity: str) -> Document:
        return load_document(self.document_path(identity), STORED_ENCODINGS)

    def chapters(self, identity: str) -> list[Chapter]:
        return load_document_chapters(self.open_document(identity), self.chapter_cache)

    def open_session(self, identity: str, oracle: LineBreakOracle, geometry: Geometry) -> ReaderSession:
        return ReaderSession(
            self.open_document(identity),
            oracle,
            geometry,
            page_cache=self.page_cache,
            chapter_cache=self.chapter_cache,
            settings=self.settings,
        )

    def clear_caches(self, identity: str) -> int:
        self.chapter_cache.clear(identity)
        return self.page_cache.clear(identity)

    def delete(self, identity: str) -> bool:
        path = self.document_path(identity)
        with self._lock:
            path.unlink(missing_ok=True)
            chapter_sidecar_path(path).unlink(missing_ok=True)
        self.clear_caches(identity)
        if self.settings is not None:
            self.settings.forget(identity)
        return True


__all__ = [
    "DOCUMENT_SUFFIX",
    "DocumentListing",
    "Library",
    "normalize_document_filename",
]
