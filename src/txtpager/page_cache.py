from __future__ import annotations

import contextlib
import hashlib
import json
import os
import re
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence
from uuid import uuid4

from .logging_utils import _debug_log
from .oracle import Geometry

PAGE_CACHE_VERSION = 1
PAGE_CACHE_SUFFIX = ".pages.json"


def _format_number(value: float) -> str:
    return f"{float(value):g}"


def _slugify_identity(identity: str) -> str:
    cleaned_chars: list[str] = []
    for ch in identity.strip():
        if ch in {"/", "\\", ":", "*", "?", '"', "<", ">", "|"}:
            cleaned_chars.append("_")
            continue
        if ord(ch) < 32:
            continue
        if ch.isspace():
            cleaned_chars.append("_")
            continue
        cleaned_chars.append(ch)
    slug = "".join(cleaned_chars)
    slug = re.sub(r"_+", "_", slug).strip("_.")
    return slug[:80] or "document"


def identity_dirname(identity: str) -> str:
    digest = hashlib.sha1(identity.encode("utf-8")).hexdigest()[:10]
    return f"{_slugify_identity(identity)}-{digest}"


@dataclass(frozen=True)
class PageCacheKey:
    """Everything that must match for cached pages to be reused."""

    identity: str
    font_size: float
    width: float
    height: float

    @classmethod
    def for_geometry(cls, identity: str, geometry: Geometry) -> "PageCacheKey":
        return cls(
            identity=identity,
            font_size=float(geometry.font_size),
            width=float(geometry.content_width),
            height=float(geometry.content_height),
        )

    @property
    def filename(self) -> str:
        return (
            f"{_format_number(self.font_size)}pt_"
            f"{_format_number(self.width)}x{_format_number(self.height)}{PAGE_CACHE_SUFFIX}"
        )


class PageCache:
    """
    Two-tier store of paginated documents.

    Lookups hit the in-process map first and fall back to one JSON record per
    key under ``cache_dir``; a disk hit is promoted into memory. Unreadable or
    malformed records and failed writes are reported as misses, never raised.
    """

    def __init__(self, cache_dir: Path | None = None) -> None:
        self.cache_dir = cache_dir.expanduser() if cache_dir is not None else None
        self._lock = threading.Lock()
        self._memory: dict[PageCacheKey, tuple[str, ...]] = {}

    def record_path(self, key: PageCacheKey) -> Path | None:
        if self.cache_dir is None:
            return None
        return self.cache_dir / identity_dirname(key.identity) / key.filename

    def get(self, key: PageCacheKey) -> list[str] | None:
        with self._lock:
            cached = self._memory.get(key)
        if cached is not None:
            return list(cached)
        pages = self._read_record(key)
        if pages is None:
            return None
        with self._lock:
            self._memory[key] = tuple(pages)
        return pages

    def put(self, key: PageCacheKey, pages: Sequence[str]) -> None:
        frozen = tuple(pages)
        with self._lock:
            self._memory[key] = frozen
        self._write_record(key, frozen)

    def clear(self, identity: str) -> int:
        """Drop every memory entry and disk record for ``identity``; return the number of records removed."""
        with self._lock:
            stale = [key for key in self._memory if key.identity == identity]
            for key in stale:
                del self._memory[key]
        removed = len(stale)
        if self.cache_dir is None:
            return removed
        book_dir = self.cache_dir / identity_dirname(identity)
        try:
            disk_records = [path for path in book_dir.iterdir() if path.name.endswith(PAGE_CACHE_SUFFIX)]
        except OSError:
            return removed
        shutil.rmtree(book_dir, ignore_errors=True)
        return max(removed, len(disk_records))

    def forget_memory(self) -> None:
        with self._lock:
            self._memory.clear()

    def _read_record(self, key: PageCacheKey) -> list[str] | None:
        path = self.record_path(key)
        if path is None:
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            _debug_log(f"Ignoring unreadable page cache {path}: {exc}")
            return None
        if not isinstance(raw, dict) or raw.get("version") != PAGE_CACHE_VERSION:
            _debug_log(f"Ignoring page cache with unexpected layout: {path}")
            return None
        if raw.get("identity") != key.identity:
            return None
        pages = raw.get("pages")
        if not isinstance(pages, list) or not all(isinstance(page, str) for page in pages):
            _debug_log(f"Ignoring page cache with malformed pages: {path}")
            return None
        if raw.get("page_count") != len(pages):
            _debug_log(f"Ignoring truncated page cache: {path}")
            return None
        return pages

    def _write_record(self, key: PageCacheKey, pages: tuple[str, ...]) -> None:
        path = self.record_path(key)
        if path is None:
            return
        payload = {
            "version": PAGE_CACHE_VERSION,
            "identity": key.identity,
            "font_size": key.font_size,
            "width": key.width,
            "height": key.height,
            "page_count": len(pages),
            "pages": list(pages),
        }
        tmp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            _debug_log(f"Failed to write page cache {path}: {exc}")
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)


__all__ = [
    "PAGE_CACHE_SUFFIX",
    "PAGE_CACHE_VERSION",
    "PageCache",
    "PageCacheKey",
    "identity_dirname",
]
