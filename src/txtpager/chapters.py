from __future__ import annotations

import asyncio
import json
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping
from uuid import uuid4

from .logging_utils import _debug_log

MAX_CHAPTERS = 1000
DEFAULT_TIMEOUT_SECONDS = 5.0
FALLBACK_TITLE = "Full Book"
CHAPTER_SIDECAR_SUFFIX = ".chapters.json"
CJK_NUMERALS = "一二三四五六七八九十百千"

LINE_TERMINATORS = "\n\r\u2028\u2029\x85"
SCAN_CHUNK_CHARS = 64 * 1024

# At a line start: heading keyword, optional in-line spacing, then ASCII digits or CJK numerals.
CHAPTER_HEADING_RE = re.compile(
    rf"(?<![^{LINE_TERMINATORS}])(?:Chapter|CHAPTER|第)"
    rf"[^\S{LINE_TERMINATORS}]*[0-9{CJK_NUMERALS}]+[^{LINE_TERMINATORS}]*"
)
_HEADING_START_RE = re.compile(rf"(?<![^{LINE_TERMINATORS}])(?:Chapter|CHAPTER|第)")
_KEYWORD_SPAN = len("CHAPTER")


class ChapterScanCancelled(RuntimeError):
    """Raised inside a chapter scan once its caller has given up waiting."""


@dataclass(frozen=True)
class Chapter:
    title: str
    offset: int
    id: str = field(default_factory=lambda: uuid4().hex)


def fallback_chapters() -> list[Chapter]:
    return [Chapter(title=FALLBACK_TITLE, offset=0)]


def scan_chapters(
    text: str,
    *,
    limit: int = MAX_CHAPTERS,
    cancel_event: threading.Event | None = None,
) -> list[Chapter]:
    """Collect line-anchored chapter headings in document order, stopping after ``limit``."""
    chapters: list[Chapter] = []
    if limit <= 0:
        return chapters
    length = len(text)
    pos = 0
    # Bounded slices, so a cancelled scan stops within one slice.
    while pos < length:
        if cancel_event is not None and cancel_event.is_set():
            raise ChapterScanCancelled("chapter scan cancelled")
        end = min(length, pos + SCAN_CHUNK_CHARS)
        window_end = min(length, end + _KEYWORD_SPAN - 1)
        for keyword in _HEADING_START_RE.finditer(text, pos, window_end):
            if keyword.start() >= end:
                break
            match = CHAPTER_HEADING_RE.match(text, keyword.start())
            if match is None:
                continue
            chapters.append(Chapter(title=match.group(0), offset=match.start()))
            if len(chapters) >= limit:
                return chapters
        pos = end
    return chapters


async def index_chapters_async(
    text: str,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    *,
    limit: int = MAX_CHAPTERS,
) -> list[Chapter]:
    """
    Race the heading scan against a ``timeout``-second timer.

    Whichever finishes first decides the outcome and the other is cancelled.
    A timeout or any failure inside the scan yields the single fallback
    chapter, so callers always get a usable list.
    """
    cancel_event = threading.Event()
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="txtpager-chapters")
    loop = asyncio.get_running_loop()

    def work() -> list[Chapter]:
        return scan_chapters(text, limit=limit, cancel_event=cancel_event)

    scan = asyncio.ensure_future(loop.run_in_executor(executor, work))
    timer = asyncio.ensure_future(asyncio.sleep(max(0.0, timeout)))
    try:
        done, _ = await asyncio.wait({scan, timer}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        timer.cancel()
        if not scan.done():
            cancel_event.set()
            scan.cancel()
        executor.shutdown(wait=False, cancel_futures=True)

    if scan not in done:
        _debug_log(f"Chapter scan exceeded {timeout:g}s; using fallback chapter")
        return fallback_chapters()
    try:
        return scan.result()
    except Exception as exc:
        _debug_log(f"Chapter scan failed ({exc!r}); using fallback chapter")
        return fallback_chapters()


def index_chapters(
    text: str,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    *,
    limit: int = MAX_CHAPTERS,
) -> list[Chapter]:
    return asyncio.run(index_chapters_async(text, timeout, limit=limit))


class ChapterCache:
    """In-process map of document identity to its chapter list."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[Chapter, ...]] = {}

    def get(self, identity: str) -> list[Chapter] | None:
        with self._lock:
            cached = self._entries.get(identity)
        return list(cached) if cached is not None else None

    def put(self, identity: str, chapters: Iterable[Chapter]) -> None:
        with self._lock:
            self._entries[identity] = tuple(chapters)

    def clear(self, identity: str) -> bool:
        with self._lock:
            return self._entries.pop(identity, None) is not None


def chapter_sidecar_path(document_path: Path) -> Path:
    return document_path.with_name(document_path.stem + CHAPTER_SIDECAR_SUFFIX)


def serialize_chapters(chapters: Iterable[Chapter]) -> list[dict[str, object]]:
    return [
        {"id": chapter.id, "title": chapter.title, "offset": chapter.offset}
        for chapter in chapters
    ]


def deserialize_chapters(data: Iterable[Mapping[str, object]]) -> list[Chapter]:
    chapters: list[Chapter] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        title = entry.get("title")
        offset = entry.get("offset")
        if not isinstance(title, str) or not isinstance(offset, int) or isinstance(offset, bool):
            continue
        chapter_id = entry.get("id")
        if isinstance(chapter_id, str) and chapter_id:
            chapters.append(Chapter(title=title, offset=offset, id=chapter_id))
        else:
            chapters.append(Chapter(title=title, offset=offset))
    return chapters


def write_chapter_sidecar(document_path: Path, chapters: Iterable[Chapter]) -> Path:
    sidecar = chapter_sidecar_path(document_path)
    sidecar.write_text(
        json.dumps(serialize_chapters(chapters), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return sidecar


def load_chapter_sidecar(document_path: Path) -> list[Chapter] | None:
    sidecar = chapter_sidecar_path(document_path)
    try:
        raw = json.loads(sidecar.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        _debug_log(f"Ignoring unreadable chapter sidecar {sidecar}: {exc}")
        return None
    if not isinstance(raw, list):
        return None
    return deserialize_chapters(raw)


__all__ = [
    "CHAPTER_HEADING_RE",
    "CHAPTER_SIDECAR_SUFFIX",
    "DEFAULT_TIMEOUT_SECONDS",
    "FALLBACK_TITLE",
    "LINE_TERMINATORS",
    "MAX_CHAPTERS",
    "SCAN_CHUNK_CHARS",
    "Chapter",
    "ChapterCache",
    "ChapterScanCancelled",
    "chapter_sidecar_path",
    "deserialize_chapters",
    "fallback_chapters",
    "index_chapters",
    "index_chapters_async",
    "load_chapter_sidecar",
    "scan_chapters",
    "serialize_chapters",
    "write_chapter_sidecar",
]
