from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from typing import Callable

from .document import Document
from .locator import page_index_containing
from .oracle import Geometry, LineBreakOracle
from .page_cache import PageCache, PageCacheKey

_PARAGRAPH_BREAK_RE = re.compile(r"\r\n|[\n\r\u2029\x85]")
_PARAGRAPH_TERMINATORS = frozenset("\n\r\u2029\x85")


class PaginationCancelled(RuntimeError):
    """Raised when a pagination pass is superseded before it finishes."""


@dataclass
class Pagination:
    pages: list[str]
    resume_index: int = 0
    geometry: Geometry | None = None
    from_cache: bool = False
    offsets: list[int] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        if not self.offsets:
            self.offsets = page_offsets(self.pages)

    @property
    def page_count(self) -> int:
        return len(self.pages)


def page_offsets(pages: list[str]) -> list[int]:
    offsets: list[int] = []
    total = 0
    for page in pages:
        offsets.append(total)
        total += len(page)
    return offsets


def paragraph_end(text: str, end: int) -> int:
    """
    Widen ``end`` to the end of the paragraph containing ``text[end - 1]``.

    The returned index sits just past the paragraph terminator (``\\r\\n``
    counts as one terminator), or at ``len(text)`` for the final paragraph.
    """
    length = len(text)
    if end <= 0:
        return 0
    if end >= length:
        return length
    if text[end - 1] == "\r" and text[end] == "\n":
        return end + 1
    if text[end - 1] in _PARAGRAPH_TERMINATORS:
        return end
    match = _PARAGRAPH_BREAK_RE.search(text, end)
    if match is None:
        return length
    return match.end()


def paginate(
    text: str,
    geometry: Geometry,
    oracle: LineBreakOracle,
    *,
    prior_offset: int = 0,
    cancel_event: threading.Event | None = None,
    progress: Callable[[int, int], None] | None = None,
) -> Pagination:
    """
    Slice ``text`` into pages for ``geometry``.

    Each page is the range the oracle fits at the cursor, widened to the end of
    the enclosing paragraph, so a paragraph taller than the viewport becomes a
    single overflowing page. ``resume_index`` is the page whose range contains
    ``prior_offset``.
    """
    length = len(text)
    if length == 0:
        return Pagination(pages=[""], resume_index=0, geometry=geometry)

    pages: list[str] = []
    offsets: list[int] = []
    cursor = 0
    resume_index = 0
    while cursor < length:
        if cancel_event is not None and cancel_event.is_set():
            raise PaginationCancelled("pagination superseded")
        _, fit_end = oracle.fit(text, cursor, geometry)
        fit_end = min(max(fit_end, cursor), length)
        if fit_end <= cursor:
            fit_end = cursor + 1
        page_end = paragraph_end(text, fit_end)
        page_text = text[cursor:page_end]
        if cursor <= prior_offset < page_end:
            resume_index = len(pages)
        offsets.append(cursor)
        pages.append(page_text)
        cursor = page_end
        if progress is not None:
            progress(cursor, length)
    return Pagination(pages=pages, resume_index=resume_index, geometry=geometry, offsets=offsets)


def paginate_document(
    document: Document,
    geometry: Geometry,
    oracle: LineBreakOracle,
    *,
    cache: PageCache | None = None,
    prior_offset: int = 0,
    cancel_event: threading.Event | None = None,
    progress: Callable[[int, int], None] | None = None,
) -> Pagination:
    """Return cached pages for ``document`` at ``geometry`` when present, otherwise paginate and store them."""
    key = PageCacheKey.for_geometry(document.identity, geometry)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return Pagination(
                pages=cached,
                resume_index=page_index_containing(cached, prior_offset),
                geometry=geometry,
                from_cache=True,
            )
    pagination = paginate(
        document.text,
        geometry,
        oracle,
        prior_offset=prior_offset,
        cancel_event=cancel_event,
        progress=progress,
    )
    if cache is not None:
        cache.put(key, pagination.pages)
    return pagination


__all__ = [
    "Pagination",
    "PaginationCancelled",
    "page_offsets",
    "paginate",
    "paginate_document",
    "paragraph_end",
]
