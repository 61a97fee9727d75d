from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from .chapters import Chapter, ChapterCache, load_chapter_sidecar, scan_chapters
from .document import Document
from .locator import clamp_page_index, page_index_containing, page_start_offset
from .logging_utils import _debug_log
from .oracle import FONT_SIZE_STEP, Geometry, LineBreakOracle, clamp_font_size
from .page_cache import PageCache
from .paginator import Pagination, PaginationCancelled, paginate_document
from .settings import ReaderSettings


def load_document_chapters(document: Document, cache: ChapterCache | None = None) -> list[Chapter]:
    """Chapters for ``document`` from the cache, then its sidecar, then a fresh scan; the result is cached."""
    if cache is not None:
        cached = cache.get(document.identity)
        if cached is not None:
            return cached
    chapters: list[Chapter] | None = None
    if document.path is not None:
        chapters = load_chapter_sidecar(document.path)
    if chapters is None:
        chapters = scan_chapters(document.text)
    if cache is not None:
        cache.put(document.identity, chapters)
    return chapters


class ReaderSession:
    """
    One open document: its current pages, position and chapters.

    Re-pagination runs on a single worker thread. Every request bumps a
    generation counter and cancels the previous request; a result is applied
    only if its generation is still the latest when it finishes.
    """

    def __init__(
        self,
        document: Document,
        oracle: LineBreakOracle,
        geometry: Geometry,
        *,
        page_cache: PageCache | None = None,
        chapter_cache: ChapterCache | None = None,
        settings: ReaderSettings | None = None,
    ) -> None:
        self.document = document
        self.oracle = oracle
        self.page_cache = page_cache if page_cache is not None else PageCache()
        self.chapter_cache = chapter_cache if chapter_cache is not None else ChapterCache()
        self.settings = settings
        self._lock = threading.Lock()
        self._generation = 0
        self._cancel_event: threading.Event | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="txtpager-paginate")
        self._geometry = geometry
        self._pages: list[str] = []
        self._current_page = 0

    @property
    def identity(self) -> str:
        return self.document.identity

    @property
    def geometry(self) -> Geometry:
        with self._lock:
            return self._geometry

    @property
    def pages(self) -> list[str]:
        with self._lock:
            return list(self._pages)

    @property
    def page_count(self) -> int:
        with self._lock:
            return len(self._pages)

    @property
    def current_page(self) -> int:
        with self._lock:
            return self._current_page

    @property
    def current_text(self) -> str:
        with self._lock:
            if not self._pages:
                return ""
            return self._pages[self._current_page]

    @property
    def current_offset(self) -> int:
        with self._lock:
            return page_start_offset(self._pages, self._current_page)

    def open(self, progress: Callable[[int, int], None] | None = None) -> Pagination:
        """Paginate synchronously and restore the saved page."""
        geometry = self.geometry
        saved = self.settings.saved(self.identity) if self.settings is not None else None
        if saved is not None:
            geometry = geometry.with_font_size(saved.font_size)
        pagination = paginate_document(
            self.document,
            geometry,
            self.oracle,
            cache=self.page_cache,
            progress=progress,
        )
        saved_page = saved.last_page if saved is not None else 0
        with self._lock:
            self._generation += 1
            self._geometry = geometry
            self._pages = list(pagination.pages)
            self._current_page = clamp_page_index(saved_page, len(self._pages))
        return pagination

    def repaginate(self, geometry: Geometry) -> Future:
        """
        Schedule pagination for ``geometry`` and return its future.

        The future resolves to the applied :class:`Pagination`, or ``None`` if a
        newer request superseded this one.
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
            if self._cancel_event is not None:
                self._cancel_event.set()
            cancel_event = threading.Event()
            self._cancel_event = cancel_event
            prior_offset = page_start_offset(self._pages, self._current_page)
        return self._executor.submit(self._run_pagination, generation, geometry, prior_offset, cancel_event)

    def set_font_size(self, font_size: float) -> Future:
        value = clamp_font_size(font_size)
        if self.settings is not None:
            self.settings.set_font_size(self.identity, value)
        return self.repaginate(self.geometry.with_font_size(value))

    def increase_font_size(self) -> Future:
        return self.set_font_size(self.geometry.font_size + FONT_SIZE_STEP)

    def decrease_font_size(self) -> Future:
        return self.set_font_size(self.geometry.font_size - FONT_SIZE_STEP)

    def resize(self, width: float, height: float) -> Future:
        return self.repaginate(self.geometry.with_viewport(width, height))

    def _run_pagination(
        self,
        generation: int,
        geometry: Geometry,
        prior_offset: int,
        cancel_event: threading.Event,
    ) -> Pagination | None:
        try:
            pagination = paginate_document(
                self.document,
                geometry,
                self.oracle,
                cache=self.page_cache,
                prior_offset=prior_offset,
                cancel_event=cancel_event,
            )
        except PaginationCancelled:
            _debug_log(f"Pagination {generation} for {self.identity} cancelled")
            return None
        with self._lock:
            if generation != self._generation:
                _debug_log(f"Discarding stale pagination {generation} for {self.identity}")
                return None
            self._geometry = geometry
            self._pages = list(pagination.pages)
            self._current_page = clamp_page_index(pagination.resume_index, len(self._pages))
            current_page = self._current_page
        self._save_progress(current_page)
        return pagination

    def go_to_page(self, index: int) -> int:
        with self._lock:
            self._current_page = clamp_page_index(index, len(self._pages))
            current_page = self._current_page
        self._save_progress(current_page)
        return current_page

    def next_page(self) -> bool:
        with self._lock:
            if self._current_page >= len(self._pages) - 1:
                return False
            self._current_page += 1
            current_page = self._current_page
        self._save_progress(current_page)
        return True

    def previous_page(self) -> bool:
        with self._lock:
            if self._current_page <= 0:
                return False
            self._current_page -= 1
            current_page = self._current_page
        self._save_progress(current_page)
        return True

    def chapters(self) -> list[Chapter]:
        return load_document_chapters(self.document, self.chapter_cache)

    def go_to_chapter(self, chapter: Chapter) -> int:
        with self._lock:
            index = page_index_containing(self._pages, chapter.offset)
        return self.go_to_page(index)

    def _save_progress(self, page: int) -> None:
        if self.settings is not None:
            self.settings.set_progress(self.identity, page)

    def close(self) -> None:
        with self._lock:
            self._generation += 1
            if self._cancel_event is not None:
                self._cancel_event.set()
        self._executor.shutdown(wait=True, cancel_futures=True)

    def __enter__(self) -> "ReaderSession":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


__all__ = ["ReaderSession", "load_document_chapters"]
