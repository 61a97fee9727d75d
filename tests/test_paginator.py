from __future__ import annotations

import threading

import pytest

from txtpager.document import Document
from txtpager.oracle import Geometry, MonospaceOracle
from txtpager.page_cache import PageCache, PageCacheKey
from txtpager.paginator import (
    PaginationCancelled,
    paginate,
    paginate_document,
    paragraph_end,
)

GEOMETRY = Geometry(viewport_width=390, viewport_height=844, font_size=18)


class FixedOracle:
    """Fits a fixed number of characters per page."""

    def __init__(self, per_page: int) -> None:
        self.per_page = per_page
        self.calls = 0

    def fit(self, text: str, start: int, geometry: Geometry) -> tuple[int, int]:
        self.calls += 1
        return start, min(len(text), start + self.per_page)


class StuckOracle:
    def fit(self, text: str, start: int, geometry: Geometry) -> tuple[int, int]:
        return start, start


def _sample_text(paragraphs: int = 40) -> str:
    return "".join(
        f"Paragraph {index} goes on for a little while so pages fill up.\n" for index in range(paragraphs)
    )


def test_pages_concatenate_to_original_text() -> None:
    text = _sample_text() + "Final line without newline"
    for per_page in (1, 7, 64, 500, 10_000):
        result = paginate(text, GEOMETRY, FixedOracle(per_page))
        assert "".join(result.pages) == text
        assert all(page for page in result.pages)


def test_empty_document_yields_single_empty_page() -> None:
    result = paginate("", GEOMETRY, FixedOracle(10))
    assert result.pages == [""]
    assert result.resume_index == 0


def test_fit_range_snaps_to_paragraph_end() -> None:
    text = "aaaa\nbbbbbbbb\ncc\n"
    result = paginate(text, GEOMETRY, FixedOracle(6))
    assert result.pages == ["aaaa\nbbbbbbbb\n", "cc\n"]


def test_long_paragraph_overflows_instead_of_splitting() -> None:
    text = "abcdefghij\nxy"
    result = paginate(text, GEOMETRY, FixedOracle(3))
    assert result.pages == ["abcdefghij\n", "xy"]


def test_stuck_oracle_is_forced_forward() -> None:
    result = paginate("ab\ncd", GEOMETRY, StuckOracle())
    assert result.pages == ["ab\n", "cd"]


def test_crlf_counts_as_one_paragraph_break() -> None:
    text = "one\r\ntwo\r\nthree"
    assert paragraph_end(text, 4) == 5
    result = paginate(text, GEOMETRY, FixedOracle(2))
    assert result.pages == ["one\r\n", "two\r\n", "three"]


def test_resume_index_contains_prior_offset_after_repagination() -> None:
    text = _sample_text(60)
    small = paginate(text, GEOMETRY, FixedOracle(120))
    page = 7
    offset = small.offsets[page] + 5
    large = paginate(text, GEOMETRY.with_font_size(30), FixedOracle(300), prior_offset=offset)
    start = large.offsets[large.resume_index]
    assert start <= offset < start + len(large.pages[large.resume_index])
    assert large.page_count < small.page_count


def test_pagination_is_deterministic() -> None:
    text = _sample_text(25)
    oracle = MonospaceOracle()
    first = paginate(text, GEOMETRY, oracle)
    second = paginate(text, GEOMETRY, oracle)
    assert first.pages == second.pages


def test_cancelled_pagination_raises() -> None:
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(PaginationCancelled):
        paginate(_sample_text(), GEOMETRY, FixedOracle(10), cancel_event=cancel)


def test_progress_reports_cursor() -> None:
    seen: list[tuple[int, int]] = []
    text = _sample_text(5)
    paginate(text, GEOMETRY, FixedOracle(50), progress=lambda done, total: seen.append((done, total)))
    assert seen[-1] == (len(text), len(text))


def test_paginate_document_uses_and_fills_cache(tmp_path) -> None:
    document = Document(identity="book.txt", text=_sample_text(30))
    cache = PageCache(tmp_path / "cache")
    oracle = FixedOracle(200)

    first = paginate_document(document, GEOMETRY, oracle, cache=cache)
    calls = oracle.calls
    second = paginate_document(document, GEOMETRY, oracle, cache=cache)

    assert not first.from_cache
    assert second.from_cache
    assert second.pages == first.pages
    assert oracle.calls == calls
    assert cache.get(PageCacheKey.for_geometry("book.txt", GEOMETRY)) == first.pages


def test_cached_pages_still_resolve_resume_index(tmp_path) -> None:
    document = Document(identity="book.txt", text=_sample_text(30))
    cache = PageCache(tmp_path / "cache")
    fresh = paginate_document(document, GEOMETRY, FixedOracle(200), cache=cache)
    offset = fresh.offsets[3] + 1
    cached = paginate_document(document, GEOMETRY, FixedOracle(200), cache=cache, prior_offset=offset)
    assert cached.from_cache
    assert cached.resume_index == 3
