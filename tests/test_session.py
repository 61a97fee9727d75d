from __future__ import annotations

import threading

from txtpager.chapters import Chapter, ChapterCache
from txtpager.document import Document
from txtpager.locator import page_start_offset
from txtpager.oracle import Geometry
from txtpager.page_cache import PageCache
from txtpager.session import ReaderSession, load_document_chapters
from txtpager.settings import ReaderSettings

GEOMETRY = Geometry(viewport_width=390, viewport_height=844, font_size=18)


class ScaledOracle:
    """Fits fewer characters per page as the font grows."""

    def __init__(self, budget: float = 400.0) -> None:
        self.budget = budget

    def fit(self, text: str, start: int, geometry: Geometry) -> tuple[int, int]:
        per_page = max(1, int(self.budget / geometry.font_size))
        return start, min(len(text), start + per_page)


class GatedOracle(ScaledOracle):
    """Blocks layout at one font size until ``gate`` is set."""

    def __init__(self, gated_font_size: float) -> None:
        super().__init__()
        self.gated_font_size = gated_font_size
        self.gate = threading.Event()

    def fit(self, text: str, start: int, geometry: Geometry) -> tuple[int, int]:
        if geometry.font_size == self.gated_font_size:
            self.gate.wait(5)
        return super().fit(text, start, geometry)


def _document(lines: int = 60) -> Document:
    text = "".join(f"line {index:03d}\n" for index in range(lines))
    return Document(identity="story.txt", text=text)


def _chaptered_document() -> Document:
    parts = []
    for number in range(1, 4):
        parts.append(f"Chapter {number}\n")
        parts.extend(f"body {number}-{index:02d}\n" for index in range(20))
    return Document(identity="chaptered.txt", text="".join(parts))


def test_open_paginates_and_starts_at_first_page() -> None:
    with ReaderSession(_document(), ScaledOracle(), GEOMETRY) as session:
        pagination = session.open()
        assert session.page_count == pagination.page_count > 1
        assert "".join(session.pages) == session.document.text
        assert session.current_page == 0
        assert session.current_text == session.pages[0]


def test_open_restores_saved_font_and_page(tmp_path) -> None:
    settings = ReaderSettings(tmp_path / "settings.json")
    settings.set_font_size("story.txt", 24)
    settings.set_progress("story.txt", 3)

    with ReaderSession(_document(), ScaledOracle(), GEOMETRY, settings=settings) as session:
        session.open()
        assert session.geometry.font_size == 24
        assert session.current_page == 3


def test_saved_page_beyond_the_end_is_clamped(tmp_path) -> None:
    settings = ReaderSettings(tmp_path / "settings.json")
    settings.set_progress("story.txt", 10_000)
    with ReaderSession(_document(), ScaledOracle(), GEOMETRY, settings=settings) as session:
        session.open()
        assert session.current_page == session.page_count - 1


def test_changing_font_keeps_reading_position() -> None:
    with ReaderSession(_document(), ScaledOracle(), GEOMETRY) as session:
        session.open()
        session.go_to_page(5)
        offset = session.current_offset

        pagination = session.set_font_size(24).result(timeout=5)

        assert pagination is not None
        assert session.geometry.font_size == 24
        pages = session.pages
        start = page_start_offset(pages, session.current_page)
        assert start <= offset < start + len(pages[session.current_page])


def test_superseded_pagination_is_discarded() -> None:
    oracle = GatedOracle(gated_font_size=20)
    with ReaderSession(_document(), oracle, GEOMETRY) as session:
        session.open()
        first = session.set_font_size(20)
        second = session.set_font_size(24)
        oracle.gate.set()

        assert first.result(timeout=5) is None
        latest = second.result(timeout=5)
        assert latest is not None
        assert latest.geometry.font_size == 24
        assert session.geometry.font_size == 24


def test_font_size_steps_are_clamped(tmp_path) -> None:
    settings = ReaderSettings(tmp_path / "settings.json")
    with ReaderSession(_document(), ScaledOracle(), GEOMETRY.with_font_size(34), settings=settings) as session:
        session.open()
        session.increase_font_size().result(timeout=5)
        assert session.geometry.font_size == 36
        session.increase_font_size().result(timeout=5)
        assert session.geometry.font_size == 36
        session.set_font_size(13).result(timeout=5)
        session.decrease_font_size().result(timeout=5)
        assert session.geometry.font_size == 12
        assert settings.font_size("story.txt") == 12


def test_resize_uses_the_new_viewport() -> None:
    with ReaderSession(_document(), ScaledOracle(), GEOMETRY) as session:
        session.open()
        pagination = session.resize(600, 400).result(timeout=5)
        assert pagination is not None
        assert session.geometry.viewport_width == 600
        assert session.geometry.viewport_height == 400


def test_page_turns_stop_at_the_edges(tmp_path) -> None:
    settings = ReaderSettings(tmp_path / "settings.json")
    with ReaderSession(_document(), ScaledOracle(), GEOMETRY, settings=settings) as session:
        session.open()
        assert session.previous_page() is False
        assert session.next_page() is True
        assert session.current_page == 1
        assert settings.progress("story.txt") == 1
        session.go_to_page(session.page_count + 5)
        assert session.current_page == session.page_count - 1
        assert session.next_page() is False


def test_go_to_chapter_lands_on_its_page() -> None:
    document = _chaptered_document()
    with ReaderSession(document, ScaledOracle(), GEOMETRY) as session:
        session.open()
        chapters = session.chapters()
        assert [c.title for c in chapters] == ["Chapter 1", "Chapter 2", "Chapter 3"]

        index = session.go_to_chapter(chapters[2])
        start = session.current_offset
        assert index == session.current_page
        assert start <= chapters[2].offset < start + len(session.current_text)


def test_chapters_come_from_the_cache_first() -> None:
    cache = ChapterCache()
    custom = [Chapter(title="Prologue", offset=0)]
    cache.put("chaptered.txt", custom)
    assert load_document_chapters(_chaptered_document(), cache) == custom


def test_scanned_chapters_are_cached() -> None:
    cache = ChapterCache()
    chapters = load_document_chapters(_chaptered_document(), cache)
    assert cache.get("chaptered.txt") == chapters


def test_reopen_reuses_cached_pages(tmp_path) -> None:
    page_cache = PageCache(tmp_path / "cache")
    with ReaderSession(_document(), ScaledOracle(), GEOMETRY, page_cache=page_cache) as session:
        assert session.open().from_cache is False
    with ReaderSession(_document(), ScaledOracle(), GEOMETRY, page_cache=PageCache(tmp_path / "cache")) as session:
        assert session.open().from_cache is True
