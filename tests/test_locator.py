from __future__ import annotations

from txtpager.locator import clamp_page_index, page_index_containing, page_start_offset

PAGES = ["a" * 10, "b" * 10, "c" * 10]


def test_offset_maps_to_the_page_that_contains_it() -> None:
    assert page_index_containing(PAGES, 0) == 0
    assert page_index_containing(PAGES, 9) == 0
    assert page_index_containing(PAGES, 10) == 1
    assert page_index_containing(PAGES, 15) == 1
    assert page_index_containing(PAGES, 29) == 2


def test_offset_past_the_end_falls_back_to_first_page() -> None:
    assert page_index_containing(PAGES, 30) == 0
    assert page_index_containing(PAGES, 999) == 0
    assert page_index_containing(PAGES, -1) == 0
    assert page_index_containing([], 5) == 0


def test_empty_pages_are_skipped() -> None:
    assert page_index_containing(["", "abc"], 0) == 1


def test_page_start_offset_is_clamped() -> None:
    assert page_start_offset(PAGES, 0) == 0
    assert page_start_offset(PAGES, 2) == 20
    assert page_start_offset(PAGES, 50) == 20
    assert page_start_offset([], 3) == 0


def test_clamp_page_index() -> None:
    assert clamp_page_index(-3, 5) == 0
    assert clamp_page_index(7, 5) == 4
    assert clamp_page_index(2, 5) == 2
    assert clamp_page_index(2, 0) == 0
