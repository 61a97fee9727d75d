from __future__ import annotations

import pytest

from txtpager.oracle import Geometry, MonospaceOracle, PillowOracle, clamp_font_size


def _geometry(width_chars: int, lines: int, font_size: float = 10.0) -> Geometry:
    # MonospaceOracle: narrow glyphs advance font_size / 2, lines are font_size * 1.25 tall.
    return Geometry(
        viewport_width=width_chars * font_size / 2,
        viewport_height=lines * font_size * 1.25,
        font_size=font_size,
        horizontal_padding=0,
        vertical_padding=0,
    )


def test_geometry_subtracts_padding() -> None:
    geometry = Geometry(viewport_width=390, viewport_height=844, font_size=18)
    assert geometry.content_width == 358
    assert geometry.content_height == 812
    assert geometry.with_font_size(20).font_size == 20
    assert geometry.with_viewport(100, 200).content_width == 68


def test_font_size_is_clamped() -> None:
    assert clamp_font_size(4) == 12
    assert clamp_font_size(18) == 18
    assert clamp_font_size(72) == 36


def test_words_wrap_at_spaces() -> None:
    oracle = MonospaceOracle()
    text = "alpha beta gamma delta"
    start, end = oracle.fit(text, 0, _geometry(width_chars=11, lines=1))
    assert (start, end) == (0, 11)
    assert text[start:end] == "alpha beta "


def test_lines_per_page_bounds_the_range() -> None:
    oracle = MonospaceOracle()
    text = "one\ntwo\nthree\nfour\n"
    _, end = oracle.fit(text, 0, _geometry(width_chars=20, lines=2))
    assert text[:end] == "one\ntwo\n"
    _, end = oracle.fit(text, end, _geometry(width_chars=20, lines=2))
    assert text[8:end] == "three\nfour\n"


def test_wide_characters_take_a_full_em() -> None:
    oracle = MonospaceOracle()
    text = "第一章开始了故事"
    _, end = oracle.fit(text, 0, _geometry(width_chars=8, lines=1))
    assert end == 4


def test_unbreakable_word_is_cut_at_the_edge() -> None:
    oracle = MonospaceOracle()
    _, end = oracle.fit("abcdefghij", 0, _geometry(width_chars=4, lines=1))
    assert end == 4


def test_no_room_for_a_line_returns_empty_range() -> None:
    oracle = MonospaceOracle()
    geometry = Geometry(viewport_width=100, viewport_height=5, font_size=18, vertical_padding=0)
    assert oracle.fit("text", 0, geometry) == (0, 0)


def test_pillow_oracle_measures_real_glyphs() -> None:
    features = pytest.importorskip("PIL.features")
    if not features.check("freetype2"):
        pytest.skip("Pillow built without FreeType")
    oracle = PillowOracle()
    geometry = Geometry(viewport_width=200, viewport_height=100, font_size=16)
    text = "The quick brown fox jumps over the lazy dog. " * 20
    start, end = oracle.fit(text, 0, geometry)
    assert start == 0
    assert 0 < end < len(text)
    assert oracle.advance("W", geometry) > oracle.advance("i", geometry)
