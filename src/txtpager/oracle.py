from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from PIL import ImageFont

DEFAULT_FONT_SIZE = 18.0
MIN_FONT_SIZE = 12.0
MAX_FONT_SIZE = 36.0
FONT_SIZE_STEP = 2.0
DEFAULT_HORIZONTAL_PADDING = 32.0
DEFAULT_VERTICAL_PADDING = 32.0
DEFAULT_LINE_SPACING = 1.25

_LINE_BREAKS = ("\n", "\u2029", "\x85", "\u2028")
_HANGING_SPACES = (" ", "\t", "\u3000")


def clamp_font_size(value: float) -> float:
    return max(MIN_FONT_SIZE, min(MAX_FONT_SIZE, float(value)))


@dataclass(frozen=True)
class Geometry:
    """
    Rendering parameters for one pagination pass.

    ``viewport_width``/``viewport_height`` are the raw screen size; the usable
    text rectangle is the viewport minus the padding on each axis.
    """

    viewport_width: float
    viewport_height: float
    font_size: float = DEFAULT_FONT_SIZE
    horizontal_padding: float = DEFAULT_HORIZONTAL_PADDING
    vertical_padding: float = DEFAULT_VERTICAL_PADDING

    @property
    def content_width(self) -> float:
        return max(0.0, self.viewport_width - self.horizontal_padding)

    @property
    def content_height(self) -> float:
        return max(0.0, self.viewport_height - self.vertical_padding)

    def with_font_size(self, font_size: float) -> "Geometry":
        return Geometry(
            viewport_width=self.viewport_width,
            viewport_height=self.viewport_height,
            font_size=font_size,
            horizontal_padding=self.horizontal_padding,
            vertical_padding=self.vertical_padding,
        )

    def with_viewport(self, width: float, height: float) -> "Geometry":
        return Geometry(
            viewport_width=width,
            viewport_height=height,
            font_size=self.font_size,
            horizontal_padding=self.horizontal_padding,
            vertical_padding=self.vertical_padding,
        )


class LineBreakOracle(Protocol):
    def fit(self, text: str, start: int, geometry: Geometry) -> tuple[int, int]:
        """Return the half-open character range starting at ``start`` that fits one page."""
        ...


def is_wide_char(ch: str) -> bool:
    return unicodedata.east_asian_width(ch) in {"W", "F"}


class WrappingOracle:
    """
    Greedy word-wrapping layout shared by the concrete oracles.

    Subclasses provide per-character advances and the line height; lines wrap
    at the last space (or after any wide CJK character) that fits, trailing
    spaces hang past the right edge, and a single glyph wider than the line is
    placed on its own line so every line consumes at least one character.
    """

    def advance(self, ch: str, geometry: Geometry) -> float:
        raise NotImplementedError

    def line_height(self, geometry: Geometry) -> float:
        return geometry.font_size * DEFAULT_LINE_SPACING

    def lines_per_page(self, geometry: Geometry) -> int:
        height = self.line_height(geometry)
        if height <= 0:
            return 0
        return int(geometry.content_height // height)

    def fit(self, text: str, start: int, geometry: Geometry) -> tuple[int, int]:
        length = len(text)
        start = max(0, min(start, length))
        max_lines = self.lines_per_page(geometry)
        width = geometry.content_width
        pos = start
        lines = 0
        while pos < length and lines < max_lines:
            pos = self._wrap_line(text, pos, width, geometry)
            lines += 1
        return start, pos

    def _wrap_line(self, text: str, pos: int, width: float, geometry: Geometry) -> int:
        length = len(text)
        used = 0.0
        break_at: int | None = None
        idx = pos
        while idx < length:
            ch = text[idx]
            if ch in _LINE_BREAKS:
                return idx + 1
            if ch == "\r":
                return idx + 2 if text[idx + 1 : idx + 2] == "\n" else idx + 1
            adv = self.advance(ch, geometry)
            if used + adv > width and idx > pos:
                if ch in _HANGING_SPACES:
                    while idx < length and text[idx] in _HANGING_SPACES:
                        idx += 1
                    if text[idx : idx + 2] == "\r\n":
                        idx += 2
                    elif idx < length and (text[idx] in _LINE_BREAKS or text[idx] == "\r"):
                        idx += 1
                    return idx
                if break_at is not None:
                    return break_at
                return idx
            used += adv
            if ch in _HANGING_SPACES or is_wide_char(ch):
                break_at = idx + 1
            idx += 1
        return length


class MonospaceOracle(WrappingOracle):
    """Deterministic oracle: narrow glyphs advance half an em, wide glyphs a full em."""

    def __init__(self, narrow_ratio: float = 0.5, wide_ratio: float = 1.0) -> None:
        self.narrow_ratio = narrow_ratio
        self.wide_ratio = wide_ratio

    def advance(self, ch: str, geometry: Geometry) -> float:
        if unicodedata.combining(ch):
            return 0.0
        ratio = self.wide_ratio if is_wide_char(ch) else self.narrow_ratio
        return geometry.font_size * ratio


class PillowOracle(WrappingOracle):
    """Oracle backed by real glyph advances from a Pillow font."""

    def __init__(self, font_path: Path | str | None = None, line_spacing: float = DEFAULT_LINE_SPACING) -> None:
        self.font_path = Path(font_path) if font_path else None
        self.line_spacing = line_spacing
        self._fonts: dict[float, object] = {}
        self._advances: dict[tuple[float, str], float] = {}

    def _font(self, size: float):
        font = self._fonts.get(size)
        if font is None:
            if self.font_path is not None:
                font = ImageFont.truetype(str(self.font_path), size=size)
            else:
                font = ImageFont.load_default(size=size)
            self._fonts[size] = font
        return font

    def advance(self, ch: str, geometry: Geometry) -> float:
        key = (geometry.font_size, ch)
        cached = self._advances.get(key)
        if cached is None:
            cached = float(self._font(geometry.font_size).getlength(ch))
            self._advances[key] = cached
        return cached

    def line_height(self, geometry: Geometry) -> float:
        return geometry.font_size * self.line_spacing


__all__ = [
    "DEFAULT_FONT_SIZE",
    "FONT_SIZE_STEP",
    "MAX_FONT_SIZE",
    "MIN_FONT_SIZE",
    "Geometry",
    "LineBreakOracle",
    "MonospaceOracle",
    "PillowOracle",
    "WrappingOracle",
    "clamp_font_size",
    "is_wide_char",
]
