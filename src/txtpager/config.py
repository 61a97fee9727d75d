from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .chapters import DEFAULT_TIMEOUT_SECONDS
from .oracle import (
    DEFAULT_FONT_SIZE,
    DEFAULT_HORIZONTAL_PADDING,
    DEFAULT_VERTICAL_PADDING,
    Geometry,
    clamp_font_size,
)

_CACHE_DIR_ENV = "TXTPAGER_CACHE_DIR"
_STATE_DIR_ENV = "TXTPAGER_STATE_DIR"
_LIBRARY_ENV = "TXTPAGER_LIBRARY"
DEFAULT_VIEWPORT_WIDTH = 390.0
DEFAULT_VIEWPORT_HEIGHT = 844.0


def default_cache_dir() -> Path:
    env_dir = os.environ.get(_CACHE_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".cache" / "txtpager"


def default_state_dir() -> Path:
    env_dir = os.environ.get(_STATE_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".local" / "share" / "txtpager"


def default_library_dir() -> Path:
    env_dir = os.environ.get(_LIBRARY_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return default_state_dir() / "books"


@dataclass
class ReaderConfig:
    root: Path = field(default_factory=default_library_dir)
    cache_dir: Path | None = field(default_factory=default_cache_dir)
    state_dir: Path = field(default_factory=default_state_dir)
    viewport_width: float = DEFAULT_VIEWPORT_WIDTH
    viewport_height: float = DEFAULT_VIEWPORT_HEIGHT
    horizontal_padding: float = DEFAULT_HORIZONTAL_PADDING
    vertical_padding: float = DEFAULT_VERTICAL_PADDING
    font_size: float = DEFAULT_FONT_SIZE
    chapter_timeout: float = DEFAULT_TIMEOUT_SECONDS
    font_path: Path | None = None

    def geometry(
        self,
        font_size: float | None = None,
        width: float | None = None,
        height: float | None = None,
    ) -> Geometry:
        return Geometry(
            viewport_width=self.viewport_width if width is None else float(width),
            viewport_height=self.viewport_height if height is None else float(height),
            font_size=clamp_font_size(self.font_size if font_size is None else font_size),
            horizontal_padding=self.horizontal_padding,
            vertical_padding=self.vertical_padding,
        )

    @property
    def settings_path(self) -> Path:
        return self.state_dir / "settings.json"


__all__ = [
    "DEFAULT_VIEWPORT_HEIGHT",
    "DEFAULT_VIEWPORT_WIDTH",
    "ReaderConfig",
    "default_cache_dir",
    "default_library_dir",
    "default_state_dir",
]
