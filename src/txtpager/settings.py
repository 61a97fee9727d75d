from __future__ import annotations

import contextlib
import json
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from .logging_utils import _debug_log
from .oracle import DEFAULT_FONT_SIZE, clamp_font_size

SETTINGS_STATE_VERSION = 1


@dataclass
class BookSettings:
    font_size: float = DEFAULT_FONT_SIZE
    last_page: int = 0

    def as_payload(self) -> dict[str, float | int]:
        return {"font_size": self.font_size, "last_page": self.last_page}

    @classmethod
    def from_payload(cls, payload: object) -> "BookSettings | None":
        if not isinstance(payload, dict):
            return None
        font_size = payload.get("font_size")
        last_page = payload.get("last_page")
        settings = cls()
        if isinstance(font_size, (int, float)) and not isinstance(font_size, bool):
            settings.font_size = clamp_font_size(font_size)
        if isinstance(last_page, int) and not isinstance(last_page, bool) and last_page >= 0:
            settings.last_page = last_page
        return settings


class ReaderSettings:
    """Per-document font size and reading progress, kept in one JSON file."""

    def __init__(self, path: Path | None) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._books: dict[str, BookSettings] = self._load()

    def _load(self) -> dict[str, BookSettings]:
        if self.path is None:
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            _debug_log(f"Ignoring unreadable settings {self.path}: {exc}")
            return {}
        if not isinstance(raw, dict):
            return {}
        books_payload = raw.get("books")
        books: dict[str, BookSettings] = {}
        if isinstance(books_payload, dict):
            for identity, entry in books_payload.items():
                settings = BookSettings.from_payload(entry)
                if isinstance(identity, str) and settings is not None:
                    books[identity] = settings
        return books

    def _save_locked(self) -> None:
        if self.path is None:
            return
        payload = {
            "version": SETTINGS_STATE_VERSION,
            "books": {identity: entry.as_payload() for identity, entry in sorted(self._books.items())},
        }
        tmp_path = self.path.with_name(f".{self.path.name}.{uuid4().hex}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            _debug_log(f"Failed to save settings {self.path}: {exc}")
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)

    def get(self, identity: str) -> BookSettings:
        with self._lock:
            entry = self._books.get(identity)
            return BookSettings(entry.font_size, entry.last_page) if entry else BookSettings()

    def saved(self, identity: str) -> BookSettings | None:
        """Settings stored for ``identity``, or ``None`` if it has none yet."""
        with self._lock:
            entry = self._books.get(identity)
            return BookSettings(entry.font_size, entry.last_page) if entry else None

    def font_size(self, identity: str) -> float:
        return self.get(identity).font_size

    def set_font_size(self, identity: str, font_size: float) -> float:
        value = clamp_font_size(font_size)
        with self._lock:
            entry = self._books.setdefault(identity, BookSettings())
            entry.font_size = value
            self._save_locked()
        return value

    def progress(self, identity: str) -> int:
        return self.get(identity).last_page

    def set_progress(self, identity: str, page: int) -> None:
        with self._lock:
            entry = self._books.setdefault(identity, BookSettings())
            entry.last_page = max(0, int(page))
            self._save_locked()

    def forget(self, identity: str) -> bool:
        with self._lock:
            removed = self._books.pop(identity, None) is not None
            if removed:
                self._save_locked()
        return removed


__all__ = ["BookSettings", "ReaderSettings", "SETTINGS_STATE_VERSION"]
