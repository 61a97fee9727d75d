from __future__ import annotations

from typing import Sequence


def page_index_containing(pages: Sequence[str], target_offset: int) -> int:
    """Index of the page whose ``[start, start + len)`` range holds ``target_offset``; 0 when none does."""
    current = 0
    for index, page in enumerate(pages):
        if current <= target_offset < current + len(page):
            return index
        current += len(page)
    return 0


def clamp_page_index(index: int, page_count: int) -> int:
    if page_count <= 0:
        return 0
    return max(0, min(index, page_count - 1))


def page_start_offset(pages: Sequence[str], index: int) -> int:
    """Character offset at which page ``index`` (clamped) begins."""
    index = clamp_page_index(index, len(pages))
    return sum(len(page) for page in pages[:index])


__all__ = ["clamp_page_index", "page_index_containing", "page_start_offset"]
