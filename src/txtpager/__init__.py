from .chapters import (
    Chapter,
    ChapterCache,
    fallback_chapters,
    index_chapters,
    index_chapters_async,
    scan_chapters,
)
from .document import Document, DocumentNotFoundError, TextDecodeError, decode_text, load_document
from .library import Library
from .locator import clamp_page_index, page_index_containing, page_start_offset
from .oracle import Geometry, LineBreakOracle, MonospaceOracle, PillowOracle
from .page_cache import PageCache, PageCacheKey
from .paginator import Pagination, PaginationCancelled, paginate, paginate_document
from .session import ReaderSession

__all__ = [
    "Chapter",
    "ChapterCache",
    "fallback_chapters",
    "index_chapters",
    "index_chapters_async",
    "scan_chapters",
    "Document",
    "DocumentNotFoundError",
    "TextDecodeError",
    "decode_text",
    "load_document",
    "Library",
    "clamp_page_index",
    "page_index_containing",
    "page_start_offset",
    "Geometry",
    "LineBreakOracle",
    "MonospaceOracle",
    "PillowOracle",
    "PageCache",
    "PageCacheKey",
    "Pagination",
    "PaginationCancelled",
    "paginate",
    "paginate_document",
    "ReaderSession",
]
