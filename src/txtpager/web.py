from __future__ import annotations

from fastapi import Body, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse

from .chapters import ChapterCache, serialize_chapters
from .config import ReaderConfig
from .document import Document, DocumentNotFoundError, TextDecodeError
from .library import Library
from .locator import clamp_page_index, page_index_containing, page_start_offset
from .oracle import LineBreakOracle, MonospaceOracle, PillowOracle
from .page_cache import PageCache
from .paginator import Pagination, paginate_document
from .settings import ReaderSettings


def build_oracle(config: ReaderConfig) -> LineBreakOracle:
    if config.font_path is not None:
        return PillowOracle(config.font_path)
    return MonospaceOracle()


def create_app(config: ReaderConfig, oracle: LineBreakOracle | None = None) -> FastAPI:
    root = config.root.expanduser()
    root.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="txtpager")
    settings = ReaderSettings(config.settings_path)
    library = Library(
        root,
        page_cache=PageCache(config.cache_dir),
        chapter_cache=ChapterCache(),
        settings=settings,
        chapter_timeout=config.chapter_timeout,
    )
    layout = oracle if oracle is not None else build_oracle(config)
    app.state.config = config
    app.state.library = library
    app.state.oracle = layout

    def _open(book_id: str) -> Document:
        try:
            return library.open_document(book_id)
        except DocumentNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Book not found") from exc
        except TextDecodeError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

    def _paginate(
        document: Document,
        font_size: float | None,
        width: float | None,
        height: float | None,
        prior_offset: int = 0,
    ) -> Pagination:
        if font_size is None:
            saved = settings.saved(document.identity)
            font_size = saved.font_size if saved is not None else None
        geometry = config.geometry(font_size=font_size, width=width, height=height)
        return paginate_document(
            document,
            geometry,
            layout,
            cache=library.page_cache,
            prior_offset=prior_offset,
        )

    @app.get("/api/books")
    def api_books(sort: str | None = Query(None)) -> JSONResponse:
        books = [
            {
                "id": listing.identity,
                "size": listing.size,
                "modified": listing.modified,
                "chapters": listing.chapter_count,
            }
            for listing in library.list_documents(sort or "name")
        ]
        return JSONResponse({"books": books})

    @app.post("/api/books")
    def api_import_book(file: UploadFile = File(...)) -> JSONResponse:
        try:
            data = file.file.read()
        finally:
            file.file.close()
        try:
            document = library.import_bytes(data, file.filename)
        except TextDecodeError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        chapters = library.chapter_cache.get(document.identity) or []
        return JSONResponse(
            {
                "id": document.identity,
                "encoding": document.encoding,
                "length": document.length,
                "chapters": len(chapters),
            }
        )

    @app.get("/api/books/{book_id}/chapters")
    def api_chapters(book_id: str) -> JSONResponse:
        document = _open(book_id)
        chapters = library.chapter_cache.get(document.identity)
        if chapters is None:
            chapters = library.chapters(book_id)
        return JSONResponse({"book": book_id, "chapters": serialize_chapters(chapters)})

    @app.get("/api/books/{book_id}/pages")
    def api_page(
        book_id: str,
        page: int | None = Query(None),
        offset: int | None = Query(None),
        font_size: float | None = Query(None),
        width: float | None = Query(None),
        height: float | None = Query(None),
    ) -> JSONResponse:
        document = _open(book_id)
        pagination = _paginate(document, font_size, width, height, prior_offset=offset or 0)
        if offset is not None:
            index = pagination.resume_index
        elif page is not None:
            index = clamp_page_index(page, pagination.page_count)
        else:
            index = clamp_page_index(settings.progress(book_id), pagination.page_count)
        geometry = pagination.geometry
        return JSONResponse(
            {
                "book": book_id,
                "font_size": geometry.font_size if geometry else None,
                "page": index,
                "page_count": pagination.page_count,
                "offset": page_start_offset(pagination.pages, index),
                "text": pagination.pages[index],
                "cached": pagination.from_cache,
            }
        )

    @app.get("/api/books/{book_id}/locate")
    def api_locate(
        book_id: str,
        offset: int = Query(...),
        font_size: float | None = Query(None),
        width: float | None = Query(None),
        height: float | None = Query(None),
    ) -> JSONResponse:
        document = _open(book_id)
        pagination = _paginate(document, font_size, width, height)
        return JSONResponse(
            {
                "book": book_id,
                "offset": offset,
                "page": page_index_containing(pagination.pages, offset),
                "page_count": pagination.page_count,
            }
        )

    @app.put("/api/books/{book_id}/progress")
    def api_update_progress(book_id: str, payload: dict[str, object] = Body(...)) -> JSONResponse:
        _open(book_id)
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        page = payload.get("page")
        if not isinstance(page, int) or isinstance(page, bool):
            raise HTTPException(status_code=400, detail="page must be an integer.")
        font_size = payload.get("font_size")
        if isinstance(font_size, (int, float)) and not isinstance(font_size, bool):
            settings.set_font_size(book_id, font_size)
        settings.set_progress(book_id, page)
        entry = settings.get(book_id)
        return JSONResponse({"book": book_id, "page": entry.last_page, "font_size": entry.font_size})

    @app.delete("/api/books/{book_id}/cache")
    def api_clear_cache(book_id: str) -> JSONResponse:
        removed = library.clear_caches(book_id)
        return JSONResponse({"book": book_id, "removed": removed})

    @app.delete("/api/books/{book_id}")
    def api_delete_book(book_id: str) -> JSONResponse:
        try:
            library.delete(book_id)
        except DocumentNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Book not found") from exc
        return JSONResponse({"deleted": True, "book": book_id})

    return app


__all__ = ["build_oracle", "create_app"]
