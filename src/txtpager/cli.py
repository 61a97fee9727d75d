from __future__ import annotations

import argparse
import socket
import sys
from importlib import metadata
from pathlib import Path
from typing import Callable

import uvicorn
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .chapters import ChapterCache, index_chapters, write_chapter_sidecar
from .config import ReaderConfig
from .document import DocumentNotFoundError, TextDecodeError
from .library import Library
from .logging_utils import build_uvicorn_log_config, set_debug_logging
from .page_cache import PageCache
from .paginator import paginate_document
from .settings import ReaderSettings
from .web import build_oracle, create_app

try:
    __version__ = metadata.version("txtpager")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+unknown"

_COMMANDS = ("import", "list", "chapters", "paginate", "page", "delete", "clear-cache", "serve")


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"txtpager {__version__}",
    )


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    _add_version_flag(parser)
    parser.add_argument(
        "--library",
        help="Library directory holding imported .txt files (default: $TXTPAGER_LIBRARY or ~/.local/share/txtpager/books).",
    )
    parser.add_argument(
        "--cache-dir",
        help="Directory for cached pages (default: $TXTPAGER_CACHE_DIR or ~/.cache/txtpager).",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Keep paginated pages in memory only.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging (cache misses, chapter fallbacks).",
    )


def _add_geometry_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--font-size", type=float, help="Font size in points (12-36; default: saved value or 18).")
    parser.add_argument("--width", type=float, help="Viewport width in points (default: 390).")
    parser.add_argument("--height", type=float, help="Viewport height in points (default: 844).")
    parser.add_argument("--font", help="TrueType font used to measure glyphs (default: monospace estimate).")


def build_import_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="txtpager import",
        description="Decode a text file, copy it into the library as UTF-8 and index its chapters.",
    )
    _add_common_options(ap)
    ap.add_argument("input_path", help="Path to a plain-text file.")
    ap.add_argument("--name", help="Name to store the document under (default: the file name).")
    ap.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds allowed for chapter indexing before falling back to a single chapter (default: 5).",
    )
    return ap


def build_list_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="txtpager list", description="List documents in the library.")
    _add_common_options(ap)
    ap.add_argument("--sort", choices=["name", "recent"], default="name", help="Sort order (default: name).")
    return ap


def build_chapters_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="txtpager chapters", description="Show the chapter index of a document.")
    _add_common_options(ap)
    ap.add_argument("document", help="Document name in the library.")
    ap.add_argument(
        "--rescan",
        action="store_true",
        help="Re-index chapters with the timeout and rewrite the chapter sidecar.",
    )
    ap.add_argument("--timeout", type=float, default=None, help="Seconds allowed for --rescan (default: 5).")
    return ap


def build_paginate_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="txtpager paginate", description="Paginate a document and cache the pages.")
    _add_common_options(ap)
    _add_geometry_options(ap)
    ap.add_argument("document", help="Document name in the library.")
    return ap


def build_page_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="txtpager page", description="Print one page of a document.")
    _add_common_options(ap)
    _add_geometry_options(ap)
    ap.add_argument("document", help="Document name in the library.")
    ap.add_argument(
        "page",
        nargs="?",
        type=int,
        help="1-based page number (default: the saved reading position).",
    )
    ap.add_argument("--chapter", type=int, help="Jump to the first page of this 1-based chapter.")
    return ap


def build_delete_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="txtpager delete",
        description="Delete a document with its chapters, cached pages and settings.",
    )
    _add_common_options(ap)
    ap.add_argument("document", help="Document name in the library.")
    return ap


def build_clear_cache_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="txtpager clear-cache", description="Remove cached pages for a document.")
    _add_common_options(ap)
    ap.add_argument("document", help="Document name (need not still exist in the library).")
    return ap


def build_serve_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="txtpager serve", description="Serve the library over a JSON API.")
    _add_common_options(ap)
    ap.add_argument("--host", default="0.0.0.0", help="Host interface to bind (default: 0.0.0.0).")
    ap.add_argument("--port", type=int, default=2024, help="Port to listen on (default: 2024).")
    ap.add_argument("--font", help="TrueType font used to measure glyphs (default: monospace estimate).")
    return ap


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="txtpager",
        description="Paginate plain-text books and index their chapters.",
        epilog="Commands: " + ", ".join(_COMMANDS) + ". Run `txtpager <command> -h` for details.",
    )
    _add_version_flag(ap)
    return ap


def _config_from_args(args: argparse.Namespace) -> ReaderConfig:
    config = ReaderConfig()
    if getattr(args, "library", None):
        config.root = Path(args.library).expanduser()
    if getattr(args, "no_cache", False):
        config.cache_dir = None
    elif getattr(args, "cache_dir", None):
        config.cache_dir = Path(args.cache_dir).expanduser()
    if getattr(args, "width", None):
        config.viewport_width = args.width
    if getattr(args, "height", None):
        config.viewport_height = args.height
    if getattr(args, "font", None):
        config.font_path = Path(args.font).expanduser()
    if getattr(args, "timeout", None) is not None:
        config.chapter_timeout = args.timeout
    return config


def _library_from_config(config: ReaderConfig) -> Library:
    return Library(
        config.root,
        page_cache=PageCache(config.cache_dir),
        chapter_cache=ChapterCache(),
        settings=ReaderSettings(config.settings_path),
        chapter_timeout=config.chapter_timeout,
    )


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def _run_import(args: argparse.Namespace) -> int:
    source = Path(args.input_path).expanduser()
    if not source.is_file():
        raise SystemExit(f"Input file not found: {source}")
    library = _library_from_config(_config_from_args(args))
    try:
        document = library.import_file(source, args.name)
    except TextDecodeError as exc:
        raise SystemExit(str(exc)) from exc
    chapters = library.chapter_cache.get(document.identity) or []
    print(f"Imported {document.identity} ({document.encoding}, {document.length} characters)")
    print(f"Chapters: {len(chapters)}")
    return 0


def _run_list(args: argparse.Namespace) -> int:
    library = _library_from_config(_config_from_args(args))
    listings = library.list_documents(args.sort)
    if not listings:
        print(f"No documents in {library.root}")
        return 0
    table = Table("Document", "Size", "Chapters")
    for listing in listings:
        chapters = "-" if listing.chapter_count is None else str(listing.chapter_count)
        table.add_row(listing.identity, _format_size(listing.size), chapters)
    Console().print(table)
    return 0


def _run_chapters(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    library = _library_from_config(config)
    try:
        if args.rescan:
            document = library.open_document(args.document)
            chapters = index_chapters(document.text, config.chapter_timeout)
            if document.path is not None:
                write_chapter_sidecar(document.path, chapters)
            library.chapter_cache.put(document.identity, chapters)
        else:
            chapters = library.chapters(args.document)
    except DocumentNotFoundError as exc:
        raise SystemExit(str(exc)) from exc
    for index, chapter in enumerate(chapters, start=1):
        print(f"{index:>4}  {chapter.offset:>9}  {chapter.title}")
    return 0


def _progress_handler(console: Console, label: str) -> tuple[Progress | None, Callable[[int, int], None] | None]:
    if not console.is_terminal:
        return None, None
    progress = Progress(
        TextColumn("{task.description}", justify="left"),
        BarColumn(bar_width=None),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    task_id = progress.add_task(label, total=None)

    def handler(done: int, total: int) -> None:
        progress.update(task_id, completed=done, total=total)

    return progress, handler


def _run_paginate(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    library = _library_from_config(config)
    try:
        document = library.open_document(args.document)
    except DocumentNotFoundError as exc:
        raise SystemExit(str(exc)) from exc
    font_size = args.font_size
    if not font_size:
        saved = library.settings.saved(document.identity)
        font_size = saved.font_size if saved is not None else None
    geometry = config.geometry(font_size=font_size)
    console = Console(stderr=True)
    progress, handler = _progress_handler(console, f"Paginating {document.identity}")
    if progress is not None:
        progress.start()
    try:
        pagination = paginate_document(
            document,
            geometry,
            build_oracle(config),
            cache=library.page_cache,
            progress=handler,
        )
    finally:
        if progress is not None:
            progress.stop()
    source = "cache" if pagination.from_cache else "layout"
    print(
        f"{document.identity}: {pagination.page_count} pages at {geometry.font_size:g}pt "
        f"({geometry.viewport_width:g}x{geometry.viewport_height:g}, from {source})"
    )
    return 0


def _run_page(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    library = _library_from_config(config)
    try:
        session = library.open_session(args.document, build_oracle(config), config.geometry())
    except DocumentNotFoundError as exc:
        raise SystemExit(str(exc)) from exc
    with session:
        session.open()
        if args.font_size:
            session.set_font_size(args.font_size).result()
        if args.chapter is not None:
            chapters = session.chapters()
            if not 1 <= args.chapter <= len(chapters):
                raise SystemExit(f"Chapter {args.chapter} out of range (1-{len(chapters)}).")
            session.go_to_chapter(chapters[args.chapter - 1])
        elif args.page is not None:
            session.go_to_page(args.page - 1)
        print(session.current_text, end="" if session.current_text.endswith("\n") else "\n")
        print(f"-- page {session.current_page + 1} of {session.page_count} --", file=sys.stderr)
    return 0


def _run_delete(args: argparse.Namespace) -> int:
    library = _library_from_config(_config_from_args(args))
    try:
        library.delete(args.document)
    except DocumentNotFoundError as exc:
        raise SystemExit(str(exc)) from exc
    print(f"Deleted {args.document}")
    return 0


def _run_clear_cache(args: argparse.Namespace) -> int:
    library = _library_from_config(_config_from_args(args))
    removed = library.clear_caches(args.document)
    print(f"Removed {removed} cached pagination(s) for {args.document}")
    return 0


def _resolve_local_ip(bind_host: str) -> str:
    if bind_host not in {"0.0.0.0", "::"}:
        return bind_host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


def _run_serve(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    app = create_app(config)
    url = f"http://{_resolve_local_ip(args.host)}:{args.port}/"
    print(f"Serving txtpager library from {config.root}")
    print(f"API URL: {url}api/books")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(app, host=args.host, port=args.port, log_config=build_uvicorn_log_config())
    return 0


_HANDLERS: dict[str, tuple[Callable[[], argparse.ArgumentParser], Callable[[argparse.Namespace], int]]] = {
    "import": (build_import_parser, _run_import),
    "list": (build_list_parser, _run_list),
    "chapters": (build_chapters_parser, _run_chapters),
    "paginate": (build_paginate_parser, _run_paginate),
    "page": (build_page_parser, _run_page),
    "delete": (build_delete_parser, _run_delete),
    "clear-cache": (build_clear_cache_parser, _run_clear_cache),
    "serve": (build_serve_parser, _run_serve),
}


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] in _HANDLERS:
        build, run = _HANDLERS[argv[0]]
        args = build().parse_args(argv[1:])
        set_debug_logging(bool(getattr(args, "debug", False)))
        return run(args)

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv)
    parser.error(f"unknown command: {argv[0]}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
