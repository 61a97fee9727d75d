from __future__ import annotations

import logging

from txtpager import logging_utils
from txtpager.logging_utils import BookPathAccessFormatter, build_uvicorn_log_config


def test_debug_log_only_when_enabled(capsys, monkeypatch) -> None:
    monkeypatch.setattr(logging_utils, "_DEBUG_LOG", False)
    logging_utils._debug_log("hidden")
    assert capsys.readouterr().err == ""

    logging_utils.set_debug_logging(True)
    logging_utils._debug_log("cache miss [book.txt]")
    assert "[txtpager debug] cache miss [book.txt]" in capsys.readouterr().err


def test_log_config_uses_book_path_formatter() -> None:
    config = build_uvicorn_log_config(debug=False)
    assert config["formatters"]["access"]["()"] == "txtpager.logging_utils.BookPathAccessFormatter"
    assert config["loggers"]["uvicorn"]["level"] != "DEBUG"
    assert build_uvicorn_log_config(debug=True)["loggers"]["uvicorn"]["level"] == "DEBUG"


def test_access_formatter_decodes_book_names() -> None:
    formatter = BookPathAccessFormatter(fmt="%(request_line)s", use_colors=False)
    record = logging.LogRecord(
        name="uvicorn.access",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg='%s - "%s %s HTTP/%s" %d',
        args=("127.0.0.1:5000", "GET", "/api/books/%E5%B0%8F%E8%AF%B4.txt/pages", "1.1", 200),
        exc_info=None,
    )
    assert "/api/books/小说.txt/pages" in formatter.format(record)
