from __future__ import annotations

from copy import copy, deepcopy
from typing import Any
from urllib.parse import unquote

from rich.console import Console
from uvicorn.config import LOGGING_CONFIG
from uvicorn.logging import AccessFormatter as UvicornAccessFormatter

_DEBUG_LOG = False
_console = Console(stderr=True)


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def debug_enabled() -> bool:
    return _DEBUG_LOG


def _debug_log(message: str) -> None:
    if _DEBUG_LOG:
        _console.print(f"[txtpager debug] {message}", markup=False, highlight=False)


class BookPathAccessFormatter(UvicornAccessFormatter):
    """Access log formatter that shows percent-encoded book names (often CJK) as text."""

    def formatMessage(self, record):  # type: ignore[override]
        args = record.args
        if not isinstance(args, tuple) or len(args) != 5 or not isinstance(args[2], str):
            return super().formatMessage(record)
        client_addr, method, full_path, http_version, status_code = args
        readable = copy(record)
        readable.args = (
            client_addr,
            method,
            unquote(full_path, encoding="utf-8", errors="replace"),
            http_version,
            status_code,
        )
        return super().formatMessage(readable)


def build_uvicorn_log_config(debug: bool | None = None) -> dict[str, Any]:
    """Uvicorn logging config with readable book paths; ``debug`` (default: the debug switch) lowers the level."""
    config = deepcopy(LOGGING_CONFIG)
    formatter = config.get("formatters", {}).get("access")
    if isinstance(formatter, dict):
        formatter["()"] = "txtpager.logging_utils.BookPathAccessFormatter"
    if debug_enabled() if debug is None else debug:
        for logger in config.get("loggers", {}).values():
            if isinstance(logger, dict) and "level" in logger:
                logger["level"] = "DEBUG"
    return config


__all__ = [
    "BookPathAccessFormatter",
    "build_uvicorn_log_config",
    "debug_enabled",
    "set_debug_logging",
]
