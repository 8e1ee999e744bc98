from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str | int | None = None) -> None:
    """
    Install one console handler on the root logger.

    Args:
        level: Level name or number; falls back to $INDEXER_LOG_LEVEL, then INFO.
    """
    level = level or os.environ.get("INDEXER_LOG_LEVEL") or logging.INFO
    if isinstance(level, str):
        level = level.upper()

    root = logging.getLogger()
    # Avoid adding handlers multiple times
    for handler in list(root.handlers):
        if getattr(handler, "_indexer_console", False):
            root.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    console_handler._indexer_console = True
    root.addHandler(console_handler)
    root.setLevel(level)

    # uvicorn/httpx chatter stays at WARNING unless explicitly debugging
    if root.level > logging.DEBUG:
        for name in ("httpx", "httpcore", "websockets", "uvicorn.error"):
            logging.getLogger(name).setLevel(logging.WARNING)
