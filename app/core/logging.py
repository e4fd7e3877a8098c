"""Console logging setup.

One stdout handler, plain ``YYYY-MM-DD HH:MM:SS LEVEL logger - message``
lines. Level tags are coloured only for an interactive terminal, and never
when ``NO_COLOR`` is set or ``TERM`` is ``dumb``.
"""

import logging
import os
import sys
from datetime import datetime
from typing import TextIO

from app.core.config import get_settings

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "asyncio")


def colour_enabled(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        return False
    if os.environ.get("NO_COLOR") is not None:
        return False
    return os.environ.get("TERM", "") != "dumb"


class ConsoleFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[34m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, colour: bool = False) -> None:
        super().__init__()
        self.colour = colour

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname
        if self.colour:
            level = f"{self.COLORS.get(level, '')}{level}{self.RESET}"

        result = f"{timestamp} {level} {record.name} - {record.getMessage()}"
        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)
        return result


def setup_logging(level: str | None = None, stream: TextIO | None = None) -> None:
    """Configure the root logger. ``level`` defaults to ``LOG_LEVEL``."""
    if level is None:
        level = get_settings().log_level
    log_level = getattr(logging, level.strip().upper(), logging.INFO)

    stream = stream or sys.stdout
    handler = logging.StreamHandler(stream)
    handler.setFormatter(ConsoleFormatter(colour=colour_enabled(stream)))

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
