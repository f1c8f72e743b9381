"""Logging for crawl runs.

Records go to stderr because stdout carries the JSON lines artifacts. An
optional log file receives the same records at DEBUG level so a failed
crawl can be inspected after the fact.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Chatty below WARNING on every page or request
THIRD_PARTY_LOGGERS = ('httpx', 'httpcore', 'asyncio')


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: str = LOG_FORMAT,
) -> None:
    """Configure the root logger for a crawl.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file that receives DEBUG and above
        format_string: Record format shared by all handlers
    """
    console_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(format_string)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    handlers: list[logging.Handler] = [console]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if log_file else console_level)

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(console_level, logging.WARNING))
