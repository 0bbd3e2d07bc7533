"""Logging setup for the CartScout scraper.

Every module logger hangs off the ``cartscout`` package logger, which owns
the handlers: one console stream and one size-rotated file. The handlers
are installed lazily with environment defaults and can be rebuilt from the
``logging`` section of the configuration once it has been loaded.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any

PACKAGE_LOGGER = "cartscout"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEFAULT_FILE = os.path.join(os.getenv("CARTSCOUT_LOG_DIR", "logs"), "cartscout.log")


def _file_handler(path: str, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")


def configure_logging(
    level: str | None = None,
    *,
    log_file: str | None = DEFAULT_FILE,
    max_bytes: int = 2_000_000,
    backup_count: int = 5,
    console: bool = True,
) -> logging.Logger:
    """Replace the package handlers; ``log_file=None`` logs to the console only."""

    value = (level or DEFAULT_LEVEL).upper()
    root = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = []
    if log_file:
        handlers.append(_file_handler(log_file, max_bytes, backup_count))
    if console:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(value)
        root.addHandler(handler)
    root.setLevel(value)
    root.propagate = False
    return root


def configure_from_config(config: dict[str, Any]) -> logging.Logger:
    section = config.get("logging") or {}
    return configure_logging(
        section.get("level"),
        log_file=section.get("file", DEFAULT_FILE),
        max_bytes=int(section.get("max_bytes", 2_000_000)),
        backup_count=int(section.get("backup_count", 5)),
        console=bool(section.get("console", True)),
    )


def get_logger(name: str) -> logging.Logger:
    """Return a module logger; the package handlers are installed on first use."""

    root = logging.getLogger(PACKAGE_LOGGER)
    if not root.handlers:
        configure_logging()
    return logging.getLogger(name)


def set_level(level: str) -> None:
    """Apply ``level`` to the package logger and its handlers."""

    value = level.upper()
    root = logging.getLogger(PACKAGE_LOGGER)
    root.setLevel(value)
    for handler in root.handlers:
        handler.setLevel(value)
