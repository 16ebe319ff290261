"""Installer log file.

The TUI owns the terminal, so records go to a rotating file unless a console
handler is requested. When the requested file cannot be opened the log lands
in the working directory instead.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_PATH = str(Path.home() / ".nqinstall" / "installer.log")
FALLBACK_LOG_NAME = "nqinstall.log"

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

_FILE_HANDLER = "nqinstall-file"
_MAX_BYTES = 1_000_000
_BACKUPS = 3


def _file_handler(path: Path) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=_MAX_BYTES, backupCount=_BACKUPS, encoding="utf-8")
    handler.set_name(_FILE_HANDLER)
    return handler


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = False,
) -> str:
    """Attach the installer's file handler to the root logger.

    Calling it again only adjusts the level. Returns the file actually written.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers:
        if existing.get_name() == _FILE_HANDLER and isinstance(existing, RotatingFileHandler):
            return existing.baseFilename

    requested = Path(log_path).expanduser()
    fallback_reason = None
    try:
        handler = _file_handler(requested)
    except OSError as exc:
        fallback_reason = exc
        handler = _file_handler(Path.cwd() / FALLBACK_LOG_NAME)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    log = logging.getLogger(__name__)
    if fallback_reason is not None:
        log.warning("Cannot write %s (%s); logging to %s", requested, fallback_reason, handler.baseFilename)
    log.info("Logging at %s to %s", logging.getLevelName(level), handler.baseFilename)
    return handler.baseFilename
