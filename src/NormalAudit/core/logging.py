"""Logging setup for the normal map auditor."""

import logging
import logging.handlers
import os
import sys
import threading

logger = logging.getLogger("normal_audit")

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
# 10 MB per log file, 3 rotated backups
_LOG_MAX_BYTES = 10 * 1024 * 1024
_LOG_BACKUP_COUNT = 3
_setup_lock = threading.Lock()


def _parse_level(level: str) -> int:
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        print(f"Warning: Invalid log level '{level}', defaulting to INFO", file=sys.stderr)
        return logging.INFO
    return numeric_level


def _file_handler(log_file: str) -> logging.Handler:
    os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        log_file, maxBytes=_LOG_MAX_BYTES, backupCount=_LOG_BACKUP_COUNT,
        encoding="utf-8",
    )


def setup_logging(level: str = "INFO", log_file: str = None, force: bool = False):
    """Configure logging without clobbering host-app handlers by default.

    Records go to stderr so stdout stays reserved for reports. When the root
    logger already has handlers (embedded use), only the ``normal_audit``
    hierarchy is touched: its level is set and a file handler is added once
    per log file.
    """
    numeric_level = _parse_level(level)
    with _setup_lock:
        root = logging.getLogger()
        if force or not root.handlers:
            handlers = [logging.StreamHandler(sys.stderr)]
            if log_file:
                handlers.append(_file_handler(log_file))
            logging.basicConfig(
                level=numeric_level, format=_FORMAT, handlers=handlers, force=force,
            )
            logger.debug("Logging configured at %s (file=%s)",
                         logging.getLevelName(numeric_level), log_file or "-")
            return

        logger.setLevel(numeric_level)
        if not log_file:
            return
        target = os.path.abspath(log_file)
        if any(getattr(h, "baseFilename", None) == target for h in logger.handlers):
            return
        handler = _file_handler(log_file)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
        logger.info("Adding file handler: %s", target)
