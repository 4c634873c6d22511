"""Logging setup for texture compression.

Console records go through ``tqdm.write`` so they print above an active
progress bar instead of tearing it. The log file gets timestamps; the
console does not.
"""

import logging
import logging.handlers
import os
import threading

from tqdm import tqdm

logger = logging.getLogger("ktxforge")

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# 10 MB max per log file, keep 3 rotated backups
_LOG_MAX_BYTES = 10 * 1024 * 1024
_LOG_BACKUP_COUNT = 3
_setup_lock = threading.Lock()


class ProgressAwareHandler(logging.StreamHandler):
    """Stream handler that writes through tqdm."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=self.stream)
            self.flush()
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)


def _file_handler(log_file: str) -> logging.Handler:
    os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=_LOG_MAX_BYTES, backupCount=_LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def setup_logging(level: str = "INFO", log_file: str = None, force: bool = False):
    """Configure logging without clobbering host-app handlers by default."""
    with _setup_lock:
        _setup_logging_impl(level, log_file, force)


def _setup_logging_impl(level: str, log_file: str, force: bool):
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        logger.warning("Invalid log level '%s', defaulting to INFO", level)
        numeric_level = logging.INFO

    root = logging.getLogger()
    if force or not root.handlers:
        console = ProgressAwareHandler()
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        handlers = [console]
        if log_file:
            handlers.append(_file_handler(log_file))
        logging.basicConfig(level=numeric_level, handlers=handlers, force=force)
        return

    # Embedded mode: only the ktxforge hierarchy is touched, the host's
    # root handlers and level stay as they are.
    forge_logger = logging.getLogger("ktxforge")
    forge_logger.setLevel(numeric_level)
    if not log_file:
        return
    target = os.path.abspath(log_file)
    for handler in forge_logger.handlers:
        if getattr(handler, "baseFilename", None) == target:
            return
    logger.info("Adding file handler: %s", target)
    forge_logger.addHandler(_file_handler(log_file))
