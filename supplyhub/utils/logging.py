from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from flask import Flask, g, has_request_context

LOG_FORMAT = "%(asctime)s [%(levelname)s] [req=%(request_id)s] %(name)s: %(message)s"
LOG_FILENAME = "supplyhub.log"

# Third-party loggers that are chatty at INFO.
QUIET_LOGGERS = ("googleapiclient.discovery_cache", "urllib3", "cloudinary")


class RequestIdFilter(logging.Filter):
    """Stamp each record with the id of the request that produced it."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = getattr(g, "request_id", None) if has_request_context() else None
        record.request_id = request_id or "-"
        return True


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    logger.addHandler(handler)


def _log_dir(app: Flask) -> Path:
    configured = app.config.get("LOG_DIR")
    return Path(configured) if configured else Path(app.root_path).parent / "logs"


def _wants_file_logging(app: Flask) -> bool:
    if app.testing:
        return False
    return str(app.config.get("LOG_TO_FILE", "true")).strip().lower() in {"1", "true", "yes"}


def configure_logging(app: Flask) -> Path | None:
    """Route application logs to stdout and, outside tests, a rotating file.

    Safe to call more than once; handlers are only added when missing.
    Returns the log file path, or ``None`` when file logging is off.
    """

    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not any(type(handler) is logging.StreamHandler for handler in root_logger.handlers):
        _attach(root_logger, logging.StreamHandler(sys.stdout), level)

    log_path = None
    if _wants_file_logging(app):
        log_dir = _log_dir(app)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / LOG_FILENAME
        already_attached = any(
            isinstance(handler, RotatingFileHandler)
            and handler.baseFilename == os.path.abspath(log_path)
            for handler in root_logger.handlers
        )
        if not already_attached:
            _attach(
                root_logger,
                RotatingFileHandler(
                    log_path,
                    maxBytes=int(app.config.get("LOG_MAX_BYTES", 5 * 1024 * 1024)),
                    backupCount=int(app.config.get("LOG_BACKUP_COUNT", 5)),
                ),
                level,
            )

    for handler in app.logger.handlers:
        if not any(isinstance(existing, RequestIdFilter) for existing in handler.filters):
            handler.addFilter(RequestIdFilter())
    app.logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_path
