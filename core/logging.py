"""Logging for the API process, the status poller and cron scripts."""

import logging
import os
import re
import sys
from contextvars import ContextVar
from logging.handlers import WatchedFileHandler
from typing import Optional


request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_FORMAT = "[%(asctime)s.%(msecs)03d] [%(levelname)-5s] [%(name)-20s] [%(request_id)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Loggers that are chatty at INFO and only interesting when they warn
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "sqlalchemy.engine", "uvicorn.access")

# Midtrans server keys and notification signatures must never reach a log sink
_SERVER_KEY_RE = re.compile(r"(?:SB-)?Mid-server-[A-Za-z0-9_\-]+")
_SIGNATURE_RE = re.compile(r"(signature_key['\"]?\s*[:=]\s*['\"]?)[0-9a-fA-F]{32,}")


def redact_secrets(message: str) -> str:
    message = _SERVER_KEY_RE.sub("***", message)
    return _SIGNATURE_RE.sub(r"\1***", message)


class RequestIdFilter(logging.Filter):
    """Stamps every record with the id of the request being served, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class SecretRedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _attach(root: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)


def _has_stdout_handler(root: logging.Logger) -> bool:
    return any(
        type(h) is logging.StreamHandler and getattr(h, "stream", None) is sys.stdout
        for h in root.handlers
    )


def _has_file_handler(root: logging.Logger, path: str) -> bool:
    target = os.path.abspath(path)
    return any(
        isinstance(h, WatchedFileHandler) and h.baseFilename == target for h in root.handlers
    )


def configure_logging(*, environment: str, log_level: str, log_path: Optional[str] = None) -> int:
    """
    Configure the root logger once per process and return the effective level.

    Safe to call again: handlers are only added when missing. `log_path`
    defaults to APP_LOG_PATH and adds a WatchedFileHandler so logrotate can
    move the file underneath a running worker.
    """
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    if not _has_stdout_handler(root):
        _attach(root, logging.StreamHandler(sys.stdout), level)

    log_path = (log_path if log_path is not None else os.getenv("APP_LOG_PATH", "")).strip()
    if log_path and not _has_file_handler(root, log_path):
        try:
            os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
            _attach(root, WatchedFileHandler(log_path), level)
        except OSError as exc:
            root.warning("Cannot log to %s, keeping stdout only: %s", log_path, exc)

    # uvicorn installs its own handlers; route everything through ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True
        uv_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if environment != "production":
        root.debug("Logging configured for %s at %s", environment, logging.getLevelName(level))
    return level
