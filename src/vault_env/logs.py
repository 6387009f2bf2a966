"""Logging setup for the vault-env process.

Records from every ``vault_env.*`` logger are routed by level:

* DEBUG and INFO go to stdout;
* WARNING and above go to stderr;
* everything at INFO and above also goes to an optional UDP syslog server.

Lines are rendered as logfmt (``time=... level=INFO msg="..."``) or, with
``VAULT_JSON_LOG``, as one JSON object per line.  Attributes passed through
``extra=`` are rendered after the message, and every record carries
``app=vault-env``.
"""
from __future__ import annotations

import json
import logging
import logging.handlers
import socket
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

from vault_env.core.config import VaultEnvConfig

APP_NAME = "vault-env"
ROOT_LOGGER = "vault_env"

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_LEVEL_NAMES: dict[int, str] = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}

# Attributes every LogRecord has; anything else came from ``extra=``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)),
) | {"message", "asctime", "taskName"}


def parse_level(text: str) -> int:
    """Map a level name to a ``logging`` level, falling back to INFO."""
    return _LEVELS.get(text.strip().lower(), logging.INFO)


def record_attrs(record: logging.LogRecord) -> dict[str, Any]:
    """Return the structured attributes attached to *record*."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, tz=UTC).isoformat(
        timespec="milliseconds",
    )


class _AppFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.app = APP_NAME
        return True


class _MaxLevelFilter(logging.Filter):
    """Pass records up to and including *max_level*."""

    def __init__(self, max_level: int) -> None:
        super().__init__()
        self._max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self._max_level


class LogfmtFormatter(logging.Formatter):
    """Render records as ``key=value`` pairs."""

    @staticmethod
    def _quote(value: Any) -> str:
        text = "" if value is None else str(value)
        if text == "" or any(ch in text for ch in ' ="\n\t'):
            return json.dumps(text)
        return text

    def format(self, record: logging.LogRecord) -> str:
        pairs: list[tuple[str, Any]] = [
            ("time", _timestamp(record)),
            ("level", _LEVEL_NAMES.get(record.levelno, record.levelname)),
            ("msg", record.getMessage()),
        ]
        attrs = record_attrs(record)
        if "app" in attrs:
            pairs.append(("app", attrs.pop("app")))
        pairs.extend(attrs.items())
        if record.exc_info:
            pairs.append(("error", self.formatException(record.exc_info)))
        return " ".join(f"{key}={self._quote(value)}" for key, value in pairs)


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": _timestamp(record),
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname),
            "msg": record.getMessage(),
        }
        attrs = record_attrs(record)
        if "app" in attrs:
            payload["app"] = attrs.pop("app")
        payload.update(attrs)
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _syslog_handler(address: str) -> logging.Handler | None:
    host, _, port = address.rpartition(":")
    try:
        return logging.handlers.SysLogHandler(
            address=(host or "localhost", int(port)),
            socktype=socket.SOCK_DGRAM,
        )
    except (OSError, ValueError):
        # The log server is best effort; startup goes on without it.
        return None


def configure_logging(
    config: VaultEnvConfig,
    *,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> logging.Logger:
    """Install the vault-env handlers and return the package logger.

    Calling it again replaces the previously installed handlers.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(parse_level(config.log_level))
    logger.propagate = False

    formatter: logging.Formatter = JsonFormatter() if config.json_log else LogfmtFormatter()

    out_handler = logging.StreamHandler(stdout or sys.stdout)
    out_handler.addFilter(_MaxLevelFilter(logging.INFO))

    err_handler = logging.StreamHandler(stderr or sys.stderr)
    err_handler.setLevel(logging.WARNING)

    handlers: list[logging.Handler] = [out_handler, err_handler]

    if config.log_server:
        syslog = _syslog_handler(config.log_server)
        if syslog is not None:
            syslog.setLevel(logging.INFO)
            handlers.append(syslog)

    app_filter = _AppFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(app_filter)
        logger.addHandler(handler)
    return logger
