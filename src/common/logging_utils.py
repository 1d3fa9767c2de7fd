"""Centralized logging configuration and structured debug helpers.

All modules obtain loggers via ``logging.getLogger(__name__)``; only the
CLI entrypoint calls :func:`configure_logging`. DEBUG traces attach their
structured fields through ``extra=extra_context(...)`` so that the JSON
formatter can emit them as top-level keys.
"""
from __future__ import annotations

import json
import logging
import os
import sys
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants

ENV_LOG_LEVEL = "DEPGRAPH_LOG_LEVEL"
ENV_LOG_FORMAT = "DEPGRAPH_LOG_FORMAT"

# Attributes present on every LogRecord; anything else came from extra=
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON including extra_context fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging() -> None:
    """Configure the root logger from environment variables.

    DEPGRAPH_LOG_LEVEL selects the level (default INFO) and
    DEPGRAPH_LOG_FORMAT selects ``human`` (default) or ``json`` output.
    Safe to call more than once; previous handlers installed here are replaced.
    """
    level_name = os.environ.get(ENV_LOG_LEVEL, "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = os.environ.get(ENV_LOG_FORMAT, "human").lower()

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
    handler.set_name("depgraph")

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == "depgraph":
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping for structured log records, dropping None values."""
    return {key: value for key, value in fields.items() if value is not None}


def safe_url(url: Optional[str]) -> Optional[str]:
    """Strip credentials, query and fragment from a URL for logging."""
    if not url:
        return url
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urllib.parse.urlunsplit((parts.scheme, netloc, parts.path, "", ""))


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self) -> None:
        self._start: Optional[float] = None
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        """Elapsed milliseconds; reads the running time while still inside the block."""
        if self._start is None:
            return 0.0
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000.0, 2)
