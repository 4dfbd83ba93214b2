"""Central logging configuration for the crawl planner.

Usage: from .logging_config import configure_logging; configure_logging()

Writes structured key=value logs to stdout, or one JSON object per line when
LOG_JSON=true.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional


class KeyValueFormatter(logging.Formatter):
    """Minimal key=value structured formatter.

    Example output:
        2026-10-18T12:00:00.123+00:00 INFO scheduling trial=3 total_seconds=5400 job_id=...
    """
    default_time_format = "%Y-%m-%dT%H:%M:%S%z"

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # type: ignore[override]
        dt = datetime.fromtimestamp(record.created, timezone.utc)
        ms = int(record.msecs)
        return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{ms:03d}+00:00"

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        record.asctime = self.formatTime(record, self.default_time_format)
        extras = []
        for key in ("job_id", "trial", "request_id"):
            val = getattr(record, key, None)
            if val is not None:
                extras.append(f"{key}={val}")
        msg = super().format(record)
        extras_s = " " + " ".join(extras) if extras else ""
        return f"{record.asctime} {record.levelname} {record.name} {msg}{extras_s}"


class JsonFormatter(logging.Formatter):
    _skip = {
        "args", "msg", "message", "exc_info", "exc_text", "stack_info", "lineno", "pathname",
        "filename", "module", "created", "msecs", "relativeCreated", "funcName", "thread",
        "threadName", "processName", "process", "levelname", "levelno", "name", "asctime",
    }

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        base = {
            "ts": KeyValueFormatter().formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for k, v in record.__dict__.items():
            if k.startswith('_') or k in self._skip:
                continue
            if isinstance(v, (str, int, float, bool)) or v is None:
                base.setdefault(k, v)
        if record.exc_info:
            base["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
        return json.dumps(base, ensure_ascii=False)


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in {"1", "true", "yes"}


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root & domain loggers idempotently.

    - LEVEL from LOG_LEVEL env (default INFO)
    - LOG_JSON=true switches to one JSON object per line
    """
    if getattr(configure_logging, "_configured", False):  # type: ignore[attr-defined]
        return

    log_level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    json_mode = _env_bool("LOG_JSON", False)

    root = logging.getLogger()
    root.setLevel(log_level)

    # Clear handlers only if they were auto-added by basicConfig.
    if not getattr(root, "_cp_custom", False):
        for h in list(root.handlers):
            root.removeHandler(h)

    handler = logging.StreamHandler(stream=sys.stdout)
    formatter: logging.Formatter = JsonFormatter() if json_mode else KeyValueFormatter("%(message)s")
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root._cp_custom = True  # type: ignore[attr-defined]

    for noisy in ["uvicorn", "httpx", "httpcore", "asyncio", "pymongo"]:
        logging.getLogger(noisy).setLevel(os.getenv("NOISY_LOG_LEVEL", "WARNING").upper())

    for name in ["scheduling", "routing", "geocoding", "jobs"]:
        logging.getLogger(name)

    configure_logging._configured = True  # type: ignore[attr-defined]


__all__ = ["configure_logging", "KeyValueFormatter", "JsonFormatter"]
