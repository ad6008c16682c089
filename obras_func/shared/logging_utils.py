# obras_func/shared/logging_utils.py

"""Structured JSON logging for the Function App."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

import numpy as np
import pandas as pd

LOG_LEVEL_ENV = "OBRAS_LOG_LEVEL"

# Attributes every LogRecord carries; anything else came from ``extra=``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


def _json_safe(obj: Any) -> Any:
    """Convert values found in log extras into JSON-serializable ones."""
    if isinstance(obj, (datetime, date, pd.Timestamp)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj) if obj.is_finite() else str(obj)
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, pd.DataFrame):
        # Never dump a whole frame into the logs
        return {
            "__dataframe__": True,
            "shape": [int(obj.shape[0]), int(obj.shape[1])],
            "columns_sample": [str(c) for c in obj.columns[:10]],
        }
    if isinstance(obj, pd.Series):
        return {"__series__": True, "length": int(obj.shape[0])}
    if isinstance(obj, (set, frozenset)):
        return sorted(str(x) for x in obj)
    if isinstance(obj, dict):
        return {str(k): _json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_json_safe(x) for x in obj]
    return str(obj)


class JsonFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat(timespec="milliseconds") + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key in payload:
                continue
            payload[key] = value

        try:
            return json.dumps(payload, ensure_ascii=False, default=_json_safe)
        except (TypeError, ValueError) as exc:  # pragma: no cover - circular extras
            return json.dumps(
                {
                    "timestamp": payload["timestamp"],
                    "level": record.levelname,
                    "message": f"[logging-fallback] {payload['message']}",
                    "logger": record.name,
                    "fallback_error": str(exc),
                },
                ensure_ascii=False,
            )


def get_json_logger(name: str = "obras") -> logging.Logger:
    """Return a logger that writes JSON lines to stdout."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        level_name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
        logger.setLevel(getattr(logging, level_name, logging.INFO))
        logger.propagate = False
    return logger


def log_exception(logger: logging.Logger, message: str, **context: Any) -> None:
    """Log the active exception with structured context."""
    extra = dict(context.pop("extra", None) or {})
    extra["event"] = extra.get("event", "exception")
    logger.exception(message, extra=extra, **context)
