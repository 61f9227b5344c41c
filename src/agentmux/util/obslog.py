from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set, TextIO

LOG_LEVEL_ENV = "AGENTMUX_LOG_LEVEL"

# Correlation keys lifted from `logger.*(..., extra={...})` into the JSON line.
_CORRELATION_KEYS = ("session_id", "agent_id", "op", "target", "cursor", "pane")

_configured: Set[str] = set()


def _iso_from_epoch(ts: float) -> str:
    try:
        when = datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return ""
    return when.isoformat().replace("+00:00", "Z")


def _correlation(record: logging.LogRecord) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for key in _CORRELATION_KEYS:
        value = record.__dict__.get(key)
        text = "" if value is None else str(value).strip()
        if text:
            out[key] = text
    return out


class JsonlFormatter(logging.Formatter):
    """One JSON object per log line, on stderr, so stdout stays free for results."""

    def __init__(self, *, component: str):
        super().__init__()
        self.component = str(component or "").strip() or "agentmux"

    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "ts": _iso_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "component": self.component,
            "msg": record.getMessage(),
        }
        doc.update(_correlation(record))
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info)
        try:
            return json.dumps(doc, ensure_ascii=False)
        except (TypeError, ValueError):
            fallback = {"component": self.component, "level": record.levelname, "msg": "(unserializable log record)"}
            return json.dumps(fallback)


def level_number(level: str, default: int = logging.INFO) -> int:
    name = str(level or "").strip().upper()
    value = getattr(logging, name, None) if name else None
    return value if isinstance(value, int) else default


def resolve_log_level(explicit: str = "") -> str:
    """Explicit flag, then AGENTMUX_LOG_LEVEL, then WARNING."""
    chosen = (explicit or "").strip() or str(os.environ.get(LOG_LEVEL_ENV) or "").strip()
    return chosen or "WARNING"


def setup_root_json_logging(
    *,
    component: str,
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> None:
    """Attach a JSONL handler to the root logger, once per component.

    A later call for another component only adjusts the level of the handler
    already installed; `force=True` drops every existing handler first.
    """
    if component in _configured and not force:
        return
    _configured.add(component)

    numeric = level_number(level)
    root = logging.getLogger()
    root.setLevel(numeric)
    if force:
        for h in list(root.handlers):
            root.removeHandler(h)

    existing = [h for h in root.handlers if isinstance(h.formatter, JsonlFormatter)]
    if existing:
        for h in existing:
            h.setLevel(numeric)
        return

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(numeric)
    handler.setFormatter(JsonlFormatter(component=component))
    root.addHandler(handler)
