from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..contracts.v1 import ReadResult
from .errors import ValidationError

logger = logging.getLogger("agentmux.cursor")


def load_lines(path: Path) -> Optional[List[str]]:
    """Snapshot a JSONL log as its list of non-blank raw lines.

    Returns None when the log does not exist (or cannot be read), which callers
    treat exactly like "no new data". A final line without its newline is only
    kept if it already parses: otherwise it is a write still in flight, and
    counting it now would make a reader skip it for good.
    """
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.error(f"Failed to read log {path}: {e}")
        return None

    lines = [ln for ln in text.split("\n") if ln.strip()]
    if lines and not text.endswith("\n") and parse_record(lines[-1]) is None:
        lines.pop()
    return lines


def parse_record(line: str) -> Optional[Dict[str, Any]]:
    try:
        obj = json.loads(line)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def check_cursor(cursor: Any) -> int:
    if isinstance(cursor, bool) or not isinstance(cursor, int):
        raise ValidationError(f"cursor must be a non-negative integer: {cursor!r}")
    if cursor < 0:
        raise ValidationError(f"cursor must be a non-negative integer: {cursor}")
    return cursor


def read_log(path: Path, cursor: int = 0, limit: Optional[int] = None) -> ReadResult:
    """Read records from `cursor` onward, at most `limit` raw lines.

    Malformed lines are dropped from `records` but still consumed, so
    `next_cursor` always equals `cursor` plus the number of raw lines in the
    window and replaying from it never delivers a line twice.
    """
    cursor = check_cursor(cursor)
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
        raise ValidationError(f"limit must be a non-negative integer: {limit!r}")

    lines = load_lines(path)
    if lines is None or cursor >= len(lines):
        return ReadResult(records=[], next_cursor=cursor)

    window = lines[cursor:] if limit is None else lines[cursor : cursor + limit]
    records: List[Dict[str, Any]] = []
    for offset, raw in enumerate(window):
        rec = parse_record(raw)
        if rec is None:
            logger.debug(
                f"Skipping malformed line in {path.name}: {raw[:200]!r}",
                extra={"cursor": cursor + offset},
            )
            continue
        records.append(rec)

    return ReadResult(records=records, next_cursor=cursor + len(window))
