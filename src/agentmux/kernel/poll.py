from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from ..contracts.v1 import WaitResult
from .cursor import check_cursor, load_lines, parse_record
from .settings import DEFAULT_POLL_INTERVAL_MS, DEFAULT_POLL_TIMEOUT_MS, Settings

logger = logging.getLogger("agentmux.poll")


@dataclass(frozen=True)
class PollConfig:
    interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    default_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS
    clock: Callable[[], float] = field(default=time.monotonic, repr=False, compare=False)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollConfig":
        return cls(interval_ms=settings.poll_interval_ms, default_timeout_ms=settings.poll_timeout_ms)


def wait_for_record(
    path: Path,
    cursor: int = 0,
    *,
    timeout_ms: Optional[int] = None,
    config: Optional[PollConfig] = None,
) -> WaitResult:
    """Block until the record at `cursor` exists or the timeout elapses.

    Exactly one record is handed back per call. Malformed lines are stepped
    over without sleeping. The log is checked at least once, even for a zero
    timeout. A timeout returns the cursor the caller passed in,
    so retrying with it loses nothing.
    """
    cfg = config or PollConfig()
    start_cursor = check_cursor(cursor)
    budget_ms = cfg.default_timeout_ms if timeout_ms is None else max(int(timeout_ms), 0)
    deadline = cfg.clock() + budget_ms / 1000.0
    interval_s = max(cfg.interval_ms, 1) / 1000.0

    pos = start_cursor
    while True:
        lines = load_lines(path)
        while lines is not None and pos < len(lines):
            rec = parse_record(lines[pos])
            if rec is not None:
                return WaitResult(status="command", record=rec, next_cursor=pos + 1)
            logger.debug(f"Skipping malformed line in {path.name}", extra={"cursor": pos})
            pos += 1

        remaining = deadline - cfg.clock()
        if remaining <= 0:
            break
        cfg.sleep(min(interval_s, remaining))

    return WaitResult(status="timeout", record=None, next_cursor=start_cursor)
