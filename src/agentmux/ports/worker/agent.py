"""Reference agent loop speaking the poll/emit protocol.

A spawned pane runs `python -m agentmux.ports.worker` with AGENT_ID and
AGENT_SESSION_ID set. The loop waits on its inbox, and for every `task`
record emits task_started / task_completed and reports the result to master.
Results are simulated per role:

- worker:   produces a code snippet for `payload.instruction`
- verifier: approves `payload.code` if it prints "Hello World"
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ...contracts.v1 import MASTER
from ...kernel.errors import MalformedRecordError, NotFoundError, TransientIOError
from ...kernel.mailbox import MailboxBus

logger = logging.getLogger("agentmux.worker")


def process_task(role: str, payload: Any) -> Dict[str, Any]:
    data = payload if isinstance(payload, dict) else {}
    if role == "worker":
        instruction = str(data.get("instruction") or "unknown")
        return {
            "status": "success",
            "output": f"# Generated code for {instruction}\nprint('Hello World')",
        }
    if role == "verifier":
        code = str(data.get("code") or "")
        if "Hello World" in code:
            return {"status": "approved", "comments": "LGTM! Code meets requirements."}
        return {"status": "rejected", "comments": "Code is missing required 'Hello World'."}
    return {"status": "unknown_role", "message": "I don't know what to do."}


@dataclass
class WorkerAgent:
    bus: MailboxBus
    agent_id: str
    role: str = ""
    poll_timeout_ms: int = 30_000
    work_delay_s: float = 0.0
    cursor: int = 0
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)

    def __post_init__(self) -> None:
        if not self.role:
            try:
                self.role = self.bus.store.load_agent(self.agent_id).role
            except (NotFoundError, MalformedRecordError):
                self.role = "unknown"

    def _report(self, event_type: str, payload: Dict[str, Any], task_id: Optional[str] = None) -> None:
        try:
            self.bus.emit_event(self.agent_id, event_type, payload, task_id)
        except TransientIOError as e:
            logger.warning(f"Could not record {event_type} in outbox: {e.message}", extra={"agent_id": self.agent_id})
        message: Dict[str, Any] = {"type": event_type, "payload": payload}
        if task_id:
            message["taskId"] = task_id
        try:
            self.bus.send(self.agent_id, message, MASTER)
        except TransientIOError as e:
            logger.warning(f"Could not report {event_type} to master: {e.message}", extra={"agent_id": self.agent_id})

    def announce(self) -> None:
        self._report("agent_ready", {"role": self.role})
        logger.info(f"Agent started. Role: {self.role}", extra={"agent_id": self.agent_id})

    def run_once(self) -> Optional[Dict[str, Any]]:
        """Wait for one inbox record and handle it; returns the record or None on timeout."""
        result = self.bus.wait(self.agent_id, self.cursor, self.poll_timeout_ms)
        if result.status != "command" or result.record is None:
            return None
        self.cursor = result.next_cursor
        record = result.record
        if record.get("type") != "task":
            logger.debug(f"Ignoring {record.get('type')!r} record", extra={"agent_id": self.agent_id})
            return record

        task_id = str(record.get("taskId") or "") or None
        logger.info(f"Received task {task_id}", extra={"agent_id": self.agent_id})
        self._report("task_started", {"taskId": task_id}, task_id)
        if self.work_delay_s > 0:
            time.sleep(self.work_delay_s)
        self._report("task_completed", process_task(self.role, record.get("payload")), task_id)
        return record

    def stop(self) -> None:
        self._stop.set()

    def run_forever(self) -> None:
        self.announce()
        while not self._stop.is_set():
            self.run_once()
