from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..contracts.v1 import ALL, BROADCAST, MASTER, ReadResult, SendReport, Target, WaitResult
from ..util.fs import append_line
from ..util.time import now_ms
from .cursor import read_log
from .errors import AgentmuxError, NotFoundError, TransientIOError, ValidationError
from .poll import PollConfig, wait_for_record
from .session import Session, SessionStore, validate_entity_id

logger = logging.getLogger("agentmux.mailbox")

OUTBOX_SUFFIX = "/outbox"


class MailboxBus:
    """Routes records into per-entity JSONL logs of one session.

    Logs are addressed by reference: "master" (orchestrator inbox),
    "broadcast" (session-wide copy of every send and emit), an agent id (that
    agent's inbox) or "<agent id>/outbox" (events the agent emitted).
    """

    def __init__(self, session: Session, store: Optional[SessionStore] = None, poll: Optional[PollConfig] = None):
        self.session = session
        self.store = store or SessionStore(session)
        self.poll = poll or PollConfig()

    # ------------------------------------------------------------------ paths

    def log_path(self, log_ref: str) -> Path:
        if not isinstance(log_ref, str) or not log_ref.strip():
            raise ValidationError(f"invalid log reference: {log_ref!r}")
        ref = log_ref.strip()
        if ref == MASTER:
            return self.session.master_inbox_path
        if ref == BROADCAST:
            return self.session.broadcast_path
        if ref.endswith(OUTBOX_SUFFIX):
            return self.session.outbox_path(ref[: -len(OUTBOX_SUFFIX)])
        return self.session.inbox_path(ref)

    # ------------------------------------------------------------------ writes

    def _resolve_targets(self, sender: str, target: Target) -> List[str]:
        if isinstance(target, str):
            t = target.strip()
            if t == MASTER:
                return [MASTER]
            if t == ALL:
                out = [] if sender == MASTER else [MASTER]
                for agent in self.store.list_agents():
                    if agent.id != sender and agent.id not in out:
                        out.append(agent.id)
                return out
            tid = validate_entity_id(t)
            return [] if tid == sender else [tid]

        if isinstance(target, (list, tuple)):
            if not target:
                raise ValidationError("target list is empty")
            out: List[str] = []
            for item in target:
                if isinstance(item, str) and item.strip() == ALL:
                    raise ValidationError("'all' cannot be combined with other targets")
                tid = validate_entity_id(item)
                if tid == sender or tid in out:
                    continue
                out.append(tid)
            return out

        raise ValidationError(f"invalid target: {target!r}")

    def _deliver(self, ref: str, line: str) -> None:
        if ref == MASTER:
            self.session.path.mkdir(parents=True, exist_ok=True)
            append_line(self.session.master_inbox_path, line)
            return
        if not self.session.agent_dir(ref).is_dir():
            raise FileNotFoundError(f"agent not found: {ref}")
        append_line(self.session.inbox_path(ref), line)

    def _mirror(self, entry: Dict[str, Any]) -> None:
        try:
            self.session.path.mkdir(parents=True, exist_ok=True)
            append_line(self.session.broadcast_path, json.dumps(entry, ensure_ascii=False))
        except OSError as e:
            logger.warning(f"Failed to append to broadcast log: {e}", extra={"session_id": self.session.session_id})

    def send(self, from_id: str, message: Dict[str, Any], target: Target) -> SendReport:
        """Append `message` to every routed log, tagged with sender and time.

        Each target is attempted independently: a failed append is logged and
        reported but never undoes or blocks delivery to the others.
        """
        sender = validate_entity_id(from_id)
        if not isinstance(message, dict):
            raise ValidationError("message must be a JSON object")
        targets = self._resolve_targets(sender, target)

        ts = now_ms()
        entry = {**message, "from": sender, "timestamp": ts}
        line = json.dumps(entry, ensure_ascii=False)
        report = SendReport(target=target, timestamp=ts)

        for ref in targets:
            try:
                self._deliver(ref, line)
            except (OSError, AgentmuxError) as e:
                logger.warning(
                    f"Failed to deliver message to {ref} inbox: {e}",
                    extra={"session_id": self.session.session_id, "agent_id": sender, "target": ref},
                )
                report.failed[ref] = str(e)
                continue
            report.delivered.append(ref)

        if targets == [MASTER] and report.failed:
            raise TransientIOError(
                f"failed to deliver to master inbox: {report.failed[MASTER]}",
                details={"failed": report.failed},
            )

        if report.delivered:
            self._mirror({**entry, "target": target})
        return report

    def enqueue_task(self, agent_id: str, payload: Any, task_id: Optional[str] = None) -> str:
        """Queue a `task` record in an agent's inbox; returns the task id."""
        aid = validate_entity_id(agent_id, allow_master=False)
        if not self.store.exists(aid):
            raise NotFoundError(f"agent not found: {aid}", details={"agent_id": aid})
        tid = (task_id or "").strip() or uuid.uuid4().hex
        report = self.send(MASTER, {"type": "task", "taskId": tid, "payload": payload}, aid)
        if report.failed:
            raise TransientIOError(f"failed to enqueue task for {aid}: {report.failed[aid]}", details={"failed": report.failed})
        return tid

    def emit_event(
        self,
        agent_id: str,
        event_type: str,
        payload: Any = None,
        task_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record an agent-side event in its outbox and the session broadcast log."""
        aid = validate_entity_id(agent_id, allow_master=False)
        kind = str(event_type or "").strip()
        if not kind:
            raise ValidationError("missing event type")
        if not self.store.exists(aid):
            raise NotFoundError(f"agent not found: {aid}", details={"agent_id": aid})

        event: Dict[str, Any] = {"type": kind, "agentId": aid}
        if task_id:
            event["taskId"] = task_id
        event["payload"] = payload if payload is not None else {}
        event["timestamp"] = now_ms()

        try:
            append_line(self.session.outbox_path(aid), json.dumps(event, ensure_ascii=False))
        except OSError as e:
            raise TransientIOError(f"failed to append to outbox of {aid}: {e}") from e
        self._mirror(event)
        return event

    # ------------------------------------------------------------------ reads

    def read(self, log_ref: str, cursor: int = 0, limit: Optional[int] = None) -> ReadResult:
        return read_log(self.log_path(log_ref), cursor, limit)

    def wait(self, agent_id: str, cursor: int = 0, timeout_ms: Optional[int] = None) -> WaitResult:
        """Block for the next record in an agent's inbox (see `wait_for_record`)."""
        aid = validate_entity_id(agent_id, allow_master=False)
        return wait_for_record(self.session.inbox_path(aid), cursor, timeout_ms=timeout_ms, config=self.poll)
