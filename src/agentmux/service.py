"""Caller-facing operations over one session.

Every operation goes through `AgentService.handle_raw` (untyped input) or
`handle_request` (a validated `ToolRequest`). Neither raises: each answers
with a `ToolResponse` whose `error.code` labels the failure. The CLI and the
stdio tool server are thin shells over it.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from .contracts.v1 import TOOL_OPS, CreateAgentParams, ToolRequest, ToolResponse
from .kernel.errors import AgentmuxError, ValidationError
from .kernel.lifecycle import AgentLifecycle
from .kernel.mailbox import MailboxBus
from .kernel.poll import PollConfig
from .kernel.session import Session, SessionStore, resolve_session_id
from .kernel.settings import Settings, load_settings
from .paths import workspace_root
from .runners.base import PaneProvider

logger = logging.getLogger("agentmux.service")


def _pydantic_details(e: PydanticValidationError) -> Dict[str, Any]:
    return {"errors": [str(err.get("msg") or "") for err in e.errors()]}


def _int_arg(args: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    raw = args.get(key)
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        return int(raw.strip())
    raise ValidationError(f"{key} must be an integer: {raw!r}")


def _str_arg(args: Dict[str, Any], key: str, *, required: bool = True) -> str:
    value = str(args.get(key) or "").strip()
    if required and not value:
        raise ValidationError(f"missing {key}")
    return value


class AgentService:
    def __init__(
        self,
        session: Session,
        *,
        settings: Optional[Settings] = None,
        provider: Optional[PaneProvider] = None,
    ) -> None:
        self.session = session
        self.settings = settings or Settings()
        self.store = SessionStore(session)
        self.bus = MailboxBus(session, self.store, PollConfig.from_settings(self.settings))
        self._provider = provider
        self._lifecycle: Optional[AgentLifecycle] = None

    @classmethod
    def from_env(
        cls,
        *,
        root: str = "",
        session_id: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        provider: Optional[PaneProvider] = None,
    ) -> "AgentService":
        """Build a service for an entry point, adopting AGENT_SESSION_ID when inherited."""
        source = os.environ if env is None else env
        base = workspace_root(root, source)
        settings = load_settings(base).with_env(source)
        session = Session(root=base, session_id=resolve_session_id(session_id, source))
        return cls(session, settings=settings, provider=provider)

    @property
    def lifecycle(self) -> AgentLifecycle:
        if self._lifecycle is None:
            provider = self._provider
            if provider is None:
                from .runners.tmux import TmuxPaneProvider

                provider = TmuxPaneProvider(split_direction=self.settings.split_direction)
            self._lifecycle = AgentLifecycle(self.session, provider, store=self.store, settings=self.settings)
        return self._lifecycle

    # ------------------------------------------------------------------ ops

    def _session_info(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "session_id": self.session.session_id,
            "root": str(self.session.root),
            "path": str(self.session.path),
        }

    def _agent_create(self, args: Dict[str, Any]) -> Dict[str, Any]:
        params = CreateAgentParams.model_validate(args)
        agent = self.lifecycle.create_agent(params)
        return {"agent": agent.to_doc()}

    def _agent_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return {"agents": [a.to_doc() for a in self.store.list_agents()]}

    def _agent_delete(self, args: Dict[str, Any]) -> Dict[str, Any]:
        agent_id = _str_arg(args, "agent_id")
        self.lifecycle.delete_agent(agent_id)
        return {"agent_id": agent_id, "deleted": True}

    def _agent_output(self, args: Dict[str, Any]) -> Dict[str, Any]:
        agent_id = _str_arg(args, "agent_id")
        lines = _int_arg(args, "lines", 100) or 100
        return {"agent_id": agent_id, "output": self.lifecycle.capture_output(agent_id, lines)}

    def _send_message(self, args: Dict[str, Any]) -> Dict[str, Any]:
        message = args.get("message")
        if not isinstance(message, dict):
            raise ValidationError("message must be a JSON object")
        target = args.get("target")
        if target is None:
            raise ValidationError("missing target")
        report = self.bus.send(_str_arg(args, "agent_id"), message, target)
        return report.model_dump()

    def _read_inbox(self, args: Dict[str, Any]) -> Dict[str, Any]:
        result = self.bus.read(
            _str_arg(args, "agent_id"),
            _int_arg(args, "cursor", 0) or 0,
            _int_arg(args, "limit", None),
        )
        return result.model_dump()

    def _wait_for_command(self, args: Dict[str, Any]) -> Dict[str, Any]:
        result = self.bus.wait(
            _str_arg(args, "agent_id"),
            _int_arg(args, "cursor", 0) or 0,
            _int_arg(args, "timeout_ms", None),
        )
        return result.model_dump()

    def _enqueue_task(self, args: Dict[str, Any]) -> Dict[str, Any]:
        agent_id = _str_arg(args, "agent_id")
        task_id = self.bus.enqueue_task(agent_id, args.get("payload"), _str_arg(args, "task_id", required=False) or None)
        return {"agent_id": agent_id, "task_id": task_id}

    def _emit_event(self, args: Dict[str, Any]) -> Dict[str, Any]:
        event = self.bus.emit_event(
            _str_arg(args, "agent_id"),
            _str_arg(args, "type"),
            args.get("payload"),
            _str_arg(args, "task_id", required=False) or None,
        )
        return {"event": event}

    def _ops(self) -> Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]]:
        return {
            "session_info": self._session_info,
            "agent_create": self._agent_create,
            "agent_list": self._agent_list,
            "agent_delete": self._agent_delete,
            "agent_output": self._agent_output,
            "send_message": self._send_message,
            "read_inbox": self._read_inbox,
            "wait_for_command": self._wait_for_command,
            "enqueue_task": self._enqueue_task,
            "emit_event": self._emit_event,
        }

    def handle_request(self, req: ToolRequest) -> ToolResponse:
        op = req.op
        ctx = {"op": op, "session_id": self.session.session_id}
        try:
            result = self._ops()[op](dict(req.args))
        except AgentmuxError as e:
            logger.info(f"{op} failed: {e.message}", extra=ctx)
            return ToolResponse.failure(e.code, e.message, e.details)
        except PydanticValidationError as e:
            return ToolResponse.failure("validation_error", str(e), _pydantic_details(e))
        except Exception as e:
            logger.exception(f"{op} crashed", extra=ctx)
            return ToolResponse.failure("internal_error", str(e))
        return ToolResponse.success(result)

    def handle_raw(self, op: Any, args: Any = None) -> ToolResponse:
        """Validate an untyped (op, args) pair into a `ToolRequest`, then handle it."""
        try:
            req = ToolRequest.model_validate({"op": op, "args": {} if args is None else args})
        except PydanticValidationError as e:
            if op not in TOOL_OPS:
                return ToolResponse.failure("unknown_op", f"unknown op: {op}", {"known_ops": list(TOOL_OPS)})
            return ToolResponse.failure("validation_error", str(e), _pydantic_details(e))
        return self.handle_request(req)

    def call(self, op: str, **args: Any) -> ToolResponse:
        return self.handle_raw(op, args)
