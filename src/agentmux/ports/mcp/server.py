"""
agentmux MCP server: orchestrator/agent mailbox tools

Tools exposed over stdio:
- agent_create: Spawn an agent CLI in a new tmux pane
- agent_list: List agents of the current session
- agent_delete: Delete an agent and its pane
- agent_output: Capture recent pane output of an agent
- send_message: Route a message to master / all / specific agents
- read_inbox: Non-blocking ranged read of an inbox with a cursor
- wait_for_command: Blocking poll for the next record in an agent inbox
- enqueue_task: Queue a task record for an agent
- emit_event: Record an agent-side event in its outbox

The orchestrator starts this server without AGENT_SESSION_ID and gets a fresh
session; panes it spawns inherit the id and therefore join the same session.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from ...contracts.v1 import ALL, MASTER
from ...service import AgentService


_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

_SERVICE: Optional[AgentService] = None


class MCPError(Exception):
    """MCP tool call error"""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


def get_service() -> AgentService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = AgentService.from_env()
    return _SERVICE


def set_service(service: Optional[AgentService]) -> None:
    global _SERVICE
    _SERVICE = service


def validate_agent_id(value: Any) -> str:
    """Accept "master" or a UUID; anything else could escape the session directory."""
    s = str(value or "").strip()
    if s == MASTER or _UUID_RE.match(s):
        return s
    raise MCPError(code="invalid_agent_id", message=f'Invalid agent_id: "{value}"')


def _validate_target(target: Any) -> Any:
    if isinstance(target, list):
        return [validate_agent_id(t) for t in target]
    if isinstance(target, str) and target.strip() == ALL:
        return ALL
    return validate_agent_id(target)


def _call_or_raise(service: AgentService, op: str, args: Dict[str, Any]) -> Dict[str, Any]:
    resp = service.handle_raw(op, args)
    if not resp.ok:
        err = resp.error
        if err is None:
            raise MCPError(code="internal_error", message=f"{op} failed")
        raise MCPError(code=err.code, message=err.message, details=err.details)
    return resp.result


_AGENT_ID_PROP = {"type": "string", "description": "Agent ID (UUID), or 'master' for the orchestrator"}

MCP_TOOLS = [
    {
        "name": "agent_create",
        "description": "Create a new agent in a new tmux pane. After creating agents and sending messages, use read_inbox to monitor results.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "role": {"type": "string"},
                "model": {"type": "string"},
                "args": {"type": "array", "items": {"type": "string"}},
                "cwd": {"type": "string"},
                "env": {"type": "object", "additionalProperties": {"type": "string"}},
                "executable_path": {"type": "string", "description": "Run this command instead of the agent CLI"},
            },
            "required": ["name", "role"],
        },
    },
    {
        "name": "agent_list",
        "description": "List all agents of the current session",
        "inputSchema": {"type": "object", "properties": {}, "required": []},
    },
    {
        "name": "agent_delete",
        "description": "Delete an agent and its tmux pane",
        "inputSchema": {
            "type": "object",
            "properties": {"agent_id": {"type": "string"}},
            "required": ["agent_id"],
        },
    },
    {
        "name": "agent_output",
        "description": "Capture the last lines printed in an agent's pane",
        "inputSchema": {
            "type": "object",
            "properties": {
                "agent_id": {"type": "string"},
                "lines": {"type": "integer", "default": 100},
            },
            "required": ["agent_id"],
        },
    },
    {
        "name": "send_message",
        "description": "Send a message to one or more agents (or master). After sending a task to an agent, you MUST actively poll for their response by calling read_inbox(agent_id='master') repeatedly until they reply.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "agent_id": {"type": "string", "description": "Sender's agent ID (use 'master' if orchestrator is sending)"},
                "message": {"type": "object", "description": "Message payload to send"},
                "target": {
                    "oneOf": [{"type": "string"}, {"type": "array", "items": {"type": "string"}}],
                    "description": "Routing: 'master' to send to orchestrator, 'all' to broadcast, an agent_id or [agent_ids] for targeted delivery.",
                },
            },
            "required": ["agent_id", "message", "target"],
        },
    },
    {
        "name": "read_inbox",
        "description": "Read messages from an inbox. Use agent_id='master' to read the orchestrator's inbox. IMPORTANT: This is non-blocking. If waiting for an agent's response, you MUST call this tool repeatedly in a loop (using the returned next_cursor) until the expected message arrives.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "agent_id": _AGENT_ID_PROP,
                "cursor": {"type": "integer", "description": "Line index to resume from (default 0)"},
                "limit": {"type": "integer", "description": "Maximum number of lines to consume"},
            },
            "required": ["agent_id"],
        },
    },
    {
        "name": "wait_for_command",
        "description": "Internal: Agent polls for new commands from its inbox",
        "inputSchema": {
            "type": "object",
            "properties": {
                "agent_id": {"type": "string"},
                "timeout_ms": {"type": "integer"},
                "cursor": {"type": "integer"},
            },
            "required": ["agent_id", "timeout_ms", "cursor"],
        },
    },
    {
        "name": "enqueue_task",
        "description": "Queue a task (type='task') in an agent's inbox on behalf of the orchestrator. Returns the task id.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "agent_id": {"type": "string"},
                "payload": {"type": "object"},
                "task_id": {"type": "string"},
            },
            "required": ["agent_id", "payload"],
        },
    },
    {
        "name": "emit_event",
        "description": "Record an event emitted by an agent (e.g. agent_ready, task_started) in its outbox.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "agent_id": {"type": "string"},
                "type": {"type": "string"},
                "payload": {"type": "object"},
                "task_id": {"type": "string"},
            },
            "required": ["agent_id", "type"],
        },
    },
]


def handle_tool_call(name: str, arguments: Dict[str, Any], *, service: Optional[AgentService] = None) -> Dict[str, Any]:
    """Handle MCP tool call"""
    svc = service or get_service()

    if name == "agent_create":
        env_raw = arguments.get("env")
        args_raw = arguments.get("args")
        params: Dict[str, Any] = {
            "name": str(arguments.get("name") or ""),
            "role": str(arguments.get("role") or ""),
            "env": dict(env_raw) if isinstance(env_raw, dict) else {},
            "args": list(args_raw) if isinstance(args_raw, list) else [],
        }
        for key in ("cwd", "model", "executable_path"):
            value = str(arguments.get(key) or "").strip()
            if value:
                params[key] = value
        return _call_or_raise(svc, "agent_create", params)

    if name == "agent_list":
        return _call_or_raise(svc, "agent_list", {})

    if name == "agent_delete":
        return _call_or_raise(svc, "agent_delete", {"agent_id": validate_agent_id(arguments.get("agent_id"))})

    if name == "agent_output":
        return _call_or_raise(
            svc,
            "agent_output",
            {"agent_id": validate_agent_id(arguments.get("agent_id")), "lines": arguments.get("lines")},
        )

    if name == "send_message":
        return _call_or_raise(
            svc,
            "send_message",
            {
                "agent_id": validate_agent_id(arguments.get("agent_id")),
                "message": arguments.get("message"),
                "target": _validate_target(arguments.get("target")),
            },
        )

    if name == "read_inbox":
        return _call_or_raise(
            svc,
            "read_inbox",
            {
                "agent_id": validate_agent_id(arguments.get("agent_id")),
                "cursor": arguments.get("cursor"),
                "limit": arguments.get("limit"),
            },
        )

    if name == "wait_for_command":
        return _call_or_raise(
            svc,
            "wait_for_command",
            {
                "agent_id": validate_agent_id(arguments.get("agent_id")),
                "cursor": arguments.get("cursor"),
                "timeout_ms": arguments.get("timeout_ms"),
            },
        )

    if name == "enqueue_task":
        return _call_or_raise(
            svc,
            "enqueue_task",
            {
                "agent_id": validate_agent_id(arguments.get("agent_id")),
                "payload": arguments.get("payload"),
                "task_id": arguments.get("task_id"),
            },
        )

    if name == "emit_event":
        return _call_or_raise(
            svc,
            "emit_event",
            {
                "agent_id": validate_agent_id(arguments.get("agent_id")),
                "type": arguments.get("type"),
                "payload": arguments.get("payload"),
                "task_id": arguments.get("task_id"),
            },
        )

    raise MCPError(code="unknown_tool", message=f"Tool not found: {name}")
