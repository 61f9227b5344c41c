from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Tuple, get_args

from pydantic import BaseModel, ConfigDict, Field, model_validator


ToolOp = Literal[
    "session_info",
    "agent_create",
    "agent_list",
    "agent_delete",
    "agent_output",
    "send_message",
    "read_inbox",
    "wait_for_command",
    "enqueue_task",
    "emit_event",
]

TOOL_OPS: Tuple[str, ...] = get_args(ToolOp)


class ToolRequest(BaseModel):
    """One caller-facing operation; an op outside `TOOL_OPS` fails validation."""

    op: ToolOp
    args: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ToolError(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ToolResponse(BaseModel):
    ok: bool
    result: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[ToolError] = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _error_matches_ok(self) -> "ToolResponse":
        if self.ok and self.error is not None:
            raise ValueError("a successful response carries no error")
        if not self.ok and self.error is None:
            raise ValueError("a failed response needs an error")
        return self

    @classmethod
    def success(cls, result: Dict[str, Any]) -> "ToolResponse":
        return cls(ok=True, result=result)

    @classmethod
    def failure(cls, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ToolResponse":
        return cls(ok=False, error=ToolError(code=code, message=message, details=details or {}))
