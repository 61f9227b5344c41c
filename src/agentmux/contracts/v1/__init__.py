from __future__ import annotations

from .agent import DEFAULT_AGENT_STATUS, Agent, CreateAgentParams
from .ipc import TOOL_OPS, ToolError, ToolOp, ToolRequest, ToolResponse
from .record import ALL, BROADCAST, MASTER, ReadResult, SendReport, Target, WaitResult, WaitStatus

__all__ = [
    "ALL",
    "Agent",
    "BROADCAST",
    "CreateAgentParams",
    "DEFAULT_AGENT_STATUS",
    "MASTER",
    "ReadResult",
    "SendReport",
    "TOOL_OPS",
    "Target",
    "ToolError",
    "ToolOp",
    "ToolRequest",
    "ToolResponse",
    "WaitResult",
    "WaitStatus",
]
