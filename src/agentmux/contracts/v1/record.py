from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


MASTER = "master"
ALL = "all"
BROADCAST = "broadcast"

# "master", "all", one agent id, or several agent ids.
Target = Union[str, List[str]]

WaitStatus = Literal["command", "timeout"]


class ReadResult(BaseModel):
    records: List[Dict[str, Any]] = Field(default_factory=list)
    next_cursor: int = 0

    model_config = ConfigDict(extra="forbid")


class WaitResult(BaseModel):
    status: WaitStatus
    record: Optional[Dict[str, Any]] = None
    next_cursor: int = 0

    model_config = ConfigDict(extra="forbid")


class SendReport(BaseModel):
    """Per-target outcome of one send; there is no multi-target atomicity."""

    target: Target
    delivered: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)
    timestamp: int = 0

    model_config = ConfigDict(extra="forbid")
