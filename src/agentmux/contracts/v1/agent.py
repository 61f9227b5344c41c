from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ...util.time import now_ms


# Advisory only; the bus never transitions it.
DEFAULT_AGENT_STATUS = "created"


class Agent(BaseModel):
    """Snapshot persisted as meta.json; the sole source of truth for listing."""

    id: str
    name: str = ""
    role: str = ""
    # Opaque handle to the execution slot, "session:window:pane" for tmux.
    # Older records stored it as tmuxPaneId.
    pane_ref: str = Field(
        default="",
        validation_alias=AliasChoices("paneRef", "pane_ref", "tmuxPaneId"),
        serialization_alias="paneRef",
    )
    status: str = DEFAULT_AGENT_STATUS
    created_at: int = Field(
        default_factory=now_ms,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    def to_doc(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class CreateAgentParams(BaseModel):
    name: str
    role: str
    cwd: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)
    model: Optional[str] = None
    # Replaces the whole launch command verbatim (used to run a scripted agent).
    executable_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("executable_path", "executablePath"),
    )
    args: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")
