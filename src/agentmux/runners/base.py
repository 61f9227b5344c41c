from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class PaneRef:
    """Handle to one execution slot: "session:window:pane" (e.g. "$1:@2:%3")."""

    session_id: str
    window_id: str
    pane_id: str

    def format(self) -> str:
        return f"{self.session_id}:{self.window_id}:{self.pane_id}"

    @classmethod
    def parse(cls, raw: str) -> "PaneRef":
        parts = str(raw or "").strip().split(":")
        if len(parts) == 3 and all(parts):
            return cls(session_id=parts[0], window_id=parts[1], pane_id=parts[2])
        if len(parts) == 1 and parts[0]:
            return cls(session_id="", window_id="", pane_id=parts[0])
        raise ValueError(f"invalid pane reference: {raw!r}")


class PaneProvider(Protocol):
    """Execution backend that hosts agent processes.

    Lookups return None when the context is absent; every other method raises
    ExternalProcessError on failure.
    """

    def get_current_context(self) -> Optional[PaneRef]: ...

    def get_shared_context(self, name: str) -> Optional[PaneRef]: ...

    def create_shared_context(self, name: str) -> PaneRef: ...

    def split_slot(self, context: PaneRef, cwd: Optional[str] = None) -> PaneRef: ...

    def send_command(self, slot: PaneRef, text: str) -> None: ...

    def kill_slot(self, slot: PaneRef) -> None: ...

    def capture_output(self, slot: PaneRef, lines: int = 100) -> str: ...
