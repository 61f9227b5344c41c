from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

AGENTS_DIR = ".agents"


def workspace_root(explicit: str = "", env: Optional[Mapping[str, str]] = None) -> Path:
    """Resolve the workspace root: explicit value, then AGENTMUX_ROOT, then cwd."""
    raw = (explicit or "").strip()
    if not raw:
        source = os.environ if env is None else env
        raw = str(source.get("AGENTMUX_ROOT", "") or "").strip()
    if raw:
        return Path(raw).expanduser().resolve()
    return Path.cwd().resolve()


def agents_home(root: Path) -> Path:
    return root / AGENTS_DIR
