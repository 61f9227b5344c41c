"""Workspace settings for agentmux.

Settings are stored in <root>/.agents/settings.yaml. Every key is optional:

    poll_timeout_ms: 1800000      # default wait_for_command timeout
    poll_interval_ms: 500         # sleep between empty polls
    shared_context: agentmux-agents   # tmux session used outside tmux
    split_direction: horizontal   # or vertical
    executable: gemini            # agent CLI launched in new panes
    model: gemini-3-flash-preview
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml  # type: ignore

from ..paths import agents_home
from ..util.fs import atomic_write_text

logger = logging.getLogger("agentmux.settings")

DEFAULT_POLL_TIMEOUT_MS = 1_800_000
DEFAULT_POLL_INTERVAL_MS = 500


@dataclass(frozen=True)
class Settings:
    poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    shared_context: str = "agentmux-agents"
    split_direction: str = "horizontal"
    executable: str = "gemini"
    model: str = "gemini-3-flash-preview"

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Settings":
        base = cls()
        return cls(
            poll_timeout_ms=_positive_int(d.get("poll_timeout_ms"), base.poll_timeout_ms),
            poll_interval_ms=_positive_int(d.get("poll_interval_ms"), base.poll_interval_ms),
            shared_context=str(d.get("shared_context") or base.shared_context).strip(),
            split_direction=(
                "vertical" if str(d.get("split_direction") or "").strip() == "vertical" else "horizontal"
            ),
            executable=str(d.get("executable") or base.executable).strip(),
            model=str(d.get("model") or base.model).strip(),
        )

    def with_env(self, env: Mapping[str, str]) -> "Settings":
        """Apply process-environment overrides. Called by entry points, never by the kernel."""
        patch: Dict[str, Any] = {}
        timeout = _positive_int(env.get("AGENT_POLL_TIMEOUT_MS"), 0)
        if timeout:
            patch["poll_timeout_ms"] = timeout
        model = str(env.get("GEMINI_MODEL") or "").strip()
        if model:
            patch["model"] = model
        return dataclasses.replace(self, **patch) if patch else self


def _positive_int(value: Any, default: int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return n if n > 0 else default


def settings_path(root: Path) -> Path:
    return agents_home(root) / "settings.yaml"


def load_settings(root: Path) -> Settings:
    p = settings_path(root)
    if not p.exists():
        return Settings()
    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable settings file {p}: {e}")
        return Settings()
    if not isinstance(doc, dict):
        logger.warning(f"Ignoring settings file {p}: expected a mapping")
        return Settings()
    return Settings.from_dict(doc)


def save_settings(root: Path, settings: Settings) -> Path:
    p = settings_path(root)
    atomic_write_text(p, yaml.safe_dump(settings.to_dict(), allow_unicode=True, sort_keys=False))
    return p
