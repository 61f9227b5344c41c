from __future__ import annotations

import logging
import re
import shlex
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from ..contracts.v1 import Agent, CreateAgentParams
from ..runners.base import PaneProvider, PaneRef
from .bootstrap import render_inception_prompt
from .errors import ExternalProcessError, MalformedRecordError, NotFoundError, ValidationError
from .session import AGENT_ENV, SESSION_ENV, Session, SessionStore, validate_entity_id
from .settings import Settings

logger = logging.getLogger("agentmux.lifecycle")

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_env(env: Optional[Mapping[str, str]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for k, v in (env or {}).items():
        if not isinstance(k, str) or not _ENV_KEY_RE.match(k):
            raise ValidationError(f"Invalid env key {k!r}: must match [A-Za-z_][A-Za-z0-9_]*", details={"key": k})
        if not isinstance(v, str):
            raise ValidationError(f"Invalid env value for {k}: expected a string", details={"key": k})
        out[k] = v
    return out


def build_env_prefix(env: Mapping[str, str]) -> str:
    return " ".join(f"{k}={shlex.quote(v)}" for k, v in env.items())


def build_launch_command(*, executable: str, model: str, args: List[str], inception_path: Path) -> str:
    """Agent CLI invocation that reads its bootstrap prompt from a file.

    The prompt goes through `$(cat ...)` rather than inline text so its quotes
    and newlines never pass through the pane's shell parser.
    """
    parts = [shlex.quote(executable), "-m", shlex.quote(model)]
    parts.extend(shlex.quote(a) for a in args)
    parts.append(f'"$(cat {shlex.quote(str(inception_path))})"')
    return " ".join(parts)


class AgentLifecycle:
    """Stands agents up in new panes and tears them down again."""

    def __init__(
        self,
        session: Session,
        provider: PaneProvider,
        *,
        store: Optional[SessionStore] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.provider = provider
        self.store = store or SessionStore(session)
        self.settings = settings or Settings()

    def _resolve_context(self) -> PaneRef:
        context = self.provider.get_current_context()
        if context is not None:
            return context
        name = self.settings.shared_context
        context = self.provider.get_shared_context(name)
        if context is not None:
            return context
        logger.info(f"Creating shared tmux session {name}", extra={"session_id": self.session.session_id})
        return self.provider.create_shared_context(name)

    def create_agent(self, params: CreateAgentParams) -> Agent:
        user_env = validate_env(params.env)
        name = params.name.strip()
        role = params.role.strip()
        if not name or not role:
            raise ValidationError("agent name and role are required")

        context = self._resolve_context()
        pane = self.provider.split_slot(context, cwd=params.cwd)

        metadata: Dict[str, object] = {}
        if params.cwd:
            metadata["cwd"] = params.cwd
        model = (params.model or "").strip() or self.settings.model
        if not params.executable_path:
            metadata["model"] = model

        try:
            agent = self.store.create_agent_record(name=name, role=role, pane_ref=pane.format(), metadata=metadata)
        except OSError:
            try:
                self.provider.kill_slot(pane)
            except ExternalProcessError as e:
                logger.warning(f"Could not kill orphaned pane {pane.format()}: {e}")
            raise
        ctx = {"session_id": self.session.session_id, "agent_id": agent.id, "pane": agent.pane_ref}
        try:
            if params.executable_path:
                cmd = params.executable_path
            else:
                prompt = render_inception_prompt(
                    agent_id=agent.id,
                    role=role,
                    poll_timeout_ms=self.settings.poll_timeout_ms,
                )
                inception = self.store.write_inception(agent.id, prompt)
                cmd = build_launch_command(
                    executable=self.settings.executable,
                    model=model,
                    args=list(params.args),
                    inception_path=inception,
                )

            env_prefix = build_env_prefix(user_env)
            correlation = f"{AGENT_ENV}={shlex.quote(agent.id)} {SESSION_ENV}={shlex.quote(self.session.session_id)}"
            line = " ".join(p for p in (env_prefix, correlation, cmd) if p)
            self.provider.send_command(pane, line)
        except Exception:
            logger.error(f"Launching agent {agent.id} failed; removing its record", extra=ctx)
            self.store.delete_agent(agent.id, teardown=self._kill)
            raise

        logger.info(f"Agent {agent.id} launched", extra=ctx)
        return agent

    def _kill(self, pane_ref: str) -> None:
        try:
            slot = PaneRef.parse(pane_ref)
        except ValueError as e:
            raise ExternalProcessError(str(e)) from e
        self.provider.kill_slot(slot)

    def delete_agent(self, agent_id: str) -> bool:
        aid = validate_entity_id(agent_id, allow_master=False)
        if not self.store.exists(aid):
            raise NotFoundError(f"agent not found: {aid}", details={"agent_id": aid})
        return self.store.delete_agent(aid, teardown=self._kill)

    def capture_output(self, agent_id: str, lines: int = 100) -> str:
        agent = self.store.load_agent(validate_entity_id(agent_id, allow_master=False))
        if not agent.pane_ref:
            raise MalformedRecordError(f"agent {agent.id} has no pane reference")
        try:
            slot = PaneRef.parse(agent.pane_ref)
        except ValueError as e:
            raise MalformedRecordError(str(e)) from e
        return self.provider.capture_output(slot, lines)
