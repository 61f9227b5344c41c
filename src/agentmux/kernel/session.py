from __future__ import annotations

import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from ..contracts.v1 import DEFAULT_AGENT_STATUS, MASTER, Agent
from ..paths import agents_home
from ..util.fs import atomic_write_json, atomic_write_text, read_json
from .errors import MalformedRecordError, NotFoundError, ValidationError

logger = logging.getLogger("agentmux.session")

SESSION_ENV = "AGENT_SESSION_ID"
AGENT_ENV = "AGENT_ID"

# Agent ids become directory names; keep them to a single safe path segment.
_ENTITY_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def validate_entity_id(value: Any, *, allow_master: bool = True) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"invalid agent id: {value!r}")
    s = value.strip()
    if s == MASTER:
        if allow_master:
            return s
        raise ValidationError("'master' is not an agent")
    if not _ENTITY_ID_RE.match(s) or ".." in s:
        raise ValidationError(f"invalid agent id: {value!r}")
    return s


def new_session_id() -> str:
    return str(uuid.uuid4())


def resolve_session_id(explicit: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> str:
    """Pick the session id: inherited AGENT_SESSION_ID, then explicit, then a fresh one.

    The inherited value wins so a process spawned into a pane joins its
    parent's session even when its own caller passes a different id.
    """
    inherited = str((env or {}).get(SESSION_ENV) or "").strip()
    if inherited:
        return validate_entity_id(inherited, allow_master=False)
    chosen = (explicit or "").strip()
    if chosen:
        return validate_entity_id(chosen, allow_master=False)
    return new_session_id()


@dataclass(frozen=True)
class Session:
    root: Path
    session_id: str

    @property
    def path(self) -> Path:
        return agents_home(self.root) / "sessions" / self.session_id

    @property
    def agents_dir(self) -> Path:
        return self.path / "agents"

    @property
    def master_inbox_path(self) -> Path:
        return self.path / "master_inbox.jsonl"

    @property
    def broadcast_path(self) -> Path:
        return self.path / "broadcast.jsonl"

    def agent_dir(self, agent_id: str) -> Path:
        return self.agents_dir / validate_entity_id(agent_id, allow_master=False)

    def inbox_path(self, agent_id: str) -> Path:
        return self.agent_dir(agent_id) / "inbox.jsonl"

    def outbox_path(self, agent_id: str) -> Path:
        return self.agent_dir(agent_id) / "outbox.jsonl"

    def meta_path(self, agent_id: str) -> Path:
        return self.agent_dir(agent_id) / "meta.json"

    def inception_path(self, agent_id: str) -> Path:
        return self.agent_dir(agent_id) / "inception.txt"

    def ensure(self) -> None:
        self.agents_dir.mkdir(parents=True, exist_ok=True)


class SessionStore:
    """On-disk agent records for one session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def create_agent_record(
        self,
        *,
        name: str,
        role: str,
        pane_ref: str,
        metadata: Optional[Dict[str, Any]] = None,
        agent_id: Optional[str] = None,
    ) -> Agent:
        aid = validate_entity_id(agent_id, allow_master=False) if agent_id else str(uuid.uuid4())
        agent = Agent(
            id=aid,
            name=name,
            role=role,
            pane_ref=pane_ref,
            status=DEFAULT_AGENT_STATUS,
            metadata=dict(metadata or {}),
        )

        self.session.ensure()
        try:
            self._ensure_agent_tree(aid)
        except FileNotFoundError:
            self._ensure_agent_tree(aid)
        # An external cleanup may have removed the tree after the inbox touch.
        if not self.session.inbox_path(aid).exists():
            self._ensure_agent_tree(aid)
        atomic_write_json(self.session.meta_path(aid), agent.to_doc())
        logger.info(
            f"Created agent record {aid} ({name}/{role})",
            extra={"session_id": self.session.session_id, "agent_id": aid},
        )
        return agent

    def exists(self, agent_id: str) -> bool:
        return self.session.agent_dir(agent_id).is_dir()

    def _ensure_agent_tree(self, aid: str) -> None:
        (self.session.agent_dir(aid) / "artifacts").mkdir(parents=True, exist_ok=True)
        self.session.inbox_path(aid).touch(exist_ok=True)

    def load_agent(self, agent_id: str) -> Agent:
        adir = self.session.agent_dir(agent_id)
        if not adir.is_dir():
            raise NotFoundError(f"agent not found: {agent_id}", details={"agent_id": agent_id})
        return self._load_meta(self.session.meta_path(agent_id))

    def _load_meta(self, meta_path: Path) -> Agent:
        doc = read_json(meta_path)
        if not doc:
            raise MalformedRecordError(f"meta.json missing or invalid: {meta_path}")
        try:
            return Agent.model_validate(doc)
        except PydanticValidationError as e:
            raise MalformedRecordError(f"meta.json does not describe an agent: {meta_path}") from e

    def list_agents(self) -> List[Agent]:
        adir = self.session.agents_dir
        try:
            entries = sorted(p for p in adir.iterdir() if p.is_dir())
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error(f"Failed to list agents in {adir}: {e}", extra={"session_id": self.session.session_id})
            return []

        agents: List[Agent] = []
        for entry in entries:
            ctx = {"session_id": self.session.session_id, "agent_id": entry.name}
            try:
                agent = self._load_meta(entry / "meta.json")
            except MalformedRecordError:
                logger.warning(f"Skipping agent directory {entry.name}: meta.json not found or invalid", extra=ctx)
                continue
            # An agent id is its directory name.
            if agent.id != entry.name:
                logger.warning(f"Skipping agent directory {entry.name}: meta.json names agent {agent.id!r}", extra=ctx)
                continue
            agents.append(agent)
        agents.sort(key=lambda a: (a.created_at, a.id))
        return agents

    def write_inception(self, agent_id: str, text: str) -> Path:
        p = self.session.inception_path(agent_id)
        atomic_write_text(p, text)
        return p

    def delete_agent(self, agent_id: str, *, teardown: Optional[Callable[[str], None]] = None) -> bool:
        """Remove an agent's subtree; `teardown(pane_ref)` is attempted first, best-effort.

        Returns whether the agent directory existed.
        """
        adir = self.session.agent_dir(agent_id)
        ctx = {"session_id": self.session.session_id, "agent_id": agent_id}
        if teardown is not None:
            try:
                agent = self._load_meta(self.session.meta_path(agent_id))
            except MalformedRecordError:
                logger.warning(
                    f"Could not tear down pane for agent {agent_id} (meta.json missing or corrupted)",
                    extra=ctx,
                )
            else:
                try:
                    if agent.pane_ref:
                        teardown(agent.pane_ref)
                except Exception as e:
                    logger.warning(f"Pane teardown failed for agent {agent_id}: {e}", extra=ctx)

        existed = adir.exists()
        shutil.rmtree(adir, ignore_errors=True)
        if adir.exists():
            # rmtree swallowed the error; one retry surfaces it to the caller.
            shutil.rmtree(adir)
        logger.info(f"Deleted agent {agent_id}", extra=ctx)
        return existed
