from __future__ import annotations

from typing import Any, Dict, Optional


class AgentmuxError(Exception):
    """Base error carrying a stable code for tool/CLI error envelopes."""

    code = "agentmux_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AgentmuxError):
    """Rejected input: bad target, env key, agent id or cursor. Raised before any I/O."""

    code = "validation_error"


class NotFoundError(AgentmuxError):
    code = "not_found"


class TransientIOError(AgentmuxError):
    code = "io_error"


class MalformedRecordError(AgentmuxError):
    """A metadata record or log line that does not parse."""

    code = "malformed_record"


class ExternalProcessError(AgentmuxError):
    """The execution backend (tmux) failed."""

    code = "external_process_error"
