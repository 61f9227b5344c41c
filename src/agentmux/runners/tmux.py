from __future__ import annotations

import logging
import subprocess
import time
from typing import Callable, List, Optional, Tuple

from ..kernel.errors import ExternalProcessError
from .base import PaneRef

logger = logging.getLogger("agentmux.tmux")

_PANE_FORMAT = "#{session_id}:#{window_id}:#{pane_id}"

RunTmux = Callable[[List[str]], Tuple[int, str, str]]


def _run_tmux(args: List[str], *, timeout_s: float = 5.0) -> Tuple[int, str, str]:
    try:
        p = subprocess.run(
            ["tmux", *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout_s,
            check=False,
        )
        return int(p.returncode), (p.stdout or ""), (p.stderr or "")
    except subprocess.TimeoutExpired:
        return 124, "", "tmux timeout"
    except OSError as e:
        return 127, "", str(e)


def _parse_pane(out: str) -> Optional[PaneRef]:
    line = (out or "").strip().splitlines()
    if not line:
        return None
    try:
        return PaneRef.parse(line[0].strip())
    except ValueError:
        return None


class TmuxPaneProvider:
    """Runs agents in tmux panes split off the orchestrator's window."""

    def __init__(
        self,
        *,
        split_direction: str = "horizontal",
        send_delay_s: float = 0.1,
        run: Optional[RunTmux] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._split_flag = "-v" if split_direction == "vertical" else "-h"
        self._send_delay_s = send_delay_s
        self._run: RunTmux = run or _run_tmux
        self._sleep = sleep

    def _check(self, args: List[str], what: str) -> str:
        code, out, err = self._run(args)
        if code != 0:
            raise ExternalProcessError(f"tmux {what} failed: {err.strip() or f'exit {code}'}", details={"args": args})
        return out

    def _display(self, target: Optional[str] = None) -> Tuple[Optional[PaneRef], str]:
        args = ["display-message", "-p"]
        if target:
            args += ["-t", target]
        code, out, err = self._run(args + [_PANE_FORMAT])
        if code != 0:
            return None, err
        return _parse_pane(out), err

    def get_current_context(self) -> Optional[PaneRef]:
        pane, _ = self._display()
        return pane

    def get_shared_context(self, name: str) -> Optional[PaneRef]:
        pane, _ = self._display(name)
        return pane

    def create_shared_context(self, name: str) -> PaneRef:
        # A detached session defaults to 80x24, too small to split repeatedly.
        code, _, err = self._run(["new-session", "-d", "-s", name, "-x", "800", "-y", "600"])
        if code != 0 and "duplicate session" not in err:
            raise ExternalProcessError(f"tmux new-session failed: {err.strip()}", details={"session": name})

        last_err = ""
        for _ in range(3):
            pane, last_err = self._display(name)
            if pane is not None:
                return pane
            if "no server running" not in last_err:
                break
            self._sleep(0.5)
        raise ExternalProcessError(f"tmux session {name} not reachable: {last_err.strip()}", details={"session": name})

    def split_slot(self, context: PaneRef, cwd: Optional[str] = None) -> PaneRef:
        args = ["split-window", "-d", self._split_flag, "-t", context.pane_id]
        if cwd:
            args += ["-c", cwd]
        args += ["-P", "-F", _PANE_FORMAT]
        out = self._check(args, "split-window")
        pane = _parse_pane(out)
        if pane is None:
            raise ExternalProcessError(f"tmux split-window returned no pane: {out.strip()!r}")
        logger.info(f"Split new pane {pane.format()}", extra={"pane": pane.format()})
        return pane

    def send_command(self, slot: PaneRef, text: str) -> None:
        # -l sends the text literally; Enter is sent as a separate key.
        self._check(["send-keys", "-t", slot.pane_id, "-l", text], "send-keys")
        self._check(["send-keys", "-t", slot.pane_id, "Enter"], "send-keys")
        if self._send_delay_s > 0:
            self._sleep(self._send_delay_s)

    def kill_slot(self, slot: PaneRef) -> None:
        self._check(["kill-pane", "-t", slot.pane_id], "kill-pane")

    def capture_output(self, slot: PaneRef, lines: int = 100) -> str:
        return self._check(["capture-pane", "-p", "-t", slot.pane_id, "-S", f"-{max(int(lines), 1)}"], "capture-pane")
