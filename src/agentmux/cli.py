from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any, Dict, List, Optional

from . import __version__
from .contracts.v1 import ToolResponse
from .kernel.session import SESSION_ENV
from .kernel.settings import load_settings, save_settings, settings_path
from .paths import workspace_root
from .service import AgentService
from .util.obslog import resolve_log_level, setup_root_json_logging


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _emit(resp: ToolResponse) -> int:
    _print_json(resp.model_dump(exclude_none=True))
    return 0 if resp.ok else 2


def _fail(code: str, message: str) -> int:
    _print_json({"ok": False, "error": {"code": code, "message": message}})
    return 2


def _service(args: argparse.Namespace, *, allow_new: bool = False) -> Optional[AgentService]:
    explicit = str(getattr(args, "session", "") or "").strip()
    if not allow_new and not explicit and not str(os.environ.get(SESSION_ENV) or "").strip():
        return None
    return AgentService.from_env(root=args.root, session_id=explicit or None)


def _load_json_arg(raw: str, what: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise SystemExit(_fail("validation_error", f"{what} is not valid JSON: {e}"))


def _split_targets(values: List[str]) -> Any:
    out: List[str] = []
    for v in values:
        out.extend(x.strip() for x in str(v).split(",") if x.strip())
    if len(out) == 1:
        return out[0]
    return out


def _parse_env_pairs(values: List[str]) -> Dict[str, str]:
    env: Dict[str, str] = {}
    for item in values:
        key, sep, value = str(item).partition("=")
        if not sep:
            raise SystemExit(_fail("validation_error", f"--env expects KEY=VALUE, got {item!r}"))
        env[key] = value
    return env


def _missing_session() -> int:
    return _fail("missing_session", f"pass --session or set {SESSION_ENV} (see: agentmux session new)")


def cmd_session_new(args: argparse.Namespace) -> int:
    svc = _service(args, allow_new=True)
    assert svc is not None
    svc.session.ensure()
    return _emit(svc.call("session_info"))


def cmd_session_show(args: argparse.Namespace) -> int:
    svc = _service(args)
    if svc is None:
        return _missing_session()
    return _emit(svc.call("session_info"))


def cmd_agent_create(args: argparse.Namespace) -> int:
    svc = _service(args)
    if svc is None:
        return _missing_session()
    params: Dict[str, Any] = {
        "name": args.name,
        "role": args.role,
        "args": list(args.arg or []),
        "env": _parse_env_pairs(list(args.env or [])),
    }
    if args.cwd:
        params["cwd"] = args.cwd
    if args.model:
        params["model"] = args.model
    if args.exec_cmd:
        params["executable_path"] = args.exec_cmd
    return _emit(svc.call("agent_create", **params))


def cmd_agent_list(args: argparse.Namespace) -> int:
    svc = _service(args)
    if svc is None:
        return _missing_session()
    return _emit(svc.call("agent_list"))


def cmd_agent_delete(args: argparse.Namespace) -> int:
    svc = _service(args)
    if svc is None:
        return _missing_session()
    return _emit(svc.call("agent_delete", agent_id=args.agent_id))


def cmd_agent_output(args: argparse.Namespace) -> int:
    svc = _service(args)
    if svc is None:
        return _missing_session()
    return _emit(svc.call("agent_output", agent_id=args.agent_id, lines=args.lines))


def cmd_send(args: argparse.Namespace) -> int:
    svc = _service(args)
    if svc is None:
        return _missing_session()
    message = _load_json_arg(args.message, "message")
    return _emit(svc.call("send_message", agent_id=args.sender, message=message, target=_split_targets(args.to)))


def cmd_inbox(args: argparse.Namespace) -> int:
    svc = _service(args)
    if svc is None:
        return _missing_session()
    return _emit(svc.call("read_inbox", agent_id=args.entity, cursor=args.cursor, limit=args.limit))


def cmd_wait(args: argparse.Namespace) -> int:
    svc = _service(args)
    if svc is None:
        return _missing_session()
    return _emit(svc.call("wait_for_command", agent_id=args.agent_id, cursor=args.cursor, timeout_ms=args.timeout_ms))


def cmd_task(args: argparse.Namespace) -> int:
    svc = _service(args)
    if svc is None:
        return _missing_session()
    payload = _load_json_arg(args.payload, "payload")
    return _emit(svc.call("enqueue_task", agent_id=args.agent_id, payload=payload, task_id=args.task_id))


def cmd_emit(args: argparse.Namespace) -> int:
    svc = _service(args)
    if svc is None:
        return _missing_session()
    payload = _load_json_arg(args.payload, "payload") if args.payload else {}
    return _emit(svc.call("emit_event", agent_id=args.agent_id, type=args.type, payload=payload, task_id=args.task_id))


def cmd_settings_show(args: argparse.Namespace) -> int:
    root = workspace_root(args.root)
    _print_json({"ok": True, "result": {"path": str(settings_path(root)), "settings": load_settings(root).to_dict()}})
    return 0


def cmd_settings_init(args: argparse.Namespace) -> int:
    root = workspace_root(args.root)
    path = settings_path(root)
    if path.exists() and not args.force:
        return _fail("already_exists", f"settings file exists: {path} (use --force to overwrite)")
    save_settings(root, load_settings(root))
    _print_json({"ok": True, "result": {"path": str(path)}})
    return 0


def cmd_mcp(args: argparse.Namespace) -> int:
    from .ports.mcp.main import main as mcp_main

    return int(mcp_main(log_level=args.log_level))


def cmd_worker(args: argparse.Namespace) -> int:
    from .ports.worker.__main__ import main as worker_main

    argv = list(args.worker_args or [])
    if args.root and "--root" not in argv:
        argv = ["--root", args.root, *argv]
    if args.log_level and "--log-level" not in argv:
        argv = ["--log-level", args.log_level, *argv]
    return int(worker_main(argv))


def cmd_version(args: argparse.Namespace) -> int:
    print(__version__)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="agentmux", description="File-backed mailboxes for tmux-hosted agents")
    p.add_argument("--root", default="", help="Workspace root (default: AGENTMUX_ROOT or cwd)")
    p.add_argument("--session", default="", help=f"Session id (an inherited {SESSION_ENV} takes precedence)")
    p.add_argument("--log-level", default="", help="Log level (default: AGENTMUX_LOG_LEVEL or WARNING)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_session = sub.add_parser("session", help="Session operations")
    session_sub = p_session.add_subparsers(dest="action", required=True)
    p_session_new = session_sub.add_parser("new", help="Create a session directory and print its id")
    p_session_new.set_defaults(func=cmd_session_new)
    p_session_show = session_sub.add_parser("show", help="Show the current session")
    p_session_show.set_defaults(func=cmd_session_show)

    p_agent = sub.add_parser("agent", help="Manage agents of a session")
    agent_sub = p_agent.add_subparsers(dest="action", required=True)

    p_agent_create = agent_sub.add_parser("create", help="Spawn an agent in a new tmux pane")
    p_agent_create.add_argument("name", help="Display name")
    p_agent_create.add_argument("role", help="Role (free text, e.g. worker, verifier)")
    p_agent_create.add_argument("--cwd", default="", help="Working directory of the new pane")
    p_agent_create.add_argument("--model", default="", help="Model for the agent CLI (default: settings)")
    p_agent_create.add_argument("--arg", action="append", default=[], help="Extra CLI argument (repeatable)")
    p_agent_create.add_argument("--env", action="append", default=[], help="KEY=VALUE for the agent process (repeatable)")
    p_agent_create.add_argument("--exec", dest="exec_cmd", default="", help="Run this command instead of the agent CLI")
    p_agent_create.set_defaults(func=cmd_agent_create)

    p_agent_list = agent_sub.add_parser("list", help="List agents")
    p_agent_list.set_defaults(func=cmd_agent_list)

    p_agent_rm = agent_sub.add_parser("delete", help="Delete an agent and kill its pane")
    p_agent_rm.add_argument("agent_id", help="Agent id")
    p_agent_rm.set_defaults(func=cmd_agent_delete)

    p_agent_out = agent_sub.add_parser("output", help="Capture recent pane output of an agent")
    p_agent_out.add_argument("agent_id", help="Agent id")
    p_agent_out.add_argument("-n", "--lines", type=int, default=100, help="Lines of scrollback (default: 100)")
    p_agent_out.set_defaults(func=cmd_agent_output)

    p_send = sub.add_parser("send", help="Send a JSON message")
    p_send.add_argument("message", help='Message object, e.g. \'{"type": "note", "text": "hi"}\'')
    p_send.add_argument("--from", dest="sender", default="master", help="Sender id (default: master)")
    p_send.add_argument(
        "--to",
        action="append",
        required=True,
        help="master, all, or agent ids (repeatable, supports comma-separated)",
    )
    p_send.set_defaults(func=cmd_send)

    p_inbox = sub.add_parser("inbox", help="Read a log from a cursor (non-blocking)")
    p_inbox.add_argument("entity", help="master, broadcast, <agent id> or <agent id>/outbox")
    p_inbox.add_argument("--cursor", type=int, default=0, help="Line offset to resume from (default: 0)")
    p_inbox.add_argument("--limit", type=int, default=None, help="Max lines to consume")
    p_inbox.set_defaults(func=cmd_inbox)

    p_wait = sub.add_parser("wait", help="Block until the next record in an agent inbox")
    p_wait.add_argument("agent_id", help="Agent id")
    p_wait.add_argument("--cursor", type=int, default=0, help="Line offset (default: 0)")
    p_wait.add_argument("--timeout-ms", type=int, default=None, help="Timeout (default: settings)")
    p_wait.set_defaults(func=cmd_wait)

    p_task = sub.add_parser("task", help="Queue a task for an agent")
    p_task.add_argument("agent_id", help="Agent id")
    p_task.add_argument("payload", help='Task payload object, e.g. \'{"instruction": "..."}\'')
    p_task.add_argument("--task-id", default="", help="Task id (default: generated)")
    p_task.set_defaults(func=cmd_task)

    p_emit = sub.add_parser("emit", help="Record an agent-side event in its outbox")
    p_emit.add_argument("agent_id", help="Agent id")
    p_emit.add_argument("type", help="Event type, e.g. agent_ready")
    p_emit.add_argument("payload", nargs="?", default="", help="Event payload object")
    p_emit.add_argument("--task-id", default="", help="Related task id")
    p_emit.set_defaults(func=cmd_emit)

    p_settings = sub.add_parser("settings", help="Workspace settings (.agents/settings.yaml)")
    settings_sub = p_settings.add_subparsers(dest="action", required=True)
    p_settings_show = settings_sub.add_parser("show", help="Show effective settings")
    p_settings_show.set_defaults(func=cmd_settings_show)
    p_settings_init = settings_sub.add_parser("init", help="Write a settings file with the current values")
    p_settings_init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    p_settings_init.set_defaults(func=cmd_settings_init)

    p_mcp = sub.add_parser("mcp", help="Run the MCP tool server on stdio")
    p_mcp.set_defaults(func=cmd_mcp)

    p_worker = sub.add_parser("worker", help="Run the reference agent loop (needs AGENT_ID and AGENT_SESSION_ID)")
    p_worker.add_argument("worker_args", nargs=argparse.REMAINDER, help="Options passed to the worker (--role, --timeout-ms, ...)")
    p_worker.set_defaults(func=cmd_worker)

    p_ver = sub.add_parser("version", help="Show version")
    p_ver.set_defaults(func=cmd_version)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.cmd not in ("mcp", "worker"):
        setup_root_json_logging(component="cli", level=resolve_log_level(args.log_level), stream=sys.stderr)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
