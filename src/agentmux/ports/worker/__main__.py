from __future__ import annotations

import argparse
import os
import sys

from ...kernel.session import AGENT_ENV, SESSION_ENV
from ...service import AgentService
from ...util.obslog import resolve_log_level, setup_root_json_logging
from .agent import WorkerAgent


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="agentmux-worker", description="Reference agent loop (poll inbox, report to master)")
    p.add_argument("--root", default="", help="Workspace root (default: AGENTMUX_ROOT or cwd)")
    p.add_argument("--role", default="", help="Override the role recorded in meta.json")
    p.add_argument("--timeout-ms", type=int, default=30_000, help="Poll timeout per wait (default: 30000)")
    p.add_argument("--work-delay-ms", type=int, default=0, help="Simulated work time per task")
    p.add_argument("--log-level", default="", help="Log level (default: AGENTMUX_LOG_LEVEL or WARNING)")
    args = p.parse_args(argv)

    setup_root_json_logging(component="worker", level=resolve_log_level(args.log_level))

    agent_id = str(os.environ.get(AGENT_ENV) or "").strip()
    if not agent_id or not str(os.environ.get(SESSION_ENV) or "").strip():
        print(f"Missing {AGENT_ENV} or {SESSION_ENV} env vars", file=sys.stderr)
        return 1

    service = AgentService.from_env(root=args.root)
    worker = WorkerAgent(
        bus=service.bus,
        agent_id=agent_id,
        role=args.role,
        poll_timeout_ms=max(args.timeout_ms, 1),
        work_delay_s=max(args.work_delay_ms, 0) / 1000.0,
    )
    try:
        worker.run_forever()
    except KeyboardInterrupt:
        worker.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
