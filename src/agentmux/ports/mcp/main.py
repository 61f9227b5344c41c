"""
agentmux MCP server: stdio entry point

Usage:
    python -m agentmux.ports.mcp.main

or via the CLI:
    agentmux mcp
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Optional

from ... import __version__
from ...util.obslog import resolve_log_level, setup_root_json_logging
from .server import MCP_TOOLS, MCPError, get_service, handle_tool_call

logger = logging.getLogger("agentmux.mcp")


def _read_message() -> Optional[Dict[str, Any]]:
    """Read one JSON-RPC message from stdin; None at EOF."""
    while True:
        line = sys.stdin.readline()
        if not line:
            return None
        if not line.strip():
            continue
        try:
            msg = json.loads(line)
        except ValueError:
            logger.warning(f"Ignoring non-JSON input line: {line[:200]!r}")
            continue
        if isinstance(msg, dict):
            return msg
        logger.warning("Ignoring JSON-RPC message that is not an object")


def _write_message(msg: Dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(msg, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def _make_response(id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": id, "result": result}


def _make_error(id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


def _tool_text(payload: Dict[str, Any], *, is_error: bool = False) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "content": [{"type": "text", "text": json.dumps(payload, ensure_ascii=False, indent=2)}],
    }
    if is_error:
        out["isError"] = True
    return out


def handle_request(req: Dict[str, Any]) -> Dict[str, Any]:
    """Handle one MCP JSON-RPC request; notifications yield an empty dict."""
    req_id = req.get("id")
    method = str(req.get("method") or "")
    params = req.get("params") or {}

    if method == "initialize":
        return _make_response(req_id, {
            "protocolVersion": "2024-11-05",
            "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
            "serverInfo": {"name": "agentmux-mcp", "version": __version__},
        })

    if method.startswith("notifications/"):
        return {}

    if method == "tools/list":
        return _make_response(req_id, {"tools": MCP_TOOLS})

    # Some clients request these even if unused.
    if method == "resources/list":
        return _make_response(req_id, {"resources": []})

    if method == "prompts/list":
        return _make_response(req_id, {"prompts": []})

    if method in ("ping", "logging/setLevel"):
        return _make_response(req_id, {})

    if method == "tools/call":
        tool_name = str(params.get("name") or "") if isinstance(params, dict) else ""
        arguments = params.get("arguments") if isinstance(params, dict) else None
        if not isinstance(arguments, dict):
            arguments = {}

        try:
            result = handle_tool_call(tool_name, arguments)
            return _make_response(req_id, _tool_text(result))
        except MCPError as e:
            return _make_response(req_id, _tool_text(
                {"error": {"code": e.code, "message": e.message, "details": e.details}},
                is_error=True,
            ))
        except Exception as e:
            logger.exception(f"Tool {tool_name} crashed")
            return _make_response(req_id, _tool_text(
                {"error": {"code": "internal_error", "message": str(e)}},
                is_error=True,
            ))

    return _make_error(req_id, -32601, f"Method not found: {method}")


def main(log_level: str = "") -> int:
    """MCP server main loop (stdio)."""
    setup_root_json_logging(component="mcp", level=resolve_log_level(log_level))
    service = get_service()
    logger.info(
        "agentmux MCP server running on stdio",
        extra={"session_id": service.session.session_id},
    )
    while True:
        msg = _read_message()
        if msg is None:
            break

        resp = handle_request(msg)
        if resp:
            _write_message(resp)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
