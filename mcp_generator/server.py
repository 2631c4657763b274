"""
Stdio MCP server for a generated package.

Reads newline-delimited JSON-RPC 2.0 messages from stdin and answers
``initialize``, ``tools/list`` and ``tools/call``. Tool calls go through
``ToolRuntime`` against one browser session opened on first use.
"""

import contextlib
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .core.session import PlaywrightSession
from .runtime import ToolRuntime

PROTOCOL_VERSION = "2024-11-05"
SERVER_VERSION = "0.1.0"

USAGE = """Usage:
    python server.py               serve MCP over stdio
    python server.py list          list generated tools
    python server.py call <tool> '<json arguments>'"""


def load_tools(package_dir: Path) -> List[Dict[str, Any]]:
    return json.loads((Path(package_dir) / "tools.json").read_text(encoding="utf-8"))


def write_message(payload: Dict[str, Any], out) -> None:
    out.write((json.dumps(payload, ensure_ascii=False) + "\n").encode("utf-8"))
    out.flush()


def read_message(inp) -> Optional[Dict[str, Any]]:
    """Next message, {} for a blank line, None at end of input."""
    line = inp.readline()
    if not line:
        return None
    line = line.strip()
    if not line:
        return {}
    return json.loads(line.decode("utf-8"))


class ToolServer:
    """Answers MCP requests for one package's tools."""

    def __init__(self, tools: List[Dict[str, Any]], start_url: str, server_name: str,
                 session_factory: Callable[[], Any] = PlaywrightSession):
        self.tools = {t["name"]: t for t in tools}
        self.start_url = start_url
        self.server_name = server_name
        self.session_factory = session_factory
        self.session = None
        self.runtime: Optional[ToolRuntime] = None

    def _reply(self, request_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    def _error(self, request_id: Any, code: int, message: str) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}

    def handle_initialize(self, request_id: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        return self._reply(request_id, {
            "protocolVersion": params.get("protocolVersion") or PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.server_name, "version": SERVER_VERSION},
        })

    def handle_list_tools(self, request_id: Any) -> Dict[str, Any]:
        tools = [
            {"name": t["name"], "description": t["description"], "inputSchema": t["inputSchema"]}
            for t in self.tools.values()
        ]
        return self._reply(request_id, {"tools": tools})

    def handle_call_tool(self, request_id: Any, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        tool = self.tools.get(name)
        if tool is None:
            return self._reply(request_id, {
                "content": [{"type": "text", "text": f"Unknown tool: {name}"}],
                "isError": True,
            })
        try:
            if self.runtime is None:
                self.session = self.session_factory()
                self.runtime = ToolRuntime(self.session, self.start_url)
            result = self.runtime.call(tool, arguments)
            is_error = not result.get("success", True)
        except Exception as e:
            print(f"[Server] Tool {name} failed: {e}")
            result = {"success": False, "error": str(e)}
            is_error = True
        return self._reply(request_id, {
            "content": [{"type": "text", "text": json.dumps(result)}],
            "isError": is_error,
        })

    def dispatch(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Response for one message; None for notifications."""
        if not message:
            return None
        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}

        if method == "initialize":
            return self.handle_initialize(request_id, params)
        if method == "tools/list":
            return self.handle_list_tools(request_id)
        if method == "tools/call":
            return self.handle_call_tool(request_id, params.get("name") or "", params.get("arguments") or {})
        if method == "ping":
            return self._reply(request_id, {})
        if request_id is None:
            # notifications/initialized and friends
            return None
        return self._error(request_id, -32601, f"Method {method} not found")

    def serve(self, inp=None, out=None) -> None:
        inp = inp or sys.stdin.buffer
        out = out or sys.stdout.buffer
        # stdout carries protocol frames only; progress prints go to stderr.
        with contextlib.redirect_stdout(sys.stderr):
            try:
                while True:
                    try:
                        message = read_message(inp)
                    except ValueError as e:
                        write_message(self._error(None, -32700, f"Parse error: {e}"), out)
                        continue
                    if message is None:
                        break
                    response = self.dispatch(message)
                    if response is not None:
                        write_message(response, out)
            finally:
                self.close()

    def close(self) -> None:
        if self.session is not None:
            try:
                self.session.close()
            except Exception as e:
                print(f"[Server] Session cleanup failed: {e}")
            self.session = None
            self.runtime = None


def main(args: List[str], package_dir: Path, start_url: str,
         session_factory: Callable[..., Any] = PlaywrightSession) -> int:
    """Entry point of a generated package's server.py."""
    package_dir = Path(package_dir)
    tools = load_tools(package_dir)

    if not args or args[0] == "serve":
        ToolServer(tools, start_url, package_dir.name, session_factory).serve()
        return 0

    if args[0] == "list":
        for tool in tools:
            print(f"{tool['name']}: {tool['description']}")
        return 0

    if args[0] != "call" or len(args) < 2:
        print(USAGE)
        return 2

    tool = next((t for t in tools if t["name"] == args[1]), None)
    if tool is None:
        print(f"Unknown tool: {args[1]}")
        return 2
    arguments = json.loads(args[2]) if len(args) > 2 else {}

    session = session_factory(headless=bool(arguments.get("headless", False)))
    runtime = ToolRuntime(session, start_url)
    try:
        print(json.dumps(runtime.call(tool, arguments), indent=2))
    finally:
        session.close()
    return 0
