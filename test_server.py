import json
import os
import subprocess
import sys
from io import BytesIO
from pathlib import Path

from conftest import FakeSession, raw_element
from mcp_generator.deploy.packager import Packager
from mcp_generator.dom.elements import descriptors_from_raw
from mcp_generator.dom.mapper import categorize_elements
from mcp_generator.server import ToolServer, main
from mcp_generator.tools.synthesizer import ToolSynthesizer

URL = "https://app.example.com/"
REPO_ROOT = Path(__file__).resolve().parent


def _package(tmp_path):
    elements = descriptors_from_raw([
        raw_element("button", text="Go", id="go"),
        raw_element("a", text="Docs", href="https://app.example.com/docs"),
    ])
    tool_set = ToolSynthesizer().synthesize(categorize_elements(elements), None, URL)
    return Packager(tmp_path).create_package("app_example_com", tool_set), tool_set


def _frames(*messages):
    return "".join(json.dumps(m) + "\n" for m in messages).encode("utf-8")


def _responses(raw):
    return [json.loads(line) for line in raw.decode("utf-8").splitlines() if line.strip()]


def test_serve_answers_initialize_list_and_call(tmp_path):
    package, tool_set = _package(tmp_path)
    tools = json.loads(Path(package.tools_path).read_text(encoding="utf-8"))
    sessions = []

    def factory():
        session = FakeSession()
        sessions.append(session)
        return session

    server = ToolServer(tools, URL, "app_example_com-automation", session_factory=factory)
    inp = BytesIO(_frames(
        {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "2024-11-05"}},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
        {"jsonrpc": "2.0", "id": 3, "method": "tools/call",
         "params": {"name": "app_example_com_go", "arguments": {}}},
        {"jsonrpc": "2.0", "id": 4, "method": "tools/call", "params": {"name": "nope"}},
        {"jsonrpc": "2.0", "id": 5, "method": "resources/list"},
    ) + b"{broken\n")
    out = BytesIO()
    server.serve(inp, out)

    responses = _responses(out.getvalue())
    print(json.dumps(responses, indent=2))
    assert [r["id"] for r in responses] == [1, 2, 3, 4, 5, None]
    assert all(r["jsonrpc"] == "2.0" for r in responses)

    init = responses[0]["result"]
    assert init["protocolVersion"] == "2024-11-05"
    assert init["serverInfo"]["name"] == "app_example_com-automation"
    assert "tools" in init["capabilities"]

    listed = responses[1]["result"]["tools"]
    assert [t["name"] for t in listed] == tool_set.names
    assert all(set(t) == {"name", "description", "inputSchema"} for t in listed)

    call = responses[2]["result"]
    assert call["isError"] is False
    assert json.loads(call["content"][0]["text"]) == {"success": True, "selector": "#go"}
    assert sessions[0].clicks == ["#go"]
    assert sessions[0].navigations == [URL]

    assert responses[3]["result"]["isError"] is True
    assert responses[4]["error"]["code"] == -32601
    assert responses[5]["error"]["code"] == -32700

    # session released when input ends
    assert sessions[0].closed


def test_tool_failure_is_reported_as_error_result(tmp_path):
    package, _ = _package(tmp_path)
    tools = json.loads(Path(package.tools_path).read_text(encoding="utf-8"))
    server = ToolServer(tools, URL, "demo", session_factory=lambda: FakeSession(
        navigate_error=RuntimeError("net::ERR_CONNECTION_REFUSED")))
    response = server.dispatch({"jsonrpc": "2.0", "id": 7, "method": "tools/call",
                                "params": {"name": "app_example_com_initialize"}})
    assert response["result"]["isError"] is True
    assert "ERR_CONNECTION_REFUSED" in response["result"]["content"][0]["text"]


def test_list_subcommand(tmp_path, capsys):
    package, tool_set = _package(tmp_path)
    assert main(["list"], Path(package.path), URL) == 0
    printed = capsys.readouterr().out
    for name in tool_set.names:
        assert name in printed
    assert main(["call"], Path(package.path), URL) == 2


def test_generated_entry_serves_over_stdio(tmp_path):
    package, tool_set = _package(tmp_path)
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(p for p in (str(REPO_ROOT), env.get("PYTHONPATH")) if p)
    proc = subprocess.run(
        [sys.executable, package.server_entry_path],
        input=_frames(
            {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
            {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
        ),
        capture_output=True,
        env=env,
        cwd=str(tmp_path),
        timeout=60,
    )
    assert proc.returncode == 0, proc.stderr.decode("utf-8", "replace")
    responses = _responses(proc.stdout)
    assert [r["id"] for r in responses] == [1, 2]
    assert responses[0]["result"]["serverInfo"]["name"] == "app_example_com-automation"
    assert [t["name"] for t in responses[1]["result"]["tools"]] == tool_set.names
