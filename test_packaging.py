import json

import pytest

import run_generator
from conftest import FakeSession, raw_element
from mcp_generator.core.config import ProfileConfig
from mcp_generator.core.errors import PackagingError
from mcp_generator.core.types import PackageResult
from mcp_generator.deploy.host_config import HostConfigUpdater
from mcp_generator.deploy.packager import Packager, package_dir_name
from mcp_generator.dom.elements import descriptors_from_raw
from mcp_generator.dom.mapper import categorize_elements
from mcp_generator.runtime import ToolRuntime
from mcp_generator.tools.naming import method_name
from mcp_generator.tools.synthesizer import ToolSynthesizer

URL = "https://app.example.com/"


def _tool_set():
    elements = descriptors_from_raw([
        raw_element("button", text="Sign In"),
        raw_element("input", placeholder="Search", name="q"),
        raw_element("a", text="Docs", href="https://app.example.com/docs"),
        raw_element("button", text="Create", id="create"),
    ])
    return ToolSynthesizer().synthesize(categorize_elements(elements), None, URL)


def test_method_name():
    assert method_name("simple-name") == "simple_name"
    assert method_name("hello world") == "hello_world"
    assert method_name("Tool!@Name") == "Tool_Name"
    assert method_name("__edge__") == "edge"
    assert package_dir_name("app.example.com") == "app_example_com-automation"
    assert package_dir_name("!!!") == "site-automation"


def test_create_package_writes_files(tmp_path):
    tool_set = _tool_set()
    packager = Packager(tmp_path)
    result = packager.create_package("app_example_com", tool_set)

    package = tmp_path / "app_example_com-automation"
    assert result.path == str(package)
    for name in ("tools.json", "metadata.json", "server.py", "README.md"):
        assert (package / name).exists(), name

    tools = json.loads((package / "tools.json").read_text(encoding="utf-8"))
    assert [t["name"] for t in tools] == tool_set.names
    assert all("inputSchema" in t for t in tools)

    metadata = json.loads((package / "metadata.json").read_text(encoding="utf-8"))
    assert metadata["totalTools"] == tool_set.total_tools
    assert metadata["url"] == URL

    server = (package / "server.py").read_text(encoding="utf-8")
    assert f"START_URL = {URL!r}" in server
    compile(server, "server.py", "exec")

    assert packager.list_packages() == ["app_example_com-automation"]


def test_list_packages_ignores_other_dirs(tmp_path):
    (tmp_path / "scratch").mkdir()
    assert Packager(tmp_path).list_packages() == []
    assert Packager(tmp_path / "missing").list_packages() == []


def test_packaging_error(tmp_path):
    root = tmp_path / "root-is-a-file"
    root.write_text("x", encoding="utf-8")
    with pytest.raises(PackagingError):
        Packager(root).create_package("demo", _tool_set())


def test_host_config_keeps_existing_entries(tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({
        "mcpServers": {"other": {"command": "node", "args": ["other.js"]}},
        "theme": "dark",
    }), encoding="utf-8")
    package = PackageResult(path=str(tmp_path / "demo-automation"),
                            server_entry_path=str(tmp_path / "demo-automation" / "server.py"))

    result = HostConfigUpdater(config_path, command="python3").deploy("demo", package)
    assert result.success
    assert result.requires_restart
    assert result.server_name == "demo-automation"

    config = json.loads(config_path.read_text(encoding="utf-8"))
    assert config["theme"] == "dark"
    assert "other" in config["mcpServers"]
    assert config["mcpServers"]["demo-automation"] == {
        "command": "python3",
        "args": [package.server_entry_path],
        "env": {},
    }


def test_host_config_created_when_missing(tmp_path):
    config_path = tmp_path / "nested" / "config.json"
    package = PackageResult(path="p", server_entry_path="p/server.py")
    assert HostConfigUpdater(config_path).deploy("demo", package).success
    assert list(json.loads(config_path.read_text(encoding="utf-8"))["mcpServers"]) == ["demo-automation"]


def test_runtime_dispatch(tmp_path):
    tool_set = _tool_set()
    tools = {t.name: t.to_dict() for t in tool_set.tools}
    session = FakeSession(auth_forms={
        "hasEmailPassword": True,
        "emailSelector": "#email",
        "passwordSelector": "#password",
        "submitSelector": "#submit",
    })
    runtime = ToolRuntime(session, URL, ProfileConfig(email="cfg@example.com", password="cfg"))

    status = runtime.call(tools["app_example_com_get_status"])
    assert status == {"success": True, "open": False, "url": None}

    assert runtime.call(tools["app_example_com_initialize"])["url"] == URL
    assert session.opened and session.navigations == [URL]

    runtime.call(tools["app_example_com_create"])
    assert session.clicks == ["#create"]

    filled = runtime.call(tools["app_example_com_fill_form_1"], {"q": "llamas"})
    assert filled["filled"] == ["q"]
    assert ("input", "llamas") in session.fills

    runtime.call(tools["app_example_com_goto_Docs"])
    assert session.navigations[-1] == "https://app.example.com/docs"

    login = runtime.call(tools["app_example_com_login"], {"email": "me@example.com", "password": "pw"})
    assert login["success"]
    assert ("#email", "me@example.com") in session.fills
    assert ("#password", "pw") in session.fills

    shot = runtime.call(tools["app_example_com_screenshot"], {"filename": str(tmp_path / "shot.png")})
    assert (tmp_path / "shot.png").exists()
    assert shot["path"] == str(tmp_path / "shot.png")


def test_runtime_vision_auth_and_unknown_tool():
    session = FakeSession()
    runtime = ToolRuntime(session, URL)
    tool = {
        "name": "site_vision_auth",
        "implementation": "vision_based_auth",
        "binding": {"visionData": {"detected": True, "sign_in_label": "Log in", "sign_up_label": "Join"}},
    }
    assert runtime.call(tool, {"action": "signup"})["clicked"] == "Join"
    assert session.clicks == ["text=Join"]

    with pytest.raises(ValueError):
        runtime.call({"name": "x", "implementation": "teleport"})


def test_unparsable_host_config_is_left_untouched(tmp_path):
    config_path = tmp_path / "config.json"
    broken = '{"mcpServers": {"other": {"command": "node"}}, "theme": "dark",}'
    config_path.write_text(broken, encoding="utf-8")
    package = PackageResult(path="p", server_entry_path="p/server.py")

    result = HostConfigUpdater(config_path).deploy("demo", package)
    assert not result.success
    assert "Unreadable host config" in result.error
    assert config_path.read_text(encoding="utf-8") == broken


def test_non_object_host_config_is_left_untouched(tmp_path):
    package = PackageResult(path="p", server_entry_path="p/server.py")
    for content in ("[]", '{"mcpServers": []}'):
        config_path = tmp_path / "config.json"
        config_path.write_text(content, encoding="utf-8")
        result = HostConfigUpdater(config_path).deploy("demo", package)
        assert not result.success, content
        assert config_path.read_text(encoding="utf-8") == content


def test_deploy_command_registers_existing_package(tmp_path, capsys):
    packages = tmp_path / "packages"
    Packager(packages).create_package("app_example_com", _tool_set())
    config_path = tmp_path / "host" / "config.json"
    capsys.readouterr()

    code = run_generator.main([
        "--packages-dir", str(packages),
        "deploy", "app_example_com-automation",
        "--config", str(config_path),
    ])
    assert code == 0
    out = capsys.readouterr().out
    assert json.loads(out[out.index("{"):])["serverName"] == "app_example_com-automation"
    entry = json.loads(config_path.read_text(encoding="utf-8"))["mcpServers"]["app_example_com-automation"]
    assert entry["args"] == [str(packages / "app_example_com-automation" / "server.py")]


def test_deploy_command_fails_for_unknown_package(tmp_path):
    config_path = tmp_path / "config.json"
    code = run_generator.main([
        "--packages-dir", str(tmp_path / "packages"),
        "deploy", "missing-automation",
        "--config", str(config_path),
    ])
    assert code == 1
    assert not config_path.exists()


def test_deploy_command_fails_on_broken_host_config(tmp_path):
    packages = tmp_path / "packages"
    Packager(packages).create_package("demo", _tool_set())
    config_path = tmp_path / "config.json"
    config_path.write_text("{oops", encoding="utf-8")
    code = run_generator.main([
        "--packages-dir", str(packages), "deploy", "demo-automation", "--config", str(config_path),
    ])
    assert code == 1
    assert config_path.read_text(encoding="utf-8") == "{oops"


def test_load_package(tmp_path):
    Packager(tmp_path).create_package("demo", _tool_set())
    package = Packager(tmp_path).load_package("demo-automation")
    assert package.server_entry_path == str(tmp_path / "demo-automation" / "server.py")
    with pytest.raises(PackagingError):
        Packager(tmp_path).load_package("other-automation")
