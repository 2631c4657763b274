import re

import pytest

from conftest import raw_element
from mcp_generator.core.errors import SynthesisError
from mcp_generator.core.types import AuthFlowSummary, CategorizedElementSet, VisionResult
from mcp_generator.dom.elements import descriptors_from_raw
from mcp_generator.dom.mapper import categorize_elements
from mcp_generator.tools.naming import dedupe_names, extract_site_name, sanitize_name
from mcp_generator.tools.synthesizer import ToolSynthesizer

URL = "https://app.example.com/"
SITE = "app_example_com"
NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


def _synthesize(*raws, vision=None, **kwargs):
    categorized = categorize_elements(descriptors_from_raw(list(raws)))
    return ToolSynthesizer(**kwargs).synthesize(categorized, vision, URL, generated_at="2024-01-01T00:00:00")


def test_base_tools_always_present():
    for tool_set in (
        _synthesize(),
        _synthesize(raw_element("button", text="Run")),
        _synthesize(raw_element("input", type="password")),
    ):
        assert tool_set.names[:3] == [f"{SITE}_initialize", f"{SITE}_screenshot", f"{SITE}_get_status"]
        assert [t.implementation for t in tool_set.tools[:3]] == [
            "navigate_and_initialize", "take_screenshot", "get_page_status"]


def test_scenario_empty_page_yields_base_tools_only():
    tool_set = ToolSynthesizer().synthesize(CategorizedElementSet(), None, URL)
    assert tool_set.total_tools == 3
    assert tool_set.metadata["interfaceElements"] == 0
    assert tool_set.metadata["siteName"] == SITE


def test_scenario_sign_in_page_yields_login_tool():
    tool_set = _synthesize(
        raw_element("input", type="password"),
        raw_element("button", text="Sign In"),
    )
    login = tool_set.get(f"{SITE}_login")
    assert login is not None
    assert login.implementation == "handle_login"
    assert login.input_schema["required"] == ["email", "password"]
    assert set(login.input_schema["properties"]) == {"email", "password"}
    assert tool_set.get(f"{SITE}_signup") is None


def test_signup_tool_has_optional_names():
    tool_set = _synthesize(raw_element("a", text="Sign up free", href="https://app.example.com/join"))
    signup = tool_set.get(f"{SITE}_signup")
    assert signup is not None
    props = signup.input_schema["properties"]
    assert {"firstName", "lastName"} <= set(props)
    assert "firstName" not in signup.input_schema["required"]


def test_action_tools_capped_at_ten():
    buttons = [raw_element("button", text=f"Run {i}") for i in range(15)]
    tool_set = _synthesize(*buttons)
    actions = [t for t in tool_set.tools if t.implementation == "click_element"]
    assert len(actions) == 10
    assert actions[0].name == f"{SITE}_run_0"
    assert actions[0].selector == "button"
    assert actions[0].element.text == "Run 0"


def test_action_limit_is_configurable():
    buttons = [raw_element("button", text=f"Run {i}") for i in range(6)]
    tool_set = _synthesize(*buttons, action_limit=2)
    assert len([t for t in tool_set.tools if t.implementation == "click_element"]) == 2


def test_buttons_without_text_get_no_action_tool():
    tool_set = _synthesize(raw_element("button", text=""), raw_element("button", text="Go"))
    actions = [t.name for t in tool_set.tools if t.implementation == "click_element"]
    assert actions == [f"{SITE}_go"]


def test_navigation_tools_capped_at_five():
    links = [raw_element("a", text=f"Page {i}", href=f"https://app.example.com/p{i}") for i in range(8)]
    tool_set = _synthesize(*links)
    nav = [t for t in tool_set.tools if t.implementation == "navigate_to"]
    assert len(nav) == 5
    assert nav[0].name == f"{SITE}_goto_Page_0"
    assert nav[0].href == "https://app.example.com/p0"


def test_form_tool_schema_from_named_fields():
    tool_set = _synthesize(
        raw_element("input", placeholder="Search", name="q"),
        raw_element("textarea", placeholder="Prompt text"),
        raw_element("select"),
    )
    form = tool_set.get(f"{SITE}_fill_form_1")
    assert form is not None
    props = form.input_schema["properties"]
    assert set(props) == {"q", "Prompt_text"}
    assert props["q"]["description"] == "Search"
    fields = form.binding["formElements"]
    assert [f["field"] for f in fields] == ["q", "Prompt_text"]
    assert fields[1]["tag"] == "textarea"


def test_vision_tool_only_when_auth_flow_detected():
    flow = AuthFlowSummary(detected=True, type="button", sign_in_label="Sign in", sign_up_label="Create account")
    with_flow = _synthesize(vision=VisionResult(method="vision_llm", auth_flow=flow))
    tool = with_flow.get(f"{SITE}_vision_auth")
    assert tool is not None
    assert tool.binding["visionData"]["sign_in_label"] == "Sign in"
    assert tool.input_schema["properties"]["action"]["enum"] == ["login", "signup"]

    without = _synthesize(vision=VisionResult(method="vision_llm"))
    assert without.get(f"{SITE}_vision_auth") is None


def test_names_are_identifiers_and_segments_are_bounded():
    tool_set = _synthesize(
        raw_element("button", text="Generate a very long descriptive label!"),
        raw_element("a", text="Über uns & more", href="https://app.example.com/about"),
        raw_element("button", text="Save / Export"),
    )
    for tool in tool_set.tools:
        assert NAME_RE.match(tool.name), tool.name
    long_action = [t for t in tool_set.tools if t.element is not None and t.element.text.startswith("Generate")][0]
    segment = long_action.name[len(SITE) + 1:]
    assert segment == "generate_a_very_long"
    assert len(segment) <= 20


def test_name_collisions_get_suffixes():
    tool_set = _synthesize(
        raw_element("button", text="Save"),
        raw_element("button", text="Save"),
        raw_element("button", text="Save"),
        raw_element("button", text="Initialize"),
    )
    assert len(set(tool_set.names)) == len(tool_set.names)
    assert f"{SITE}_save" in tool_set.names
    assert f"{SITE}_save_2" in tool_set.names
    assert f"{SITE}_save_3" in tool_set.names
    # base tool names win
    assert tool_set.get(f"{SITE}_initialize").implementation == "navigate_and_initialize"
    assert f"{SITE}_initialize_2" in tool_set.names


def test_tool_dict_shape():
    tool_set = _synthesize(raw_element("button", text="Send", id="send-btn"))
    payload = tool_set.get(f"{SITE}_send").to_dict()
    assert payload["inputSchema"]["type"] == "object"
    assert payload["selector"] == "#send-btn"
    assert payload["element"]["tag"] == "button"


def test_metadata():
    tool_set = _synthesize(raw_element("button", text="Go"))
    assert tool_set.metadata == {
        "url": URL,
        "siteName": SITE,
        "generatedAt": "2024-01-01T00:00:00",
        "interfaceElements": 1,
    }
    assert tool_set.categories == ["authentication", "navigation", "forms", "actions", "content"]


def test_unexpected_input_raises_synthesis_error():
    with pytest.raises(SynthesisError):
        ToolSynthesizer().synthesize(None, None, URL)


def test_site_name_extraction():
    assert extract_site_name("https://app.example.com/path?q=1") == "app_example_com"
    assert extract_site_name("http://localhost:8080/") == "localhost"
    assert extract_site_name("not a url") == "site"
    assert extract_site_name("") == "site"


def test_sanitize_and_dedupe():
    assert sanitize_name("Log in!") == "Log_in_"
    assert len(sanitize_name("x" * 40)) == 20
    assert dedupe_names(["a", "b", "a", "a"]) == ["a", "b", "a_2", "a_3"]
    assert dedupe_names(["a"], reserved=["a", "a_2"]) == ["a_3"]
