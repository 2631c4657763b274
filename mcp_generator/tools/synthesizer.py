import time
from dataclasses import asdict, replace
from typing import Any, Dict, List, Optional

from ..core.config import ACTION_TOOL_LIMIT, NAVIGATION_TOOL_LIMIT
from ..core.errors import SynthesisError
from ..core.types import (
    CategorizedElementSet,
    ElementCategory,
    ElementDescriptor,
    ToolDescriptor,
    ToolSet,
    VisionResult,
)
from .naming import dedupe_names, extract_site_name, sanitize_name

LOGIN_KEYWORDS = ("login", "signin", "sign in", "log in")
SIGNUP_KEYWORDS = ("signup", "sign up", "register")


def _schema(properties: Optional[Dict[str, Any]] = None, required: Optional[List[str]] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties or {}}
    if required:
        schema["required"] = list(required)
    return schema


def _text_has(element: ElementDescriptor, keywords) -> bool:
    text = element.text.lower()
    return any(kw in text for kw in keywords)


def generate_base_tools(site: str) -> List[ToolDescriptor]:
    return [
        ToolDescriptor(
            name=f"{site}_initialize",
            description=f"Initialize browser session and navigate to {site}",
            input_schema=_schema({"headless": {"type": "boolean", "default": False}}),
            implementation="navigate_and_initialize",
        ),
        ToolDescriptor(
            name=f"{site}_screenshot",
            description=f"Take screenshot of {site} page",
            input_schema=_schema(
                {"filename": {"type": "string", "default": f"{site}_screenshot.png"}}),
            implementation="take_screenshot",
        ),
        ToolDescriptor(
            name=f"{site}_get_status",
            description="Get current status and page information",
            input_schema=_schema(),
            implementation="get_page_status",
        ),
    ]


def generate_auth_tools(elements: List[ElementDescriptor], site: str) -> List[ToolDescriptor]:
    tools: List[ToolDescriptor] = []

    if any(_text_has(el, LOGIN_KEYWORDS) for el in elements):
        tools.append(ToolDescriptor(
            name=f"{site}_login",
            description=f"Login to {site} with credentials",
            input_schema=_schema(
                {
                    "email": {"type": "string", "description": "Email address"},
                    "password": {"type": "string", "description": "Password"},
                },
                required=["email", "password"],
            ),
            implementation="handle_login",
        ))

    if any(_text_has(el, SIGNUP_KEYWORDS) for el in elements):
        tools.append(ToolDescriptor(
            name=f"{site}_signup",
            description=f"Create new account on {site}",
            input_schema=_schema(
                {
                    "email": {"type": "string", "description": "Email address"},
                    "password": {"type": "string", "description": "Password"},
                    "firstName": {"type": "string", "description": "First name"},
                    "lastName": {"type": "string", "description": "Last name"},
                },
                required=["email", "password"],
            ),
            implementation="handle_signup",
        ))

    return tools


def generate_action_tools(elements: List[ElementDescriptor], site: str,
                          limit: int = ACTION_TOOL_LIMIT) -> List[ToolDescriptor]:
    tools: List[ToolDescriptor] = []
    for element in elements:
        if not (element.is_clickable and element.text):
            continue
        tools.append(ToolDescriptor(
            name=f"{site}_{sanitize_name(element.text.lower())}",
            description=f"{element.text} action on {site}",
            input_schema=_schema({"options": {"type": "object", "default": {}}}),
            implementation="click_element",
            selector=element.selector,
            element=element,
        ))
    return tools[:limit]


def group_form_elements(elements: List[ElementDescriptor]) -> List[List[ElementDescriptor]]:
    """All form elements on the page form one group."""
    return [list(elements)] if elements else []


def generate_form_schema(elements: List[ElementDescriptor]) -> Dict[str, Any]:
    properties: Dict[str, Any] = {}
    for element in elements:
        if not (element.placeholder or element.attributes.name):
            continue
        field_name = element.attributes.name or sanitize_name(element.placeholder)
        properties[field_name] = {
            "type": "string",
            "description": element.placeholder or f"{field_name} field",
        }
    return properties


def generate_form_tools(elements: List[ElementDescriptor], site: str) -> List[ToolDescriptor]:
    tools: List[ToolDescriptor] = []
    for idx, group in enumerate(group_form_elements(elements), start=1):
        fields = [
            {
                "field": el.attributes.name or sanitize_name(el.placeholder),
                "selector": el.selector,
                "tag": el.tag,
                "type": el.input_type,
            }
            for el in group
            if el.placeholder or el.attributes.name
        ]
        tools.append(ToolDescriptor(
            name=f"{site}_fill_form_{idx}",
            description=f"Fill form {idx} on {site}",
            input_schema=_schema(generate_form_schema(group)),
            implementation="fill_form",
            binding={"formElements": fields},
        ))
    return tools


def generate_navigation_tools(elements: List[ElementDescriptor], site: str,
                              limit: int = NAVIGATION_TOOL_LIMIT) -> List[ToolDescriptor]:
    tools: List[ToolDescriptor] = []
    for element in elements:
        if not (element.href and element.text):
            continue
        tools.append(ToolDescriptor(
            name=f"{site}_goto_{sanitize_name(element.text)}",
            description=f"Navigate to {element.text} on {site}",
            input_schema=_schema(),
            implementation="navigate_to",
            selector=element.selector,
            href=element.href,
            element=element,
        ))
    return tools[:limit]


def generate_vision_tools(vision: Optional[VisionResult], site: str) -> List[ToolDescriptor]:
    if vision is None or not vision.auth_flow.detected:
        return []
    return [ToolDescriptor(
        name=f"{site}_vision_auth",
        description="Handle authentication using vision-detected elements",
        input_schema=_schema({
            "action": {"type": "string", "enum": ["login", "signup"], "default": "login"},
        }),
        implementation="vision_based_auth",
        binding={"visionData": asdict(vision.auth_flow)},
    )]


class ToolSynthesizer:
    """Derives tool descriptors from categorized elements and vision output."""

    def __init__(self, action_limit: int = ACTION_TOOL_LIMIT,
                 navigation_limit: int = NAVIGATION_TOOL_LIMIT):
        self.action_limit = action_limit
        self.navigation_limit = navigation_limit

    def synthesize(self, categorized: CategorizedElementSet, vision: Optional[VisionResult],
                   url: str, generated_at: Optional[str] = None) -> ToolSet:
        try:
            return self._synthesize(categorized, vision, url, generated_at)
        except SynthesisError:
            raise
        except Exception as e:
            raise SynthesisError(f"Tool synthesis failed: {e}") from e

    def _synthesize(self, categorized: CategorizedElementSet, vision: Optional[VisionResult],
                    url: str, generated_at: Optional[str]) -> ToolSet:
        site = extract_site_name(url)
        base = generate_base_tools(site)

        cats = categorized.categories
        derived: List[ToolDescriptor] = []
        derived += generate_auth_tools(cats.get(ElementCategory.AUTHENTICATION, []), site)
        derived += generate_navigation_tools(
            cats.get(ElementCategory.NAVIGATION, []), site, self.navigation_limit)
        derived += generate_form_tools(cats.get(ElementCategory.FORMS, []), site)
        derived += generate_action_tools(
            cats.get(ElementCategory.ACTIONS, []), site, self.action_limit)
        derived += generate_vision_tools(vision, site)

        unique = dedupe_names([t.name for t in derived], reserved=[t.name for t in base])
        derived = [
            tool if tool.name == name else replace(tool, name=name)
            for tool, name in zip(derived, unique)
        ]

        tools = base + derived
        print(f"[Synthesizer] Generated {len(tools)} tools for {site}")
        return ToolSet(
            tools=tools,
            categories=[c.value for c in ElementCategory],
            metadata={
                "url": url,
                "siteName": site,
                "generatedAt": generated_at or time.strftime("%Y-%m-%dT%H:%M:%S"),
                "interfaceElements": categorized.total_elements,
            },
        )
