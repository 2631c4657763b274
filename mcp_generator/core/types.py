import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict


# --- Page elements ---


@dataclass(frozen=True)
class Rect:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def area(self) -> float:
        return self.width * self.height

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "Rect":
        raw = raw or {}
        return cls(
            x=float(raw.get("x") or 0.0),
            y=float(raw.get("y") or 0.0),
            width=float(raw.get("width") or 0.0),
            height=float(raw.get("height") or 0.0),
        )


@dataclass(frozen=True)
class ElementAttributes:
    id: str = ""
    class_name: str = ""
    name: str = ""
    role: str = ""
    aria_label: str = ""
    test_id: str = ""


@dataclass(frozen=True)
class ElementDescriptor:
    """Normalized record of one interactive node found during a mapping pass."""

    tag: str
    selector: str
    input_type: str = ""
    text: str = ""
    placeholder: str = ""
    value: str = ""
    href: str = ""
    rect: Rect = field(default_factory=Rect)
    attributes: ElementAttributes = field(default_factory=ElementAttributes)
    parent: str = ""
    is_visible: bool = True
    is_clickable: bool = False
    index: int = 0

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], index: int = 0) -> "ElementDescriptor":
        """Build a descriptor from the dict produced by the in-page extractor."""
        attrs = raw.get("attributes") or {}
        return cls(
            tag=(raw.get("tag") or "").lower(),
            selector=raw.get("selector") or (raw.get("tag") or "").lower(),
            input_type=(raw.get("type") or "").lower(),
            text=(raw.get("text") or "")[:100],
            placeholder=raw.get("placeholder") or "",
            value=str(raw.get("value") or ""),
            href=raw.get("href") or "",
            rect=Rect.from_raw(raw.get("rect")),
            attributes=ElementAttributes(
                id=attrs.get("id") or "",
                class_name=attrs.get("className") or "",
                name=attrs.get("name") or "",
                role=attrs.get("role") or "",
                aria_label=attrs.get("ariaLabel") or "",
                test_id=attrs.get("dataTestId") or "",
            ),
            parent=raw.get("parent") or "",
            is_visible=bool(raw.get("isVisible", True)),
            is_clickable=bool(raw.get("isClickable", False)),
            index=index,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ElementCategory(str, Enum):
    AUTHENTICATION = "authentication"
    NAVIGATION = "navigation"
    FORMS = "forms"
    ACTIONS = "actions"
    CONTENT = "content"


@dataclass(frozen=True)
class AutomationPotential:
    score: int = 0
    has_auth: bool = False
    has_actions: bool = False
    has_forms: bool = False
    has_navigation: bool = False
    total_interactive_elements: int = 0


def _empty_categories() -> Dict[ElementCategory, List[ElementDescriptor]]:
    return {category: [] for category in ElementCategory}


@dataclass
class CategorizedElementSet:
    elements: List[ElementDescriptor] = field(default_factory=list)
    categories: Dict[ElementCategory, List[ElementDescriptor]] = field(
        default_factory=_empty_categories)
    forms_count: int = 0
    navigation_hrefs: List[str] = field(default_factory=list)
    primary_actions: List[str] = field(default_factory=list)
    automation_potential: AutomationPotential = field(
        default_factory=AutomationPotential)
    error: Optional[str] = None

    @property
    def total_elements(self) -> int:
        return len(self.elements)

    @classmethod
    def empty(cls, error: Optional[str] = None) -> "CategorizedElementSet":
        return cls(error=error)

    def category_of(self, element: ElementDescriptor) -> Optional[ElementCategory]:
        for category, members in self.categories.items():
            if element in members:
                return category
        return None

    def summary(self) -> Dict[str, int]:
        return {category.value: len(members) for category, members in self.categories.items()}


# --- Vision ---


@dataclass(frozen=True)
class DetectedElement:
    type: str
    text: str = ""
    bbox: Rect = field(default_factory=Rect)
    confidence: float = 0.0
    actionable: bool = False


@dataclass
class DetectorOutput:
    """What a single detector backend returns for one screenshot."""

    method: str
    elements: List[DetectedElement] = field(default_factory=list)
    confidence: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthFlowSummary:
    detected: bool = False
    type: str = ""
    sign_in_label: str = ""
    sign_up_label: str = ""


@dataclass(frozen=True)
class NavigationSummary:
    primary_actions: List[str] = field(default_factory=list)
    secondary_actions: List[str] = field(default_factory=list)


@dataclass
class AccessibilitySnapshot:
    total_elements: int = 0
    elements: List[Dict[str, Any]] = field(default_factory=list)
    forms: int = 0
    navigation: List[str] = field(default_factory=list)


@dataclass
class VisionResult:
    method: str
    confidence: float = 0.0
    elements: List[DetectedElement] = field(default_factory=list)
    backup: Optional["VisionResult"] = None
    multi_source: bool = False
    auth_flow: AuthFlowSummary = field(default_factory=AuthFlowSummary)
    navigation: NavigationSummary = field(default_factory=NavigationSummary)
    accessibility: AccessibilitySnapshot = field(default_factory=AccessibilitySnapshot)
    analysis_id: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# --- Authentication ---


@dataclass
class AuthResult:
    success: bool
    action: str = ""
    logged_in: bool = False
    confidence: float = 0.0
    method: str = ""
    indicators: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


# --- Tools ---


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    input_schema: Dict[str, Any]
    implementation: str
    selector: Optional[str] = None
    element: Optional[ElementDescriptor] = None
    href: Optional[str] = None
    binding: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "implementation": self.implementation,
        }
        if self.selector:
            payload["selector"] = self.selector
        if self.href:
            payload["href"] = self.href
        if self.element is not None:
            payload["element"] = self.element.to_dict()
        if self.binding:
            payload["binding"] = self.binding
        return payload


@dataclass
class ToolSet:
    tools: List[ToolDescriptor] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_tools(self) -> int:
        return len(self.tools)

    @property
    def names(self) -> List[str]:
        return [t.name for t in self.tools]

    def get(self, name: str) -> Optional[ToolDescriptor]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None


# --- Packaging / deployment ---


@dataclass
class PackageResult:
    path: str
    server_entry_path: str
    tools_path: str = ""


@dataclass
class DeployResult:
    success: bool
    server_name: str = ""
    config_path: str = ""
    requires_restart: bool = False
    error: Optional[str] = None


# --- Pipeline ---


class PipelineStage(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    NAVIGATING = "navigating"
    AUTH_DETECTING = "auth_detecting"
    VISION_ANALYZING = "vision_analyzing"
    INTERFACE_MAPPING = "interface_mapping"
    TOOL_SYNTHESIZING = "tool_synthesizing"
    PACKAGING = "packaging"
    DEPLOYING = "deploying"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RunOptions:
    skip_auth: bool = False
    auto_package: bool = True
    auto_deploy: bool = True
    navigation_timeout_ms: int = 30000


@dataclass(frozen=True)
class StepRecord:
    timestamp: str
    elapsed_ms: int
    message: str


@dataclass
class PipelineRun:
    url: str
    site_name: str
    options: RunOptions = field(default_factory=RunOptions)
    start_time: float = field(default_factory=time.time)
    steps: List[StepRecord] = field(default_factory=list)
    stage: PipelineStage = PipelineStage.IDLE
    last_completed_stage: Optional[PipelineStage] = None
    failed_at: Optional[PipelineStage] = None
    error: Optional[str] = None
    auth_result: Optional[AuthResult] = None
    vision_result: Optional[VisionResult] = None
    interface_map: Optional[CategorizedElementSet] = None
    tool_set: Optional[ToolSet] = None
    package_result: Optional[PackageResult] = None
    deploy_result: Optional[DeployResult] = None

    def elapsed_ms(self) -> int:
        return int((time.time() - self.start_time) * 1000)


@dataclass
class RunResult:
    success: bool
    site_name: str
    url: str
    elapsed_ms: int
    steps: List[StepRecord]
    tools_count: int = 0
    package_path: Optional[str] = None
    deployed: bool = False
    summary: str = ""
    error: Optional[str] = None
    failed_at: Optional[str] = None
    last_completed_stage: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "siteName": self.site_name,
            "url": self.url,
            "elapsedMs": self.elapsed_ms,
            "steps": [
                {"timestamp": s.timestamp, "message": s.message, "elapsed": s.elapsed_ms}
                for s in self.steps
            ],
            "toolsCount": self.tools_count,
            "deployed": self.deployed,
        }
        if self.package_path:
            payload["packagePath"] = self.package_path
        if self.summary:
            payload["summary"] = self.summary
        if self.error is not None:
            payload["error"] = self.error
            payload["failedAt"] = self.failed_at
            payload["lastCompletedStage"] = self.last_completed_stage
        return payload


class PipelineState(TypedDict):
    run: PipelineRun
    # Live browser session (kept in-memory for single-run)
    session: Any
    cancel_event: Any
    screenshot: Optional[bytes]
    failed: bool
