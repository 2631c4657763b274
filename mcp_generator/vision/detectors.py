import json
from collections import deque
from typing import Any, Dict, List, Optional, Protocol

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from ..core.config import VISION_MODEL
from ..core.types import DetectedElement, DetectorOutput, Rect
from ..utils.imaging import bytes_to_data_url, edge_density_grid


class Detector(Protocol):
    """Image-based element detector backend."""

    name: str

    def detect(self, screenshot: bytes) -> Optional[DetectorOutput]: ...


def safe_detect(detector: Optional[Detector], screenshot: bytes) -> Optional[DetectorOutput]:
    """Run a detector, converting any failure into "no result"."""
    if detector is None:
        return None
    try:
        return detector.detect(screenshot)
    except Exception as e:
        print(f"[Vision] Detector '{getattr(detector, 'name', detector)}' failed: {e}")
        return None


def _strip_fences(text: str) -> str:
    if "```json" in text:
        return text.split("```json")[1].split("```")[0].strip()
    if "```" in text:
        return text.split("```")[1].split("```")[0].strip()
    return text.strip()


def _flatten_content(content: Any) -> str:
    # Flatten OpenAI-style mixed content into a single string
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
            elif isinstance(block, str):
                parts.append(block)
        return "\n".join(parts).strip()
    return str(content)


def _rect_from_any(value: Any) -> Rect:
    if isinstance(value, dict):
        return Rect.from_raw(value)
    if isinstance(value, (list, tuple)) and len(value) == 4:
        # [x1, y1, x2, y2]
        x1, y1, x2, y2 = (float(v) for v in value)
        return Rect(x=x1, y=y1, width=max(0.0, x2 - x1), height=max(0.0, y2 - y1))
    return Rect()


def parse_detector_payload(raw_text: str, method: str) -> Optional[DetectorOutput]:
    """Parse a model response into a DetectorOutput; None when unusable."""
    try:
        parsed = json.loads(_strip_fences(raw_text))
    except ValueError:
        return None

    # If the model returns a list, unwrap the first object or treat it as elements.
    if isinstance(parsed, list):
        if parsed and isinstance(parsed[0], dict) and "elements" in parsed[0]:
            parsed = parsed[0]
        else:
            parsed = {"elements": parsed}
    if not isinstance(parsed, dict):
        return None

    elements: List[DetectedElement] = []
    for item in parsed.get("elements") or []:
        if not isinstance(item, dict):
            continue
        try:
            confidence = float(item.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0
        elements.append(DetectedElement(
            type=str(item.get("type") or item.get("class") or "element"),
            text=str(item.get("text") or item.get("label") or item.get("placeholder") or ""),
            bbox=_rect_from_any(item.get("bbox") or item.get("location")),
            confidence=confidence,
            actionable=bool(item.get("actionable", False)),
        ))

    try:
        confidence = float(parsed.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0

    return DetectorOutput(method=method, elements=elements, confidence=confidence, raw=parsed)


VISION_SYSTEM_PROMPT = (
    "You are a UI detection model. Given a screenshot of a web page, list the interactive "
    "elements you can see.\n"
    "Respond with a single JSON object with keys:\n"
    "- elements: list of {type, text, bbox: {x, y, width, height}, confidence, actionable}\n"
    "  where type is one of button, input, link, select, checkbox, image, other\n"
    "- confidence: number in [0, 1] for the whole analysis\n"
    "- authFlow: {detected: boolean, type: 'email_password' | 'sso' | '', signInButton, signUpButton}\n"
    "- navigation: {primaryActions: [string], secondaryActions: [string]}\n"
    "Use pixel coordinates of the screenshot. Do not add commentary."
)


class LLMVisionDetector:
    """Primary detector: asks a vision chat model to enumerate UI elements."""

    name = "vision_llm"

    def __init__(self, model: str = VISION_MODEL, max_size: int = 960, llm=None):
        self.model = model
        self.max_size = max_size
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = ChatOpenAI(model=self.model, temperature=0.0, timeout=45, max_retries=1)
        return self._llm

    def detect(self, screenshot: bytes) -> Optional[DetectorOutput]:
        data_url = bytes_to_data_url(screenshot, max_size=self.max_size)
        human_msg = HumanMessage(content=[
            {"type": "text", "text": "Detect the interactive elements on this page."},
            {"type": "image_url", "image_url": {"url": data_url}},
        ])
        print(f"[Vision] Calling {self.model} for element detection...")
        result = self.llm.invoke([SystemMessage(content=VISION_SYSTEM_PROMPT), human_msg])
        output = parse_detector_payload(_flatten_content(result.content), self.name)
        if output is None:
            print("[Vision] Model response was not valid JSON.")
        return output


class EdgeRegionDetector:
    """Secondary detector: finds dense edge regions with Pillow.

    Cells whose edge density exceeds `threshold` are grouped into
    4-connected regions; each region becomes one detected element.
    """

    name = "edge_regions"

    def __init__(self, cell: int = 16, threshold: float = 0.12, min_cells: int = 2,
                 max_elements: int = 40, confidence: float = 0.6):
        self.cell = cell
        self.threshold = threshold
        self.min_cells = min_cells
        self.max_elements = max_elements
        self.confidence = confidence

    def detect(self, screenshot: bytes) -> Optional[DetectorOutput]:
        grid, scale = edge_density_grid(screenshot, cell=self.cell)
        rows = len(grid)
        cols = len(grid[0]) if grid else 0
        seen = [[False] * cols for _ in range(rows)]
        elements: List[DetectedElement] = []

        for r in range(rows):
            for c in range(cols):
                if seen[r][c] or grid[r][c] < self.threshold:
                    continue
                cells = self._flood(grid, seen, r, c)
                if len(cells) < self.min_cells:
                    continue
                elements.append(self._region_to_element(grid, cells, scale))

        elements.sort(key=lambda e: e.confidence, reverse=True)
        elements = elements[: self.max_elements]
        # Discovery order for consumers: top-to-bottom, left-to-right
        elements.sort(key=lambda e: (e.bbox.y, e.bbox.x))

        return DetectorOutput(
            method=self.name,
            elements=elements,
            confidence=self.confidence if elements else 0.0,
            raw={"totalDetections": len(elements), "grid": [rows, cols]},
        )

    def _flood(self, grid, seen, r0: int, c0: int) -> List[tuple]:
        rows, cols = len(grid), len(grid[0])
        queue = deque([(r0, c0)])
        seen[r0][c0] = True
        cells = []
        while queue:
            r, c = queue.popleft()
            cells.append((r, c))
            for dr, dc in ((1, 0), (-1, 0), (0, 1), (0, -1)):
                nr, nc = r + dr, c + dc
                if 0 <= nr < rows and 0 <= nc < cols and not seen[nr][nc] \
                        and grid[nr][nc] >= self.threshold:
                    seen[nr][nc] = True
                    queue.append((nr, nc))
        return cells

    def _region_to_element(self, grid, cells: List[tuple], scale: float) -> DetectedElement:
        top = min(r for r, _ in cells)
        bottom = max(r for r, _ in cells) + 1
        left = min(c for _, c in cells)
        right = max(c for _, c in cells) + 1
        density = sum(grid[r][c] for r, c in cells) / len(cells)
        size = self.cell * scale
        return DetectedElement(
            type="region",
            bbox=Rect(x=left * size, y=top * size,
                      width=(right - left) * size, height=(bottom - top) * size),
            confidence=round(min(1.0, 0.5 + density), 3),
            actionable=False,
        )


class StaticDetector:
    """Returns a fixed result. Used for offline runs and tests."""

    def __init__(self, output: Optional[DetectorOutput], name: str = "static"):
        self.output = output
        self.name = name

    def detect(self, screenshot: bytes) -> Optional[DetectorOutput]:
        return self.output


def detector_summary(output: Optional[DetectorOutput]) -> Dict[str, Any]:
    if output is None:
        return {"available": False}
    return {
        "available": True,
        "method": output.method,
        "elements": len(output.elements),
        "confidence": output.confidence,
    }
