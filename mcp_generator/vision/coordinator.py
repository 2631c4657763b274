import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from ..core.config import ACCESSIBILITY_LIMIT, ANALYSIS_CACHE_SIZE
from ..core.errors import VISION_ANALYSIS_DEGRADED
from ..core.types import (
    AccessibilitySnapshot,
    AuthFlowSummary,
    DetectorOutput,
    NavigationSummary,
    VisionResult,
)
from ..dom.accessibility import accessibility_snapshot
from ..utils.imaging import draw_detections_on_image
from .detectors import Detector, detector_summary, safe_detect


class AnalysisCache:
    """Bounded LRU of vision results keyed by analysis id."""

    def __init__(self, max_size: int = ANALYSIS_CACHE_SIZE):
        self.max_size = max(1, max_size)
        self._items: "OrderedDict[str, VisionResult]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def get(self, key: str) -> Optional[VisionResult]:
        item = self._items.get(key)
        if item is not None:
            self._items.move_to_end(key)
        return item

    def put(self, key: str, value: VisionResult) -> None:
        self._items[key] = value
        self._items.move_to_end(key)
        while len(self._items) > self.max_size:
            self._items.popitem(last=False)


def generate_analysis_id(url: str, now_ms: Optional[int] = None) -> str:
    try:
        host = urlparse(url).hostname or "page"
    except ValueError:
        host = "page"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{host.replace('.', '_')}_{stamp}"


def is_analysis_complete(result: Optional[VisionResult]) -> bool:
    return result is not None and len(result.elements) > 0


def to_vision_result(output: Optional[DetectorOutput]) -> Optional[VisionResult]:
    """Lift a detector output into a VisionResult, reading optional summaries from raw."""
    if output is None:
        return None
    raw: Dict[str, Any] = output.raw or {}
    flow = raw.get("authFlow") or {}
    nav = raw.get("navigation") or {}
    return VisionResult(
        method=output.method,
        confidence=float(output.confidence or 0.0),
        elements=list(output.elements),
        auth_flow=AuthFlowSummary(
            detected=bool(flow.get("detected", False)),
            type=str(flow.get("type") or ""),
            sign_in_label=str(flow.get("signInButton") or ""),
            sign_up_label=str(flow.get("signUpButton") or ""),
        ) if isinstance(flow, dict) else AuthFlowSummary(),
        navigation=NavigationSummary(
            primary_actions=list(nav.get("primaryActions") or []),
            secondary_actions=list(nav.get("secondaryActions") or []),
        ) if isinstance(nav, dict) else NavigationSummary(),
    )


def merge_analysis(primary: Optional[VisionResult], secondary: Optional[VisionResult]) -> Optional[VisionResult]:
    """Keep primary fields, attach secondary as backup, take the max confidence."""
    if primary is None:
        return secondary
    if secondary is None:
        return primary
    merged = VisionResult(
        method=primary.method,
        confidence=max(primary.confidence or 0.0, secondary.confidence or 0.0),
        elements=list(primary.elements),
        backup=secondary,
        multi_source=True,
        auth_flow=primary.auth_flow,
        navigation=primary.navigation,
        accessibility=primary.accessibility,
        analysis_id=primary.analysis_id,
        error=primary.error,
    )
    # Primary came back empty; expose the backup's detections so consumers see them.
    if not merged.elements:
        merged.elements = list(secondary.elements)
    return merged


def create_fallback_analysis() -> VisionResult:
    return VisionResult(
        method="fallback",
        confidence=0.5,
        elements=[],
        auth_flow=AuthFlowSummary(detected=False),
        navigation=NavigationSummary(primary_actions=[], secondary_actions=[]),
        accessibility=AccessibilitySnapshot(),
        error=VISION_ANALYSIS_DEGRADED,
    )


class VisionAnalyzer:
    """Runs the primary detector, falls back to the secondary, merges both."""

    def __init__(
        self,
        primary: Optional[Detector] = None,
        secondary: Optional[Detector] = None,
        cache_size: int = ANALYSIS_CACHE_SIZE,
        accessibility_limit: int = ACCESSIBILITY_LIMIT,
        artifact_dir: Optional[Path] = None,
    ):
        self.primary = primary
        self.secondary = secondary
        self.cache = AnalysisCache(cache_size)
        self.accessibility_limit = accessibility_limit
        self.artifact_dir = Path(artifact_dir) if artifact_dir else None

    def analyze(self, screenshot: bytes, page) -> VisionResult:
        url = getattr(page, "url", "") or ""
        analysis_id = generate_analysis_id(url)
        try:
            result = self._run_detectors(screenshot)
        except Exception as e:
            print(f"[Vision] Vision analysis failed: {e}")
            result = None

        if result is None:
            result = create_fallback_analysis()

        result.analysis_id = analysis_id
        result.accessibility = accessibility_snapshot(page, limit=self.accessibility_limit)
        self.cache.put(analysis_id, result)
        self._save_artifacts(analysis_id, screenshot, result)
        print(
            f"[Vision] method={result.method} confidence={result.confidence:.2f} "
            f"elements={len(result.elements)} multi_source={result.multi_source}")
        return result

    def _run_detectors(self, screenshot: bytes) -> Optional[VisionResult]:
        print("[Vision] Attempting primary analysis...")
        primary_output = safe_detect(self.primary, screenshot)
        print(f"[Vision] Primary: {detector_summary(primary_output)}")
        result = to_vision_result(primary_output)

        if not is_analysis_complete(result):
            print("[Vision] Falling back to secondary analysis...")
            secondary_output = safe_detect(self.secondary, screenshot)
            print(f"[Vision] Secondary: {detector_summary(secondary_output)}")
            result = merge_analysis(result, to_vision_result(secondary_output))
        return result

    def _save_artifacts(self, analysis_id: str, screenshot: bytes, result: VisionResult) -> None:
        if self.artifact_dir is None:
            return
        try:
            self.artifact_dir.mkdir(parents=True, exist_ok=True)
            (self.artifact_dir / f"{analysis_id}_screenshot.png").write_bytes(screenshot)
            if result.elements:
                draw_detections_on_image(
                    screenshot, result.elements,
                    self.artifact_dir / f"{analysis_id}_annotated.png")
        except Exception as e:
            print(f"[Vision] Failed to write analysis artifacts: {e}")
