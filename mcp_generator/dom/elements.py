from typing import Any, Dict, List

from ..core.types import ElementDescriptor

INTERACTIVE_SELECTORS = [
    "button",
    "input",
    "textarea",
    "select",
    "a[href]",
    '[role="button"]',
    "[onclick]",
    "[tabindex]",
]

TEXT_LIMIT = 100

# Runs in the page. Receives the selector list, returns one dict per
# visible interactive node in document order. Mirrors generate_selector().
EXTRACT_ELEMENTS_JS = """
(selectors) => {
    const generateSelector = (el) => {
        if (el.id) return `#${el.id}`;
        const cls = typeof el.className === 'string' ? el.className.trim() : '';
        if (cls) return `${el.tagName.toLowerCase()}.${cls.split(/\\s+/).join('.')}`;
        return el.tagName.toLowerCase();
    };

    const elements = [];
    document.querySelectorAll(selectors.join(',')).forEach((el) => {
        const rect = el.getBoundingClientRect();
        if (rect.width <= 0 || rect.height <= 0) return;
        const tag = el.tagName.toLowerCase();
        const role = el.getAttribute('role');
        elements.push({
            tag,
            type: el.type || '',
            text: (el.textContent || '').trim().substring(0, 100),
            placeholder: el.placeholder || '',
            value: typeof el.value === 'string' ? el.value : '',
            href: el.href || '',
            rect: { x: rect.x, y: rect.y, width: rect.width, height: rect.height },
            attributes: {
                id: el.id || '',
                className: typeof el.className === 'string' ? el.className : '',
                name: el.getAttribute('name') || '',
                role: role || '',
                ariaLabel: el.getAttribute('aria-label') || '',
                dataTestId: el.getAttribute('data-testid') || '',
            },
            parent: el.parentElement ? el.parentElement.tagName.toLowerCase() : '',
            isVisible: !el.hidden,
            isClickable: tag === 'button' || tag === 'a' || !!el.onclick
                || el.hasAttribute('onclick') || role === 'button',
            selector: generateSelector(el),
        });
    });
    return {
        elements,
        forms: document.forms.length,
        navigation: Array.from(document.querySelectorAll('a[href]')).map((a) => a.href),
    };
}
"""


def generate_selector(tag: str, element_id: str = "", class_name: str = "") -> str:
    """Best-effort selector: #id, else tag.class1.class2, else tag."""
    tag = (tag or "").lower()
    if element_id:
        return f"#{element_id}"
    classes = (class_name or "").split()
    if classes:
        return f"{tag}." + ".".join(classes)
    return tag


def is_clickable(tag: str, role: str = "", has_click_handler: bool = False) -> bool:
    return tag in ("button", "a") or has_click_handler or role == "button"


def descriptors_from_raw(raw_elements: List[Dict[str, Any]]) -> List[ElementDescriptor]:
    """Normalize raw extractor output, dropping zero-area nodes."""
    descriptors: List[ElementDescriptor] = []
    for raw in raw_elements:
        rect = raw.get("rect") or {}
        width = float(rect.get("width") or 0)
        height = float(rect.get("height") or 0)
        if width <= 0 or height <= 0:
            continue

        attrs = raw.get("attributes") or {}
        if not raw.get("selector"):
            raw = dict(raw)
            raw["selector"] = generate_selector(
                raw.get("tag") or "", attrs.get("id") or "", attrs.get("className") or "")
        if "isClickable" not in raw:
            raw = dict(raw)
            raw["isClickable"] = is_clickable(
                (raw.get("tag") or "").lower(), attrs.get("role") or "")

        descriptors.append(ElementDescriptor.from_raw(raw, index=len(descriptors)))
    return descriptors


def extract_page_elements(session) -> Dict[str, Any]:
    """Run the in-page extractor and return its raw payload."""
    payload = session.evaluate(EXTRACT_ELEMENTS_JS, INTERACTIVE_SELECTORS)
    if isinstance(payload, list):
        payload = {"elements": payload}
    if not isinstance(payload, dict):
        raise RuntimeError(f"Unexpected extractor payload: {type(payload).__name__}")
    return payload


def collect_interactive_elements(session) -> List[ElementDescriptor]:
    """Return visible interactive elements as descriptors, in DOM order."""
    payload = extract_page_elements(session)
    return descriptors_from_raw(payload.get("elements") or [])
