from ..core.types import AccessibilitySnapshot
from .elements import descriptors_from_raw, extract_page_elements


def accessibility_snapshot(session, limit: int = 50) -> AccessibilitySnapshot:
    """Accessibility-derived page summary, capped at `limit` elements.

    Reuses the interface extractor so vision results and the element map
    describe the same nodes. Never raises.
    """
    try:
        payload = extract_page_elements(session)
        descriptors = descriptors_from_raw(payload.get("elements") or [])
    except Exception as e:
        print(f"[Vision] Accessibility extraction failed: {e}")
        return AccessibilitySnapshot()

    elements = []
    for d in descriptors[:limit]:
        elements.append({
            "tag": d.tag,
            "selector": d.selector,
            "text": d.text,
            "placeholder": d.placeholder,
            "type": d.input_type,
            "role": d.attributes.role,
            "ariaLabel": d.attributes.aria_label,
            "id": d.attributes.id,
            "className": d.attributes.class_name,
            "rect": {"x": d.rect.x, "y": d.rect.y, "width": d.rect.width, "height": d.rect.height},
            "visible": d.is_visible,
            "clickable": d.is_clickable,
        })

    return AccessibilitySnapshot(
        total_elements=len(descriptors),
        elements=elements,
        forms=int(payload.get("forms") or 0),
        navigation=list(payload.get("navigation") or []),
    )
