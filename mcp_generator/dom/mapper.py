from typing import Dict, List, Optional

from ..core.types import (
    AutomationPotential,
    CategorizedElementSet,
    ElementCategory,
    ElementDescriptor,
)
from .elements import descriptors_from_raw, extract_page_elements

# --- Keyword sets ---

AUTH_KEYWORDS = {
    "login", "signin", "signup", "password", "email", "register", "auth",
    "log in", "sign in", "sign up",
}
NAVIGATION_KEYWORDS = {"home", "about", "contact", "menu", "nav", "link"}
ACTION_KEYWORDS = {"create", "generate", "submit", "send", "save", "delete", "edit", "update"}
FORM_TAGS = {"input", "textarea", "select"}


def _contains_any(text: str, keywords) -> bool:
    text = text.lower()
    return any(kw in text for kw in keywords)


def is_auth_element(element: ElementDescriptor) -> bool:
    haystack = (
        element.text
        + element.placeholder
        + element.attributes.id
        + element.attributes.class_name
    )
    return _contains_any(haystack, AUTH_KEYWORDS) or element.input_type == "password"


def is_navigation_element(element: ElementDescriptor) -> bool:
    haystack = element.text + element.href + element.attributes.class_name
    return element.tag == "a" or _contains_any(haystack, NAVIGATION_KEYWORDS)


def is_form_element(element: ElementDescriptor) -> bool:
    return element.tag in FORM_TAGS and not is_auth_element(element)


def is_action_element(element: ElementDescriptor) -> bool:
    haystack = element.text + element.attributes.aria_label
    return element.tag == "button" or _contains_any(haystack, ACTION_KEYWORDS)


# Evaluated in order; first match wins.
CATEGORY_PREDICATES = [
    (ElementCategory.AUTHENTICATION, is_auth_element),
    (ElementCategory.NAVIGATION, is_navigation_element),
    (ElementCategory.FORMS, is_form_element),
    (ElementCategory.ACTIONS, is_action_element),
]


def classify_element(element: ElementDescriptor) -> ElementCategory:
    for category, predicate in CATEGORY_PREDICATES:
        if predicate(element):
            return category
    return ElementCategory.CONTENT


def assess_automation_potential(
    categories: Dict[ElementCategory, List[ElementDescriptor]],
) -> AutomationPotential:
    total = sum(len(members) for members in categories.values())
    return AutomationPotential(
        score=min(100, total * 10),
        has_auth=bool(categories.get(ElementCategory.AUTHENTICATION)),
        has_actions=bool(categories.get(ElementCategory.ACTIONS)),
        has_forms=bool(categories.get(ElementCategory.FORMS)),
        has_navigation=bool(categories.get(ElementCategory.NAVIGATION)),
        total_interactive_elements=total,
    )


def categorize_elements(
    elements: List[ElementDescriptor],
    forms_count: int = 0,
    navigation_hrefs: Optional[List[str]] = None,
) -> CategorizedElementSet:
    """Partition elements into the five categories."""
    categories: Dict[ElementCategory, List[ElementDescriptor]] = {
        category: [] for category in ElementCategory
    }
    for element in elements:
        categories[classify_element(element)].append(element)

    primary_actions = [e.text for e in elements if e.is_clickable][:5]

    return CategorizedElementSet(
        elements=list(elements),
        categories=categories,
        forms_count=forms_count,
        navigation_hrefs=list(navigation_hrefs or []),
        primary_actions=primary_actions,
        automation_potential=assess_automation_potential(categories),
    )


class InterfaceMapper:
    """Enumerates interactive elements on the live page and categorizes them."""

    def map_elements(self, session) -> CategorizedElementSet:
        try:
            payload = extract_page_elements(session)
            elements = descriptors_from_raw(payload.get("elements") or [])
        except Exception as e:
            print(f"[Mapper] Interface mapping failed: {e}")
            return CategorizedElementSet.empty(error=str(e))

        result = categorize_elements(
            elements,
            forms_count=int(payload.get("forms") or 0),
            navigation_hrefs=payload.get("navigation") or [],
        )
        print(
            f"[Mapper] Mapped {result.total_elements} elements "
            f"{result.summary()} score={result.automation_potential.score}")
        return result
