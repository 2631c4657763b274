from typing import Any, Dict, List, Optional

import pytest

from mcp_generator.core.errors import NavigationError
from mcp_generator.dom.auth import AUTH_FORMS_JS, LOGIN_STATUS_JS
from mcp_generator.dom.elements import EXTRACT_ELEMENTS_JS


def raw_element(tag: str, text: str = "", type: str = "", placeholder: str = "", href: str = "",
                id: str = "", className: str = "", name: str = "", role: str = "",
                ariaLabel: str = "", width: float = 100, height: float = 20,
                clickable: Optional[bool] = None) -> Dict[str, Any]:
    """Dict shaped like one entry of the in-page extractor output."""
    if clickable is None:
        clickable = tag in ("button", "a") or role == "button"
    return {
        "tag": tag,
        "type": type,
        "text": text,
        "placeholder": placeholder,
        "value": "",
        "href": href,
        "rect": {"x": 10, "y": 10, "width": width, "height": height},
        "attributes": {
            "id": id,
            "className": className,
            "name": name,
            "role": role,
            "ariaLabel": ariaLabel,
            "dataTestId": "",
        },
        "parent": "div",
        "isVisible": True,
        "isClickable": clickable,
    }


class FakeSession:
    """In-memory stand-in for a browser session."""

    def __init__(self, elements: Optional[List[Dict[str, Any]]] = None, url: str = "https://app.example.com/",
                 login_status: Optional[Dict[str, Any]] = None, auth_forms: Optional[Dict[str, Any]] = None,
                 navigate_error: Optional[Exception] = None, extract_error: Optional[Exception] = None,
                 screenshot_bytes: bytes = b"", forms: int = 0):
        self.elements = elements or []
        self._url = url
        self.login_status = login_status or {"hasLoggedInIndicators": False, "hasLoginForms": False}
        self.auth_forms = auth_forms or {"hasGoogleSSO": False, "hasEmailPassword": False}
        self.navigate_error = navigate_error
        self.extract_error = extract_error
        self.screenshot_bytes = screenshot_bytes
        self.forms = forms
        self.opened = False
        self.closed = False
        self.navigations: List[str] = []
        self.fills: List[tuple] = []
        self.clicks: List[str] = []

    @property
    def url(self) -> str:
        return self._url

    def open(self) -> None:
        self.opened = True

    def navigate(self, url: str, timeout_ms: int) -> None:
        if self.navigate_error is not None:
            raise self.navigate_error
        self.navigations.append(url)
        self._url = url

    def screenshot(self) -> bytes:
        return self.screenshot_bytes

    def evaluate(self, script: str, arg: Any = None) -> Any:
        if script == EXTRACT_ELEMENTS_JS:
            if self.extract_error is not None:
                raise self.extract_error
            return {
                "elements": self.elements,
                "forms": self.forms,
                "navigation": [e["href"] for e in self.elements if e.get("href")],
            }
        if script == LOGIN_STATUS_JS:
            return dict(self.login_status)
        if script == AUTH_FORMS_JS:
            return dict(self.auth_forms)
        raise AssertionError("unexpected script")

    def fill(self, selector: str, value: str) -> None:
        self.fills.append((selector, value))

    def click(self, selector: str) -> None:
        self.clicks.append(selector)

    def close(self) -> None:
        self.closed = True


def timeout_session(**kwargs) -> FakeSession:
    return FakeSession(navigate_error=NavigationError("Navigation timed out after 50ms"), **kwargs)


@pytest.fixture
def make_session():
    return FakeSession
