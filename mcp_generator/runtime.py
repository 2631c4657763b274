"""
Generic action implementations behind generated tools.

Each tool descriptor names one of these by its ``implementation`` tag.
Selectors are re-resolved against the live page at call time; nothing
here caches DOM references.
"""

from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .core.config import NAVIGATION_TIMEOUT_MS, ProfileConfig
from .dom.auth import AuthDetector, AuthProfile


class ToolRuntime:
    def __init__(self, session, start_url: str, profile_config: Optional[ProfileConfig] = None):
        self.session = session
        self.start_url = start_url
        self.profile_config = profile_config
        self._opened = False
        self.handlers: Dict[str, Callable[[Dict[str, Any], Dict[str, Any]], Dict[str, Any]]] = {
            "navigate_and_initialize": self.navigate_and_initialize,
            "take_screenshot": self.take_screenshot,
            "get_page_status": self.get_page_status,
            "click_element": self.click_element,
            "fill_form": self.fill_form,
            "navigate_to": self.navigate_to,
            "handle_login": self.handle_credentials,
            "handle_signup": self.handle_credentials,
            "vision_based_auth": self.vision_based_auth,
        }

    def call(self, tool: Dict[str, Any], arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        implementation = tool.get("implementation")
        handler = self.handlers.get(implementation)
        if handler is None:
            raise ValueError(f"Unknown implementation: {implementation}")
        print(f"[Runtime] {tool.get('name')} -> {implementation}")
        return handler(tool, arguments or {})

    def _ensure_open(self) -> None:
        if not self._opened:
            self.session.open()
            self.session.navigate(self.start_url, NAVIGATION_TIMEOUT_MS)
            self._opened = True

    def navigate_and_initialize(self, tool, args):
        self._ensure_open()
        return {"success": True, "url": self.session.url}

    def take_screenshot(self, tool, args):
        self._ensure_open()
        filename = args.get("filename") or "screenshot.png"
        path = Path(filename)
        path.write_bytes(self.session.screenshot())
        return {"success": True, "path": str(path)}

    def get_page_status(self, tool, args):
        return {"success": True, "open": self._opened, "url": self.session.url if self._opened else None}

    def click_element(self, tool, args):
        self._ensure_open()
        self.session.click(tool["selector"])
        return {"success": True, "selector": tool["selector"]}

    def fill_form(self, tool, args):
        self._ensure_open()
        filled = []
        for field in (tool.get("binding") or {}).get("formElements", []):
            value = args.get(field["field"])
            if value is None:
                continue
            self.session.fill(field["selector"], str(value))
            filled.append(field["field"])
        return {"success": True, "filled": filled}

    def navigate_to(self, tool, args):
        self._ensure_open()
        self.session.navigate(tool["href"], NAVIGATION_TIMEOUT_MS)
        return {"success": True, "url": self.session.url}

    def handle_credentials(self, tool, args):
        self._ensure_open()
        base = self.profile_config or ProfileConfig()
        config = replace(
            base,
            email=args.get("email") or base.email,
            password=args.get("password") or base.password,
        )
        detector = AuthDetector(config)
        forms = detector.detect_auth_forms(self.session)
        if not forms.get("hasEmailPassword"):
            return {"success": False, "error": "No email/password form on the current page"}
        result = detector.handle_email_password(self.session, forms, AuthProfile.from_config(config))
        return {"success": result.success, "action": result.action, "error": result.error}

    def vision_based_auth(self, tool, args):
        self._ensure_open()
        flow = (tool.get("binding") or {}).get("visionData") or {}
        key = "sign_up_label" if args.get("action") == "signup" else "sign_in_label"
        label = flow.get(key)
        if not label:
            return {"success": False, "error": "Vision flow has no button label"}
        self.session.click(f"text={label}")
        return {"success": True, "clicked": label}
