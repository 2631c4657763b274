from typing import Any, Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .config import SETTLE_MS, USER_AGENT, VIEWPORT
from .errors import NavigationError


class BrowserSession(Protocol):
    """Capabilities the pipeline needs from a browser."""

    @property
    def url(self) -> str: ...

    def open(self) -> None: ...

    def navigate(self, url: str, timeout_ms: int) -> None: ...

    def screenshot(self) -> bytes: ...

    def evaluate(self, script: str, arg: Any = None) -> Any: ...

    def fill(self, selector: str, value: str) -> None: ...

    def click(self, selector: str) -> None: ...

    def close(self) -> None: ...


class PlaywrightSession:
    """Chromium session driven through playwright's sync API."""

    def __init__(self, headless: bool = False, settle_ms: int = SETTLE_MS):
        self.headless = headless
        self.settle_ms = settle_ms
        self._playwright = None
        self._browser = None
        self._page = None

    @property
    def page(self):
        if self._page is None:
            raise RuntimeError("Browser session is not open.")
        return self._page

    @property
    def url(self) -> str:
        return self._page.url if self._page is not None else ""

    def open(self) -> None:
        print("[Session] Launching Chromium...")
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(
            headless=self.headless,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--no-first-run",
                "--disable-background-timer-throttling",
            ],
        )
        self._page = self._browser.new_page(viewport=VIEWPORT, user_agent=USER_AGENT)

    def navigate(self, url: str, timeout_ms: int) -> None:
        try:
            self.page.goto(url, wait_until="networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Navigation timed out after {timeout_ms}ms: {e}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Navigation failed: {e}") from e
        # allow the UI to settle
        self.page.wait_for_timeout(self.settle_ms)

    def screenshot(self) -> bytes:
        return self.page.screenshot(full_page=False, type="png")

    def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return self.page.evaluate(script)
        return self.page.evaluate(script, arg)

    def fill(self, selector: str, value: str) -> None:
        locator = self.page.locator(selector).first
        locator.wait_for(state="visible", timeout=5000)
        locator.fill(value, timeout=5000)

    def click(self, selector: str) -> None:
        locator = self.page.locator(selector).first
        locator.wait_for(state="visible", timeout=5000)
        locator.click(timeout=5000)

    def close(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._page = None
        self._browser = None
        self._playwright = None
        try:
            if browser is not None:
                browser.close()
        finally:
            if playwright is not None:
                playwright.stop()

