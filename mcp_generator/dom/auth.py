import json
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ..core.config import PROFILE_PATH, ProfileConfig
from ..core.errors import AUTHENTICATION_UNSUPPORTED
from ..core.types import AuthResult

LOGGED_IN_SELECTORS = [
    'a[href*="logout"]',
    'button[onclick*="logout"]',
    'a[href*="profile"]',
    'a[href*="account"]',
    'a[href*="dashboard"]',
    '[data-testid="user-menu"]',
    ".user-avatar",
    ".profile-menu",
]

LOGIN_FORM_SELECTORS = [
    'form[action*="login"]',
    'input[type="password"]',
]

# Button labels that count as a login form being present.
LOGIN_BUTTON_LABELS = ["sign in", "log in"]

LOGGED_IN_CONFIDENCE = 0.8
LOGGED_OUT_CONFIDENCE = 0.9

LOGIN_STATUS_JS = """
({ loggedInSelectors, loginFormSelectors, buttonLabels }) => {
    const hasLoggedInIndicators = loggedInSelectors.some((s) => !!document.querySelector(s));
    const formHits = document.querySelectorAll(loginFormSelectors.join(',')).length;
    const buttonHits = Array.from(document.querySelectorAll('button')).filter((b) =>
        buttonLabels.includes((b.textContent || '').trim().toLowerCase())).length;
    return {
        hasLoggedInIndicators,
        hasLoginForms: formHits + buttonHits > 0,
        url: window.location.href,
    };
}
"""

AUTH_FORMS_JS = """
() => {
    const visible = (el) => {
        const r = el.getBoundingClientRect();
        return r.width > 0 && r.height > 0;
    };
    const selectorFor = (el) => {
        if (el.id) return `#${el.id}`;
        const name = el.getAttribute('name');
        if (name) return `${el.tagName.toLowerCase()}[name="${name}"]`;
        const type = el.getAttribute('type');
        if (type) return `${el.tagName.toLowerCase()}[type="${type}"]`;
        return el.tagName.toLowerCase();
    };
    const controls = Array.from(document.querySelectorAll('button, a, [role="button"], div[id*="google"]'));
    const sso = controls.find((el) => {
        const label = ((el.textContent || '') + ' ' + (el.getAttribute('aria-label') || '')
            + ' ' + (el.id || '') + ' ' + (el.getAttribute('href') || '')).toLowerCase();
        return visible(el) && label.includes('google');
    });
    const password = Array.from(document.querySelectorAll('input[type="password"]')).find(visible);
    const email = Array.from(document.querySelectorAll(
        'input[type="email"], input[name*="email"], input[id*="email"], input[autocomplete="username"], input[name*="user"]'
    )).find(visible);
    const form = password ? password.closest('form') : null;
    const scope = form || document;
    const submit = Array.from(scope.querySelectorAll('button[type="submit"], input[type="submit"], button'))
        .find((el) => visible(el) && el !== sso);
    let ssoSelector = null;
    if (sso) {
        ssoSelector = sso.id ? `#${sso.id}` : null;
    }
    return {
        hasGoogleSSO: !!sso,
        hasEmailPassword: !!password,
        ssoSelector,
        ssoText: sso ? (sso.textContent || '').trim() : '',
        emailSelector: email ? selectorFor(email) : null,
        passwordSelector: password ? selectorFor(password) : null,
        submitSelector: submit ? selectorFor(submit) : null,
        submitText: submit ? (submit.textContent || submit.value || '').trim() : '',
    };
}
"""


# --- Profile ---


@dataclass
class AuthProfile:
    personal: Dict[str, str] = field(default_factory=dict)
    credentials: Dict[str, Any] = field(default_factory=dict)
    preferences: Dict[str, bool] = field(default_factory=dict)
    sessions: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: ProfileConfig) -> "AuthProfile":
        return cls(
            personal={
                "firstName": config.first_name,
                "lastName": config.last_name,
                "email": config.email,
                "phone": config.phone,
                "address": config.address,
            },
            credentials={
                "primary": {"email": config.email, "password": config.password},
                "variations": [config.email],
            },
            preferences={
                "preferGoogleSSO": config.prefer_google_sso,
                "autoCreateAccounts": True,
                "rememberPasswords": True,
            },
        )

    @property
    def email(self) -> str:
        return (self.credentials.get("primary") or {}).get("email", "")

    @property
    def password(self) -> str:
        return (self.credentials.get("primary") or {}).get("password", "")

    @property
    def prefers_sso(self) -> bool:
        return bool(self.preferences.get("preferGoogleSSO", False))


class ProfileStore:
    """Loads the persisted profile once and keeps it for the process."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.profile: Optional[AuthProfile] = None
        self._lock = threading.Lock()

    def load(self, config: ProfileConfig) -> AuthProfile:
        with self._lock:
            if self.profile is not None:
                return self.profile
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                if not isinstance(data, dict):
                    raise ValueError(f"expected a JSON object, got {type(data).__name__}")
                self.profile = AuthProfile(
                    personal=data.get("personal") or {},
                    credentials=data.get("credentials") or {},
                    preferences=data.get("preferences") or {},
                    sessions=data.get("sessions") or {},
                )
                print(f"[Auth] Loaded profile from {self.path}")
            except (OSError, ValueError) as e:
                print(f"[Auth] No usable profile at {self.path} ({e}); creating one.")
                self.profile = AuthProfile.from_config(config)
                self.save()
            return self.profile

    def save(self) -> None:
        if self.profile is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(asdict(self.profile), indent=2), encoding="utf-8")
        except OSError as e:
            print(f"[Auth] Failed to save profile: {e}")


_STORES: Dict[str, ProfileStore] = {}
_STORES_LOCK = threading.Lock()


def get_profile_store(path: Path = PROFILE_PATH) -> ProfileStore:
    key = str(Path(path).resolve())
    with _STORES_LOCK:
        store = _STORES.get(key)
        if store is None:
            store = ProfileStore(Path(path))
            _STORES[key] = store
        return store


# --- Detector ---


class AuthDetector:
    """Determines login state and drives the supported login flow."""

    def __init__(self, config: Optional[ProfileConfig] = None, profile_path: Path = PROFILE_PATH):
        self.config = config or ProfileConfig()
        self.store = get_profile_store(profile_path)

    @property
    def profile(self) -> AuthProfile:
        return self.store.load(self.config)

    def detect_and_handle(self, session, url: str) -> AuthResult:
        try:
            profile = self.profile
            domain = urlparse(url).hostname or url
            print(f"[Auth] Analyzing authentication for {domain}...")

            status = self.check_login_status(session)
            if status.logged_in:
                print("[Auth] Already authenticated")
                status.action = "already_logged_in"
                return status

            forms = self.detect_auth_forms(session)
            has_sso = bool(forms.get("hasGoogleSSO"))
            has_email_password = bool(forms.get("hasEmailPassword"))

            if not (has_sso or has_email_password or status.indicators.get("hasLoginForms")):
                print("[Auth] No authentication required")
                return AuthResult(
                    success=True, action="no_auth_required",
                    confidence=status.confidence, indicators=status.indicators)

            if has_sso and profile.prefers_sso:
                return self.handle_google_sso(session, forms)
            if has_email_password:
                return self.handle_email_password(session, forms, profile)

            print("[Auth] Unsupported authentication method")
            return AuthResult(
                success=False, confidence=status.confidence,
                indicators=status.indicators, error=AUTHENTICATION_UNSUPPORTED)
        except Exception as e:
            print(f"[Auth] Authentication failed: {e}")
            return AuthResult(success=False, error=str(e))

    def check_login_status(self, session) -> AuthResult:
        try:
            indicators = session.evaluate(LOGIN_STATUS_JS, {
                "loggedInSelectors": LOGGED_IN_SELECTORS,
                "loginFormSelectors": LOGIN_FORM_SELECTORS,
                "buttonLabels": LOGIN_BUTTON_LABELS,
            }) or {}
        except Exception as e:
            return AuthResult(success=False, logged_in=False, error=str(e))

        logged_in = bool(indicators.get("hasLoggedInIndicators")) and not bool(
            indicators.get("hasLoginForms"))
        return AuthResult(
            success=True,
            logged_in=logged_in,
            confidence=LOGGED_IN_CONFIDENCE if logged_in else LOGGED_OUT_CONFIDENCE,
            indicators=dict(indicators),
        )

    def detect_auth_forms(self, session) -> Dict[str, Any]:
        forms = session.evaluate(AUTH_FORMS_JS) or {}
        forms["hasAuth"] = bool(forms.get("hasGoogleSSO") or forms.get("hasEmailPassword"))
        return forms

    def handle_google_sso(self, session, forms: Dict[str, Any]) -> AuthResult:
        selector = forms.get("ssoSelector") or _text_selector(forms.get("ssoText"))
        if not selector:
            return AuthResult(success=False, method="google_sso",
                              error="Google sign-in control could not be targeted")
        print("[Auth] Starting Google single sign-on...")
        session.click(selector)
        return AuthResult(success=True, action="google_sso_initiated", method="google_sso",
                          indicators={"selector": selector})

    def handle_email_password(self, session, forms: Dict[str, Any], profile: AuthProfile) -> AuthResult:
        password_selector = forms.get("passwordSelector")
        if not password_selector:
            return AuthResult(success=False, method="email_password",
                              error="Password field could not be targeted")

        print("[Auth] Filling email/password form...")
        filled: List[str] = []
        if forms.get("emailSelector"):
            session.fill(forms["emailSelector"], profile.email)
            filled.append("email")
        session.fill(password_selector, profile.password)
        filled.append("password")

        submit = forms.get("submitSelector") or _text_selector(forms.get("submitText"))
        if submit:
            session.click(submit)
        return AuthResult(
            success=True,
            action="email_password_submitted",
            method="email_password",
            indicators={"filled": filled, "submitted": bool(submit)},
        )


def _text_selector(text: Optional[str]) -> Optional[str]:
    text = (text or "").strip()
    if not text:
        return None
    return f"text={text}"
