import os
from dataclasses import dataclass
from pathlib import Path

# Output paths
OUT_DIR = Path(os.getenv("MCP_GENERATOR_OUT_DIR", "artifacts/mcp_generator/"))
PACKAGES_DIR = Path(os.getenv("MCP_GENERATOR_PACKAGES_DIR", "generated_packages"))
PROFILE_PATH = Path(os.getenv("MCP_GENERATOR_PROFILE_PATH", "credentials/profile.json"))
HOST_CONFIG_PATH = Path(
    os.getenv(
        "CLAUDE_CONFIG_PATH",
        str(Path.home() / "Library/Application Support/Claude/claude_desktop_config.json"),
    )
)

# Browser session
VIEWPORT = {"width": 1280, "height": 720}
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
NAVIGATION_TIMEOUT_MS = 30000
SETTLE_MS = 2000

# Vision
VISION_MODEL = os.getenv("MCP_GENERATOR_VISION_MODEL", "gpt-4o-mini")
ACCESSIBILITY_LIMIT = 50
ANALYSIS_CACHE_SIZE = 32

# Tool synthesis caps
ACTION_TOOL_LIMIT = 10
NAVIGATION_TOOL_LIMIT = 5
ELEMENT_NAME_MAX_LENGTH = 20


@dataclass
class ProfileConfig:
    """Identity and credential values used to build a fresh auth profile."""

    first_name: str = "User"
    last_name: str = "Name"
    email: str = "user@example.com"
    phone: str = "555-555-5555"
    address: str = "123 Example St, City, State, ZIP"
    password: str = "secure_password"
    prefer_google_sso: bool = True

    @classmethod
    def from_env(cls) -> "ProfileConfig":
        defaults = cls()
        prefer = os.getenv("USER_PREFER_GOOGLE_SSO")
        return cls(
            first_name=os.getenv("USER_FIRST_NAME") or defaults.first_name,
            last_name=os.getenv("USER_LAST_NAME") or defaults.last_name,
            email=os.getenv("USER_EMAIL") or defaults.email,
            phone=os.getenv("USER_PHONE") or defaults.phone,
            address=os.getenv("USER_ADDRESS") or defaults.address,
            password=os.getenv("USER_PASSWORD") or defaults.password,
            prefer_google_sso=(
                defaults.prefer_google_sso
                if prefer is None
                else prefer.strip().lower() in ("1", "true", "yes")
            ),
        )
