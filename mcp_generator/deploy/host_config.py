import json
import sys
from pathlib import Path
from typing import Any, Dict

from ..core.config import HOST_CONFIG_PATH
from ..core.types import DeployResult, PackageResult


class HostConfigUpdater:
    """Registers a generated package in the host application's server config."""

    def __init__(self, config_path: Path = HOST_CONFIG_PATH, command: str = sys.executable):
        self.config_path = Path(config_path)
        self.command = command

    def read_config(self) -> Dict[str, Any]:
        """Parsed host config; a missing file reads as an empty server map."""
        try:
            text = self.config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {"mcpServers": {}}
        config = json.loads(text)
        if not isinstance(config, dict):
            raise ValueError(f"expected a JSON object, got {type(config).__name__}")
        return config

    def _failed(self, server_name: str, error: str) -> DeployResult:
        print(f"[Deployer] Config update failed: {error}")
        return DeployResult(success=False, server_name=server_name,
                            config_path=str(self.config_path), error=error)

    def deploy(self, site_name: str, package: PackageResult) -> DeployResult:
        server_name = f"{site_name}-automation"
        print("[Deployer] Updating host config...")
        try:
            config = self.read_config()
        except (OSError, ValueError) as e:
            # Never overwrite a config we could not read back.
            return self._failed(server_name, f"Unreadable host config {self.config_path}: {e}")

        servers = config.setdefault("mcpServers", {})
        if not isinstance(servers, dict):
            return self._failed(server_name, "Host config 'mcpServers' is not an object")
        servers[server_name] = {
            "command": self.command,
            "args": [package.server_entry_path],
            "env": {},
        }
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(json.dumps(config, indent=2), encoding="utf-8")
        except OSError as e:
            return self._failed(server_name, str(e))

        print(f"[Deployer] Added {server_name} to {self.config_path}")
        return DeployResult(
            success=True,
            server_name=server_name,
            config_path=str(self.config_path),
            requires_restart=True,
        )
