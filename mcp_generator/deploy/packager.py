import json
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.config import PACKAGES_DIR
from ..core.errors import PackagingError
from ..core.types import PackageResult, PipelineRun, ToolSet
from ..tools.naming import method_name

SERVER_TEMPLATE = '''"""Generated MCP server for {site_name}.

Usage:
    python server.py               serve MCP over stdio
    python server.py list          list generated tools
    python server.py call <tool_name> '<json arguments>'
"""

import sys
from pathlib import Path

from dotenv import load_dotenv

from mcp_generator.server import main

START_URL = {url!r}

if __name__ == "__main__":
    load_dotenv()
    sys.exit(main(sys.argv[1:], Path(__file__).parent, START_URL))
'''


def package_dir_name(site_name: str) -> str:
    return f"{method_name(site_name) or 'site'}-automation"


class Packager:
    """Writes the generated tool set into a runnable package directory."""

    def __init__(self, root: Path = PACKAGES_DIR):
        self.root = Path(root)

    def create_package(self, site_name: str, tool_set: ToolSet,
                       run: Optional[PipelineRun] = None) -> PackageResult:
        package_dir = self.root / package_dir_name(site_name)
        try:
            package_dir.mkdir(parents=True, exist_ok=True)

            tools_path = package_dir / "tools.json"
            tools_path.write_text(
                json.dumps([t.to_dict() for t in tool_set.tools], indent=2), encoding="utf-8")

            (package_dir / "metadata.json").write_text(
                json.dumps(self._metadata(site_name, tool_set, run), indent=2), encoding="utf-8")

            url = tool_set.metadata.get("url") or (run.url if run else "")
            server_path = package_dir / "server.py"
            server_path.write_text(SERVER_TEMPLATE.format(site_name=site_name, url=url), encoding="utf-8")

            (package_dir / "README.md").write_text(self._readme(site_name, tool_set), encoding="utf-8")
        except OSError as e:
            raise PackagingError(f"Failed to write package for {site_name}: {e}") from e

        print(f"[Packager] Wrote {tool_set.total_tools} tools to {package_dir}")
        return PackageResult(
            path=str(package_dir),
            server_entry_path=str(server_path),
            tools_path=str(tools_path),
        )

    def list_packages(self):
        if not self.root.exists():
            return []
        return sorted(p.name for p in self.root.iterdir() if (p / "tools.json").exists())

    def load_package(self, name: str) -> PackageResult:
        """Locate an already generated package by directory name."""
        package_dir = self.root / name
        server_path = package_dir / "server.py"
        tools_path = package_dir / "tools.json"
        if not (server_path.exists() and tools_path.exists()):
            raise PackagingError(f"No generated package at {package_dir}")
        return PackageResult(
            path=str(package_dir),
            server_entry_path=str(server_path),
            tools_path=str(tools_path),
        )

    @staticmethod
    def _metadata(site_name: str, tool_set: ToolSet, run: Optional[PipelineRun]) -> Dict[str, Any]:
        meta: Dict[str, Any] = {"siteName": site_name, **tool_set.metadata, "totalTools": tool_set.total_tools}
        if run is not None:
            meta["steps"] = [
                {"timestamp": s.timestamp, "message": s.message, "elapsed": s.elapsed_ms}
                for s in run.steps
            ]
            if run.interface_map is not None:
                meta["automationPotential"] = run.interface_map.automation_potential.score
        return meta

    @staticmethod
    def _readme(site_name: str, tool_set: ToolSet) -> str:
        lines = [f"# {site_name} automation", "", "Generated tools:", ""]
        for tool in tool_set.tools:
            lines.append(f"- `{tool.name}` ({tool.implementation}): {tool.description}")
        lines.append("")
        return "\n".join(lines)
