"""
Entry point for the MCP generator: opens a site, analyzes its interface,
and writes a package of generated automation tools.

Commands:
    generate <url> [--site NAME] [--skip-auth] [--no-package] [--no-deploy]
    analyze  <url>   vision + interface mapping only, prints the summary
    auth     <url>   authentication detection only
    deploy   <package> register an already generated package with the host
    list             generated packages
    status           component availability
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from mcp_generator.core.config import (
    HOST_CONFIG_PATH,
    NAVIGATION_TIMEOUT_MS,
    OUT_DIR,
    PACKAGES_DIR,
    ProfileConfig,
)
from mcp_generator.core.errors import PackagingError
from mcp_generator.core.orchestrator import Orchestrator
from mcp_generator.core.session import PlaywrightSession
from mcp_generator.core.types import RunOptions, RunResult
from mcp_generator.deploy.host_config import HostConfigUpdater
from mcp_generator.deploy.packager import Packager
from mcp_generator.dom.auth import AuthDetector
from mcp_generator.dom.mapper import InterfaceMapper
from mcp_generator.vision.coordinator import VisionAnalyzer
from mcp_generator.vision.detectors import EdgeRegionDetector, LLMVisionDetector

load_dotenv()


def print_summary(result: RunResult) -> None:
    print("\n=== MCP generator result ===")
    print("Site:", result.site_name)
    print("URL:", result.url)
    print("Success:", result.success)
    print(f"Elapsed: {result.elapsed_ms}ms")
    print("Tools:", result.tools_count)
    if result.package_path:
        print("Package:", result.package_path)
    print("Deployed:", result.deployed)
    if not result.success:
        print("Failed at:", result.failed_at)
        print("Error:", result.error)
    print("Steps:")
    for step in result.steps:
        print(f"  - [{step.timestamp}] +{step.elapsed_ms}ms {step.message}")


def cmd_generate(args) -> int:
    options = RunOptions(
        skip_auth=args.skip_auth,
        auto_package=not args.no_package,
        auto_deploy=not args.no_deploy,
        navigation_timeout_ms=args.timeout,
    )
    orchestrator = Orchestrator(
        session_factory=lambda: PlaywrightSession(headless=args.headless),
        packager=Packager(args.packages_dir),
    )
    result = orchestrator.run(args.url, args.site, options)
    print_summary(result)
    return 0 if result.success else 1


def cmd_analyze(args) -> int:
    session = PlaywrightSession(headless=args.headless)
    analyzer = VisionAnalyzer(LLMVisionDetector(), EdgeRegionDetector(), artifact_dir=OUT_DIR)
    try:
        session.open()
        session.navigate(args.url, args.timeout)
        vision = analyzer.analyze(session.screenshot(), session)
        interface_map = InterfaceMapper().map_elements(session)
    finally:
        session.close()

    print(json.dumps({
        "vision": {
            "method": vision.method,
            "confidence": vision.confidence,
            "elements": len(vision.elements),
            "multiSource": vision.multi_source,
            "authFlowDetected": vision.auth_flow.detected,
        },
        "interface": {
            "totalElements": interface_map.total_elements,
            "categories": interface_map.summary(),
            "automationPotential": interface_map.automation_potential.score,
            "error": interface_map.error,
        },
    }, indent=2))
    return 0


def cmd_auth(args) -> int:
    session = PlaywrightSession(headless=args.headless)
    detector = AuthDetector(ProfileConfig.from_env())
    try:
        session.open()
        session.navigate(args.url, args.timeout)
        result = detector.detect_and_handle(session, args.url)
    finally:
        session.close()
    print(json.dumps({
        "success": result.success,
        "action": result.action,
        "loggedIn": result.logged_in,
        "confidence": result.confidence,
        "method": result.method,
        "error": result.error,
    }, indent=2))
    return 0 if result.success else 1


def cmd_deploy(args) -> int:
    try:
        package = Packager(args.packages_dir).load_package(args.package)
    except PackagingError as e:
        print(e)
        return 1
    site_name = args.package
    if site_name.endswith("-automation"):
        site_name = site_name[: -len("-automation")]
    result = HostConfigUpdater(args.config).deploy(site_name, package)
    print(json.dumps({
        "success": result.success,
        "serverName": result.server_name,
        "configPath": result.config_path,
        "requiresRestart": result.requires_restart,
        "error": result.error,
    }, indent=2))
    return 0 if result.success else 1


def cmd_list(args) -> int:
    packages = Packager(args.packages_dir).list_packages()
    if not packages:
        print(f"No generated packages in {args.packages_dir}")
    for name in packages:
        print(name)
    return 0


def cmd_status(args) -> int:
    print("=== MCP generator status ===")
    print("Vision model key:", "configured" if os.getenv("OPENAI_API_KEY") else "missing (secondary detector only)")
    print("Packages dir:", args.packages_dir)
    print("Generated packages:", len(Packager(args.packages_dir).list_packages()))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate MCP automation tools for a website.")
    parser.add_argument("--headless", action="store_true")
    parser.add_argument("--timeout", type=int, default=NAVIGATION_TIMEOUT_MS, help="navigation timeout in ms")
    parser.add_argument("--packages-dir", type=Path, default=PACKAGES_DIR)
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate")
    gen.add_argument("url")
    gen.add_argument("--site", default=None, help="package label (defaults to the host)")
    gen.add_argument("--skip-auth", action="store_true")
    gen.add_argument("--no-package", action="store_true")
    gen.add_argument("--no-deploy", action="store_true")
    gen.set_defaults(func=cmd_generate)

    analyze = sub.add_parser("analyze")
    analyze.add_argument("url")
    analyze.set_defaults(func=cmd_analyze)

    auth = sub.add_parser("auth")
    auth.add_argument("url")
    auth.set_defaults(func=cmd_auth)

    deploy = sub.add_parser("deploy")
    deploy.add_argument("package", help="package directory name, e.g. example_com-automation")
    deploy.add_argument("--config", type=Path, default=HOST_CONFIG_PATH, help="host config file")
    deploy.set_defaults(func=cmd_deploy)

    sub.add_parser("list").set_defaults(func=cmd_list)
    sub.add_parser("status").set_defaults(func=cmd_status)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
