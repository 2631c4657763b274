from typing import Callable, Dict, List, Optional

from langgraph.graph import END, StateGraph

from ..deploy.host_config import HostConfigUpdater
from ..deploy.packager import Packager
from ..dom.auth import AuthDetector
from ..dom.mapper import InterfaceMapper
from ..tools.naming import extract_site_name
from ..tools.synthesizer import ToolSynthesizer
from ..vision.coordinator import VisionAnalyzer
from ..vision.detectors import EdgeRegionDetector, LLMVisionDetector
from .config import OUT_DIR, ProfileConfig
from .errors import DeploymentError, GeneratorError, MappingError
from .history import complete_stage, enter_stage, fail_run, log_step
from .session import PlaywrightSession
from .types import PipelineRun, PipelineStage, PipelineState, RunOptions, RunResult

CANCELLED = "cancelled"

# Graph node name -> stage, in execution order.
STAGE_NODES: Dict[str, PipelineStage] = {
    "initialize": PipelineStage.INITIALIZING,
    "navigate": PipelineStage.NAVIGATING,
    "auth_detect": PipelineStage.AUTH_DETECTING,
    "vision_analyze": PipelineStage.VISION_ANALYZING,
    "interface_map": PipelineStage.INTERFACE_MAPPING,
    "tool_synthesize": PipelineStage.TOOL_SYNTHESIZING,
    "package": PipelineStage.PACKAGING,
    "deploy": PipelineStage.DEPLOYING,
}
NODE_ORDER: List[str] = list(STAGE_NODES)


def enabled_nodes(options: RunOptions) -> List[str]:
    nodes = list(NODE_ORDER)
    if options.skip_auth:
        nodes.remove("auth_detect")
    if not options.auto_package:
        # Deployment needs a package to point at.
        nodes.remove("package")
        nodes.remove("deploy")
    elif not options.auto_deploy:
        nodes.remove("deploy")
    return nodes


def next_node(current: str, options: RunOptions) -> str:
    nodes = enabled_nodes(options)
    idx = nodes.index(current)
    return nodes[idx + 1] if idx + 1 < len(nodes) else "complete"


def _is_failed(state: PipelineState) -> bool:
    return bool(state.get("failed")) or state["run"].stage == PipelineStage.FAILED


def format_result(run: PipelineRun) -> RunResult:
    elapsed = run.elapsed_ms()
    tools_count = run.tool_set.total_tools if run.tool_set else 0
    package_path = run.package_result.path if run.package_result else None
    deployed = bool(run.deploy_result and run.deploy_result.success)

    if run.stage == PipelineStage.COMPLETED:
        return RunResult(
            success=True,
            site_name=run.site_name,
            url=run.url,
            elapsed_ms=elapsed,
            steps=list(run.steps),
            tools_count=tools_count,
            package_path=package_path,
            deployed=deployed,
            summary=f"Successfully generated MCP automation for {run.site_name} in {elapsed}ms",
        )

    return RunResult(
        success=False,
        site_name=run.site_name,
        url=run.url,
        elapsed_ms=elapsed,
        steps=list(run.steps),
        tools_count=tools_count,
        package_path=package_path,
        deployed=deployed,
        error=run.error or "Unknown error",
        failed_at=run.failed_at.value if run.failed_at else "unknown",
        last_completed_stage=run.last_completed_stage.value if run.last_completed_stage else None,
    )


class Orchestrator:
    """Sequences the generation pipeline for one URL per run."""

    def __init__(
        self,
        session_factory: Callable[[], object] = PlaywrightSession,
        vision: Optional[VisionAnalyzer] = None,
        auth: Optional[AuthDetector] = None,
        mapper: Optional[InterfaceMapper] = None,
        synthesizer: Optional[ToolSynthesizer] = None,
        packager: Optional[Packager] = None,
        deployer: Optional[HostConfigUpdater] = None,
    ):
        self.session_factory = session_factory
        self.vision = vision or VisionAnalyzer(
            LLMVisionDetector(), EdgeRegionDetector(), artifact_dir=OUT_DIR)
        self.auth = auth or AuthDetector(ProfileConfig.from_env())
        self.mapper = mapper or InterfaceMapper()
        self.synthesizer = synthesizer or ToolSynthesizer()
        self.packager = packager or Packager()
        self.deployer = deployer or HostConfigUpdater()
        self.app = self.build_graph()

    # --- Graph ---

    def build_graph(self):
        graph = StateGraph(PipelineState)
        handlers = {
            "initialize": self._initialize,
            "navigate": self._navigate,
            "auth_detect": self._auth_detect,
            "vision_analyze": self._vision_analyze,
            "interface_map": self._interface_map,
            "tool_synthesize": self._tool_synthesize,
            "package": self._package,
            "deploy": self._deploy,
        }
        for name, handler in handlers.items():
            graph.add_node(name, self._stage(name, handler))
        graph.add_node("complete", self._complete)

        graph.set_entry_point("initialize")
        targets = NODE_ORDER[1:] + ["complete"]
        for name in NODE_ORDER:
            path_map = {t: t for t in targets}
            path_map[END] = END
            graph.add_conditional_edges(name, self._router(name), path_map)
        graph.add_edge("complete", END)

        return graph.compile()

    def _router(self, current: str):
        def route(state: PipelineState) -> str:
            if _is_failed(state):
                return END
            return next_node(current, state["run"].options)
        return route

    def _stage(self, name: str, handler):
        stage = STAGE_NODES[name]

        def node(state: PipelineState) -> PipelineState:
            run = state["run"]
            cancel = state.get("cancel_event")
            if cancel is not None and cancel.is_set():
                fail_run(run, stage, CANCELLED)
                state["failed"] = True
                return state
            try:
                handler(state)
                complete_stage(run, stage)
            except GeneratorError as e:
                fail_run(run, e.stage or stage, str(e))
                state["failed"] = True
            except Exception as e:
                fail_run(run, stage, str(e))
                state["failed"] = True
            return state

        return node

    # --- Stages ---

    def _initialize(self, state: PipelineState) -> None:
        enter_stage(state["run"], PipelineStage.INITIALIZING, "Initializing Browser Session...")
        state["session"].open()

    def _navigate(self, state: PipelineState) -> None:
        run = state["run"]
        enter_stage(run, PipelineStage.NAVIGATING, f"Navigating to {run.url}...")
        state["session"].navigate(run.url, run.options.navigation_timeout_ms)

    def _auth_detect(self, state: PipelineState) -> None:
        run = state["run"]
        enter_stage(run, PipelineStage.AUTH_DETECTING, "Analyzing Authentication Requirements...")
        result = self.auth.detect_and_handle(state["session"], run.url)
        run.auth_result = result
        if result.success:
            log_step(run, f"Authentication: {result.action}")
        else:
            # Non-fatal; the pipeline continues with unauthenticated content.
            log_step(run, f"Authentication not handled: {result.error}")

    def _vision_analyze(self, state: PipelineState) -> None:
        run = state["run"]
        session = state["session"]
        enter_stage(run, PipelineStage.VISION_ANALYZING, "Running Vision Analysis...")
        try:
            screenshot = session.screenshot()
        except Exception as e:
            print(f"[Orchestrator] Screenshot failed, continuing without image: {e}")
            screenshot = b""
        state["screenshot"] = screenshot
        run.vision_result = self.vision.analyze(screenshot, session)

    def _interface_map(self, state: PipelineState) -> None:
        run = state["run"]
        enter_stage(run, PipelineStage.INTERFACE_MAPPING, "Mapping Interface Elements...")
        interface_map = self.mapper.map_elements(state["session"])
        if interface_map.error:
            raise MappingError(f"Interface mapping failed: {interface_map.error}")
        run.interface_map = interface_map

    def _tool_synthesize(self, state: PipelineState) -> None:
        run = state["run"]
        enter_stage(run, PipelineStage.TOOL_SYNTHESIZING, "Generating MCP Tools...")
        run.tool_set = self.synthesizer.synthesize(
            run.interface_map, run.vision_result, state["session"].url or run.url)

    def _package(self, state: PipelineState) -> None:
        run = state["run"]
        enter_stage(run, PipelineStage.PACKAGING, "Creating Package...")
        run.package_result = self.packager.create_package(run.site_name, run.tool_set, run)

    def _deploy(self, state: PipelineState) -> None:
        run = state["run"]
        enter_stage(run, PipelineStage.DEPLOYING, "Deploying to host configuration...")
        result = self.deployer.deploy(run.site_name, run.package_result)
        run.deploy_result = result
        if not result.success:
            raise DeploymentError(f"Deployment failed: {result.error}")

    def _complete(self, state: PipelineState) -> PipelineState:
        run = state["run"]
        enter_stage(run, PipelineStage.COMPLETED, "MCP Generation Complete!")
        return state

    # --- Entry point ---

    def run(self, url: str, site_name: Optional[str] = None, options: Optional[RunOptions] = None,
            cancel_event=None) -> RunResult:
        options = options or RunOptions()
        run = PipelineRun(url=url, site_name=site_name or extract_site_name(url), options=options)
        session = None
        try:
            session = self.session_factory()
            state: PipelineState = {
                "run": run,
                "session": session,
                "cancel_event": cancel_event,
                "screenshot": None,
                "failed": False,
            }
            self.app.invoke(state, config={"run_name": "mcp_generator_pipeline", "recursion_limit": 25})
        except Exception as e:
            if run.stage != PipelineStage.FAILED:
                fail_run(run, run.stage, str(e))
        finally:
            if session is not None:
                try:
                    session.close()
                except Exception as e:
                    print(f"[Orchestrator] Session cleanup failed: {e}")

        result = format_result(run)
        print(f"[Orchestrator] Run finished success={result.success} tools={result.tools_count}")
        return result
