from typing import Optional

from .types import PipelineStage


class GeneratorError(Exception):
    """Base class for fatal pipeline failures."""

    stage: Optional[PipelineStage] = None

    def __init__(self, message: str, stage: Optional[PipelineStage] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class NavigationError(GeneratorError):
    stage = PipelineStage.NAVIGATING


class MappingError(GeneratorError):
    stage = PipelineStage.INTERFACE_MAPPING


class SynthesisError(GeneratorError):
    stage = PipelineStage.TOOL_SYNTHESIZING


class PackagingError(GeneratorError):
    stage = PipelineStage.PACKAGING


class DeploymentError(GeneratorError):
    stage = PipelineStage.DEPLOYING


# Non-fatal conditions. They are recorded on the degraded result
# (VisionResult.error / AuthResult.error) and never raised past the
# component that detected them.
VISION_ANALYSIS_DEGRADED = "Vision analysis failed, using accessibility tree only"
AUTHENTICATION_UNSUPPORTED = "Unsupported authentication method"
