import time

from .types import PipelineRun, PipelineStage, StepRecord


def log_step(run: PipelineRun, message: str) -> StepRecord:
    """Append a timestamped step to the run log and echo it."""
    timestamp = time.strftime("%H:%M:%S")
    step = StepRecord(timestamp=timestamp, elapsed_ms=run.elapsed_ms(), message=message)
    run.steps.append(step)
    print(f"[{timestamp}] [Orchestrator] {message}")
    return step


def enter_stage(run: PipelineRun, stage: PipelineStage, message: str) -> None:
    """Move the run into `stage` and record the transition."""
    run.stage = stage
    log_step(run, message)


def complete_stage(run: PipelineRun, stage: PipelineStage) -> None:
    run.last_completed_stage = stage


def fail_run(run: PipelineRun, stage: PipelineStage, error: str) -> None:
    """Transition directly to FAILED, keeping the failing stage for the report."""
    run.failed_at = stage
    run.error = error
    run.stage = PipelineStage.FAILED
    log_step(run, f"Pipeline failed at {stage.value}: {error}")
