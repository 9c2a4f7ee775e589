from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from .executor import RetryingExecutor, StepOutcome, StepStatus
from .progress import SafeReporter
from .steps.base import Step, StepContext

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class StepRecord:
    step_id: str
    title: str
    outcome: StepOutcome


@dataclass
class PipelineRun:
    """In-memory record of one run. Never persisted; a rerun re-derives state from the predicates."""

    steps: Sequence[Step]
    ctx: StepContext
    state: RunState = RunState.IDLE
    current_index: int = 0
    results: List[StepRecord] = field(default_factory=list)
    started_at: Optional[float] = None
    elapsed: float = 0.0
    failed_step: Optional[str] = None
    error: Optional[str] = None
    cancelled: bool = False

    def record(self, step: Step, outcome: StepOutcome) -> None:
        self.results.append(StepRecord(step_id=step.step_id, title=step.title, outcome=outcome))
        self.current_index += 1

    def outcome(self, step_id: str) -> Optional[StepOutcome]:
        for r in self.results:
            if r.step_id == step_id:
                return r.outcome
        return None

    def _with_status(self, status: StepStatus) -> List[str]:
        return [r.step_id for r in self.results if r.outcome.status is status]

    @property
    def ran_steps(self) -> List[str]:
        return self._with_status(StepStatus.SUCCEEDED)

    @property
    def skipped_steps(self) -> List[str]:
        return self._with_status(StepStatus.SKIPPED)

    @property
    def failed_steps(self) -> List[str]:
        return self._with_status(StepStatus.FAILED)

    @property
    def warnings(self) -> List[StepRecord]:
        return [r for r in self.results if r.outcome.warning]


def validate_order(steps: Sequence[Step]) -> None:
    """Raise ValueError on duplicate ids or a requirement that is not an earlier step."""

    seen: set[str] = set()
    for step in steps:
        if not step.step_id:
            raise ValueError(f"Step without an id: {step!r}")
        if step.step_id in seen:
            raise ValueError(f"Duplicate step id: {step.step_id}")
        for req in step.requires:
            if req not in seen:
                raise ValueError(f"Step {step.step_id} requires {req}, which does not run before it")
        seen.add(step.step_id)


def _satisfied(step: Step, ctx: StepContext) -> bool:
    if not step.idempotent:
        return False
    try:
        return bool(step.is_satisfied(ctx))
    except Exception:
        # Predicates never fail the run.
        logger.debug("[%s] precondition check raised; treating as not satisfied", step.step_id, exc_info=True)
        return False


def execute_step(step: Step, ctx: StepContext, executor: RetryingExecutor) -> StepOutcome:
    if _satisfied(step, ctx):
        logger.info("Skipping step %s (already satisfied)", step.step_id)
        return StepOutcome.skipped()

    def _action() -> None:
        step.run(ctx)
        step.verify(ctx)

    logger.info("Running step %s", step.step_id)
    return executor.run(step.step_id, _action, step.retry, cancel=ctx.cancel)


def cleanup_scratch(ctx: StepContext) -> None:
    """Remove partial downloads and extraction staging."""

    for d in (ctx.layout.staging_dir, ctx.layout.downloads_dir):
        if d.exists():
            logger.info("Removing %s", d)
            shutil.rmtree(d, ignore_errors=True)


def run_pipeline(
    *,
    steps: Sequence[Step],
    ctx: StepContext,
    executor: Optional[RetryingExecutor] = None,
) -> PipelineRun:
    """Run steps in order. Skips satisfied steps; stops at the first fatal failure."""

    validate_order(steps)
    reporter = ctx.reporter if isinstance(ctx.reporter, SafeReporter) else SafeReporter(ctx.reporter)
    executor = executor or RetryingExecutor(reporter)

    run = PipelineRun(steps=steps, ctx=ctx)
    run.state = RunState.RUNNING
    run.started_at = time.time()
    started = time.monotonic()
    total = len(steps)
    reporter.run_started(total)

    try:
        for index, step in enumerate(steps, start=1):
            reporter.step_started(index, total, step.step_id, step.title)

            failed = run.failed_steps
            blocked = [r for r in step.requires if r in failed]
            if blocked:
                outcome = StepOutcome.failed(f"blocked by {', '.join(blocked)}")
                logger.warning("[%s] %s", step.step_id, outcome.reason)
            else:
                outcome = execute_step(step, ctx, executor)

            if outcome.status is StepStatus.FAILED and not step.fatal:
                outcome = outcome.as_warning()
                logger.warning("Step %s failed (continuing): %s", step.step_id, outcome.reason)

            run.record(step, outcome)
            reporter.step_finished(step.step_id, outcome)

            if outcome.status is StepStatus.FAILED and step.fatal:
                run.state = RunState.ABORTED
                run.failed_step = step.step_id
                run.error = outcome.reason
                logger.error("Step %s failed; aborting", step.step_id)
                break
        else:
            run.state = RunState.COMPLETED
    except KeyboardInterrupt:
        run.state = RunState.ABORTED
        run.cancelled = True
        if run.current_index < total:
            run.failed_step = steps[run.current_index].step_id
        run.error = "cancelled"
        ctx.cancel.set()
        logger.warning("Cancelled during %s", run.failed_step or "setup")
        cleanup_scratch(ctx)

    run.elapsed = time.monotonic() - started
    reporter.run_finished(run)
    logger.info(
        "Run %s in %.1fs (ran=%d skipped=%d failed=%d)",
        run.state.value,
        run.elapsed,
        len(run.ran_steps),
        len(run.skipped_steps),
        len(run.failed_steps),
    )
    return run
