from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, Dict, Optional

from rich import box
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .executor import StepOutcome, StepStatus

if TYPE_CHECKING:
    from .config import SetupConfig
    from .pipeline import PipelineRun

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Observer of a pipeline run. The base class ignores every event."""

    def run_started(self, total_steps: int) -> None:
        pass

    def step_started(self, index: int, total: int, step_id: str, title: str) -> None:
        pass

    def step_tick(self, step_id: str) -> None:
        pass

    def step_progress(self, step_id: str, done: int, total: Optional[int]) -> None:
        pass

    def step_retrying(
        self, step_id: str, attempt: int, max_attempts: int, error: Optional[BaseException], delay: float
    ) -> None:
        pass

    def step_finished(self, step_id: str, outcome: StepOutcome) -> None:
        pass

    def run_finished(self, run: "PipelineRun") -> None:
        pass


class NullReporter(ProgressReporter):
    pass


class SafeReporter(ProgressReporter):
    """Forward events, logging and discarding anything the wrapped reporter raises."""

    def __init__(self, inner: ProgressReporter) -> None:
        self.inner = inner

    def _call(self, name: str, *args: Any) -> None:
        try:
            getattr(self.inner, name)(*args)
        except Exception:
            logger.debug("Reporter %s.%s failed", type(self.inner).__name__, name, exc_info=True)

    def run_started(self, total_steps: int) -> None:
        self._call("run_started", total_steps)

    def step_started(self, index: int, total: int, step_id: str, title: str) -> None:
        self._call("step_started", index, total, step_id, title)

    def step_tick(self, step_id: str) -> None:
        self._call("step_tick", step_id)

    def step_progress(self, step_id: str, done: int, total: Optional[int]) -> None:
        self._call("step_progress", step_id, done, total)

    def step_retrying(
        self, step_id: str, attempt: int, max_attempts: int, error: Optional[BaseException], delay: float
    ) -> None:
        self._call("step_retrying", step_id, attempt, max_attempts, error, delay)

    def step_finished(self, step_id: str, outcome: StepOutcome) -> None:
        self._call("step_finished", step_id, outcome)

    def run_finished(self, run: "PipelineRun") -> None:
        self._call("run_finished", run)


class PlainReporter(ProgressReporter):
    """Line-oriented progress through logging, for CI and redirected output."""

    def __init__(self) -> None:
        self._titles: Dict[str, str] = {}
        self._last_pct: Dict[str, int] = {}

    def run_started(self, total_steps: int) -> None:
        logger.info("Starting setup (%d steps)", total_steps)

    def step_started(self, index: int, total: int, step_id: str, title: str) -> None:
        self._titles[step_id] = title
        logger.info("[%d/%d] %s", index, total, title)

    def step_progress(self, step_id: str, done: int, total: Optional[int]) -> None:
        if not total:
            return
        pct = int(done * 100 / total)
        if pct >= self._last_pct.get(step_id, -10) + 10:
            self._last_pct[step_id] = pct
            logger.info("  %s: %d%%", self._titles.get(step_id, step_id), pct)

    def step_retrying(
        self, step_id: str, attempt: int, max_attempts: int, error: Optional[BaseException], delay: float
    ) -> None:
        logger.info("  retrying %s (%d/%d)", step_id, attempt + 1, max_attempts)

    def step_finished(self, step_id: str, outcome: StepOutcome) -> None:
        title = self._titles.get(step_id, step_id)
        if outcome.status is StepStatus.FAILED:
            logger.log(logging.WARNING if outcome.warning else logging.ERROR, "  %s: failed (%s)", title, outcome.reason)
        else:
            logger.info("  %s: %s", title, outcome.status.value)

    def run_finished(self, run: "PipelineRun") -> None:
        logger.info("Setup %s in %.1fs", run.state.value, run.elapsed)


_STATUS_STYLE = {
    StepStatus.SKIPPED: ("skipped", "dim"),
    StepStatus.SUCCEEDED: ("done", "green"),
    StepStatus.FAILED: ("failed", "red"),
}


def summary_table(run: "PipelineRun") -> Table:
    table = Table(title="Setup summary", box=box.SIMPLE_HEAVY)
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Time", justify="right")
    for i, record in enumerate(run.results, start=1):
        label, style = _STATUS_STYLE[record.outcome.status]
        if record.outcome.warning:
            label, style = "warning", "yellow"
        table.add_row(
            str(i),
            record.title,
            f"[{style}]{label}[/]",
            str(record.outcome.attempts or "-"),
            f"{record.outcome.elapsed:.1f}s",
        )
    return table


class RichReporter(ProgressReporter):
    """Live spinner, overall M/N bar and per-step elapsed time."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console(stderr=True)
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(bar_width=None),
            TextColumn("{task.fields[detail]}"),
            TimeElapsedColumn(),
            console=self.console,
            refresh_per_second=10,
            transient=False,
        )
        self._overall: Optional[TaskID] = None
        self._tasks: Dict[str, TaskID] = {}
        self._titles: Dict[str, str] = {}
        self._total = 0
        self._done = 0

    def run_started(self, total_steps: int) -> None:
        self._total = total_steps
        self._progress.start()
        self._overall = self._progress.add_task("Overall", total=total_steps, detail=f"0/{total_steps}")

    def step_started(self, index: int, total: int, step_id: str, title: str) -> None:
        self._titles[step_id] = title
        self._tasks[step_id] = self._progress.add_task(f"[{index}/{total}] {title}", total=None, detail="")

    def step_tick(self, step_id: str) -> None:
        self._progress.refresh()

    def step_progress(self, step_id: str, done: int, total: Optional[int]) -> None:
        task = self._tasks.get(step_id)
        if task is not None:
            detail = f"{done / 2**20:.1f}/{total / 2**20:.1f} MiB" if total else f"{done / 2**20:.1f} MiB"
            self._progress.update(task, completed=done, total=total, detail=detail)

    def step_retrying(
        self, step_id: str, attempt: int, max_attempts: int, error: Optional[BaseException], delay: float
    ) -> None:
        task = self._tasks.get(step_id)
        if task is not None:
            title = self._titles.get(step_id, step_id)
            self._progress.update(
                task, description=f"{title} [yellow](retry {attempt + 1}/{max_attempts})[/]", completed=0, total=None
            )

    def step_finished(self, step_id: str, outcome: StepOutcome) -> None:
        task = self._tasks.pop(step_id, None)
        if task is not None:
            self._progress.remove_task(task)
        label, style = _STATUS_STYLE[outcome.status]
        if outcome.warning:
            label, style = "warning", "yellow"
        title = self._titles.get(step_id, step_id)
        detail = f" ({outcome.reason})" if outcome.status is StepStatus.FAILED else ""
        self.console.print(f"[{style}]{label:>8}[/] {title}{detail}")
        if self._overall is not None:
            self._done += 1
            self._progress.update(self._overall, advance=1, detail=f"{self._done}/{self._total}")

    def run_finished(self, run: "PipelineRun") -> None:
        self._progress.stop()
        self.console.print(summary_table(run))


def make_reporter(config: "SetupConfig", console: Optional[Console] = None) -> ProgressReporter:
    """Pick a reporter for the configured progress mode and verbosity."""

    if config.verbosity == "silent":
        return NullReporter()
    mode = config.progress
    if mode == "auto":
        mode = "interactive" if sys.stderr.isatty() else "plain"
    if mode == "interactive":
        return RichReporter(console)
    return PlainReporter()
