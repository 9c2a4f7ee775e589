"""
Tests for progress reporters and the summary table.
"""

from __future__ import annotations

import io
import logging

from rich.console import Console

from mobiledev_setup.executor import StepOutcome
from mobiledev_setup.pipeline import PipelineRun, RunState
from mobiledev_setup.progress import (
    NullReporter,
    PlainReporter,
    ProgressReporter,
    RichReporter,
    SafeReporter,
    make_reporter,
    summary_table,
)
from mobiledev_setup.steps.base import Step


class Named(Step):
    def __init__(self, step_id: str, title: str) -> None:
        super().__init__()
        self.step_id = step_id
        self.title = title


def finished_run(ctx) -> PipelineRun:
    run = PipelineRun(steps=[], ctx=ctx)
    run.record(Named("20_install_jdk", "Install JDK"), StepOutcome.skipped())
    run.record(Named("50_install_flutter", "Install Flutter"), StepOutcome.succeeded(attempts=2, elapsed=3.2))
    run.record(
        Named("90_flutter_doctor", "Flutter doctor"),
        StepOutcome.failed("Android toolchain not ready", attempts=1).as_warning(),
    )
    run.state = RunState.COMPLETED
    return run


def test_summary_table(ctx):
    table = summary_table(finished_run(ctx))
    assert table.row_count == 3
    out = io.StringIO()
    Console(file=out, width=120, color_system=None).print(table)
    text = out.getvalue()
    assert "Install Flutter" in text
    assert "skipped" in text
    assert "warning" in text


def test_plain_reporter_logs_progress(caplog):
    r = PlainReporter()
    with caplog.at_level(logging.INFO, logger="mobiledev_setup.progress"):
        r.run_started(2)
        r.step_started(1, 2, "50_install_flutter", "Install Flutter")
        for done in range(0, 101, 5):
            r.step_progress("50_install_flutter", done, 100)
        r.step_finished("50_install_flutter", StepOutcome.succeeded(attempts=1, elapsed=1.0))

    messages = [rec.getMessage() for rec in caplog.records]
    assert "[1/2] Install Flutter" in messages
    pct = [m for m in messages if m.endswith("%")]
    assert len(pct) == 11
    assert any("succeeded" in m for m in messages)


def test_plain_reporter_failure_levels(caplog):
    r = PlainReporter()
    with caplog.at_level(logging.INFO, logger="mobiledev_setup.progress"):
        r.step_finished("a", StepOutcome.failed("broken"))
        r.step_finished("b", StepOutcome.failed("meh").as_warning())
    assert [rec.levelno for rec in caplog.records] == [logging.ERROR, logging.WARNING]


def test_safe_reporter_swallows_reporter_errors():
    class Broken(ProgressReporter):
        def step_tick(self, step_id: str) -> None:
            raise ValueError("closed file")

    SafeReporter(Broken()).step_tick("x")


def test_rich_reporter_full_cycle(ctx):
    out = io.StringIO()
    r = RichReporter(Console(file=out, width=120, color_system=None))
    r.run_started(1)
    r.step_started(1, 1, "50_install_flutter", "Install Flutter")
    r.step_progress("50_install_flutter", 2 * 2**20, 4 * 2**20)
    r.step_retrying("50_install_flutter", 1, 3, RuntimeError("reset"), 0.0)
    r.step_tick("50_install_flutter")
    r.step_finished("50_install_flutter", StepOutcome.succeeded(attempts=2, elapsed=1.0))
    r.run_finished(finished_run(ctx))

    text = out.getvalue()
    assert "done" in text
    assert "Setup summary" in text


def test_make_reporter_modes(config):
    assert isinstance(make_reporter(config.with_overrides({"progress": "plain"})), PlainReporter)
    assert isinstance(make_reporter(config.with_overrides({"progress": "interactive"})), RichReporter)
    assert isinstance(make_reporter(config.with_overrides({"verbosity": "silent"})), NullReporter)
