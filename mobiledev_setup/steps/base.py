from __future__ import annotations

import logging
import lzma
import shutil
import tarfile
import threading
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..config import SetupConfig
from ..errors import CancelledError, StructuralError, TransientError
from ..executor import RetryPolicy
from ..lib.archive import extract, install_tree, single_root
from ..lib.env import EnvironmentMutator, Scope, join_unique, split_path_like
from ..lib.markers import environment_configured
from ..lib.net import download
from ..lib.platforms import PlatformAdapter, ToolLayout
from ..progress import ProgressReporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepContext:
    """Everything a step may read or mutate during one run."""

    config: SetupConfig
    adapter: PlatformAdapter
    layout: ToolLayout
    env: EnvironmentMutator
    reporter: ProgressReporter
    # Set when the run is interrupted; long-running work checks it and stops.
    cancel: threading.Event = field(default_factory=threading.Event)

    def tool_env(self) -> Dict[str, str]:
        """Environment for child processes: our tools first on PATH."""

        layout = self.layout
        delimiter = self.adapter.path_delimiter
        path = join_unique(
            [*(str(p) for p in layout.path_segments()), *split_path_like(self.env.environ.get("PATH"), delimiter)],
            delimiter,
            case_insensitive=self.env.backend.case_insensitive,
        )
        return {
            "JAVA_HOME": str(layout.java_home),
            "ANDROID_HOME": str(layout.android_sdk),
            "ANDROID_SDK_ROOT": str(layout.android_sdk),
            "PATH": path,
        }

    def progress_callback(self, step_id: str) -> Callable[[int, Optional[int]], None]:
        def _cb(done: int, total: Optional[int]) -> None:
            self.reporter.step_progress(step_id, done, total)

        return _cb


class Step:
    """One unit of setup work.

    `run` performs the work; `is_satisfied` is a side-effect free check of the
    post-condition. A step whose post-condition cannot be observed (the doctor
    checks) sets `idempotent = False` and always runs.
    """

    step_id: str = ""
    title: str = ""
    fatal: bool = True
    requires: Tuple[str, ...] = ()
    idempotent: bool = True
    retryable: bool = True

    def __init__(self, retry: Optional[RetryPolicy] = None) -> None:
        self.retry = retry or (RetryPolicy() if self.retryable else RetryPolicy.once())

    def is_satisfied(self, ctx: StepContext) -> bool:
        return False

    def run(self, ctx: StepContext) -> None:
        raise NotImplementedError

    def verify(self, ctx: StepContext) -> None:
        if self.idempotent and not self.is_satisfied(ctx):
            raise StructuralError(f"{self.title}: finished without producing its expected result")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.step_id}>"


def fetch_and_install(
    ctx: StepContext,
    step_id: str,
    *,
    url: str,
    archive_name: str,
    target: Path,
) -> Path:
    """Download an archive, extract it into staging and move its root to target."""

    layout = ctx.layout
    archive = download(
        url,
        layout.downloads_dir / archive_name,
        on_progress=ctx.progress_callback(step_id),
        cancel=ctx.cancel,
    )

    staging = layout.staging_dir / step_id
    try:
        root = single_root(extract(archive, staging))
        if ctx.cancel.is_set():
            raise CancelledError(f"Cancelled before installing {target}")
        install_tree(root, target)
    except (zipfile.BadZipFile, tarfile.TarError, lzma.LZMAError, EOFError) as e:
        archive.unlink(missing_ok=True)
        raise TransientError(f"Corrupt archive {archive.name}: {e}") from e
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    archive.unlink(missing_ok=True)
    logger.info("Installed %s", target)
    return target


class EnvironmentStep(Step):
    """Persist variables and PATH segments for one tool."""

    retryable = False

    def variables(self, ctx: StepContext) -> Dict[str, str]:
        return {}

    def path_segments(self, ctx: StepContext) -> List[Path]:
        return []

    def is_satisfied(self, ctx: StepContext) -> bool:
        return environment_configured(ctx.env, self.variables(ctx), self.path_segments(ctx))

    def run(self, ctx: StepContext) -> None:
        for name, value in self.variables(ctx).items():
            ctx.env.set_variable(name, value, Scope.USER)
            logger.info("Set %s=%s", name, value)
        for segment in self.path_segments(ctx):
            if ctx.env.append_to_path_like("PATH", str(segment), Scope.USER):
                logger.info("Added %s to PATH", segment)
