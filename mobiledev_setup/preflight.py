from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List

from .config import SetupConfig
from .errors import EnvironmentalError
from .lib.net import is_online
from .lib.platforms import PlatformAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreflightReport:
    free_bytes: int
    online: bool
    problems: List[str]

    @property
    def ok(self) -> bool:
        return not self.problems


def _existing_parent(path: Path) -> Path:
    p = path
    while not p.exists() and p != p.parent:
        p = p.parent
    return p


def check_requirements(
    config: SetupConfig,
    adapter: PlatformAdapter,
    *,
    online_check: Callable[[], bool] = is_online,
) -> PreflightReport:
    """Disk space, connectivity and platform support, checked before any step runs."""

    problems: List[str] = []

    try:
        adapter.check_supported()
    except EnvironmentalError as e:
        problems.append(str(e))

    free = shutil.disk_usage(_existing_parent(config.install_root)).free
    need = config.min_free_bytes
    if free < need:
        problems.append(
            f"Not enough disk space under {config.install_root}: "
            f"{free / 1024**3:.1f} GB free, {need / 1024**3:.1f} GB required"
        )

    online = online_check()
    if not online:
        problems.append("No internet connection (downloads are required)")

    report = PreflightReport(free_bytes=free, online=online, problems=problems)
    logger.info("Preflight: free=%.1fGB online=%s problems=%d", free / 1024**3, online, len(problems))
    return report


def require(report: PreflightReport) -> None:
    if not report.ok:
        for p in report.problems:
            logger.error("Preflight: %s", p)
        raise EnvironmentalError("; ".join(report.problems))
