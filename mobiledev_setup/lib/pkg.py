from __future__ import annotations

import logging
import shutil
from typing import Mapping, Optional, Sequence

from ..errors import StructuralError
from .command import run_cmd
from .platforms import PackageManager, PlatformAdapter

logger = logging.getLogger(__name__)


def which(executable: str, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    path = (env or {}).get("PATH")
    return shutil.which(executable, path=path)


def manager_present(pm: PackageManager, env: Optional[Mapping[str, str]] = None) -> bool:
    return which(pm.executable, env) is not None


def _argv(adapter: PlatformAdapter, pm: PackageManager, argv: Sequence[str]) -> list[str]:
    return adapter.privileged(argv) if pm.needs_privileges else list(argv)


def bootstrap_manager(adapter: PlatformAdapter, pm: PackageManager, env: Mapping[str, str]) -> None:
    if pm.bootstrap_argv is None:
        raise StructuralError(f"Package manager {pm.name} is not installed and cannot be bootstrapped")
    logger.info("Installing package manager %s", pm.name)
    run_cmd(list(pm.bootstrap_argv), env={**env, **(pm.bootstrap_env or {})})


def update_index(adapter: PlatformAdapter, pm: PackageManager, env: Mapping[str, str]) -> None:
    if pm.update_argv is None:
        return
    run_cmd(_argv(adapter, pm, pm.update_argv), env=env)


def install(
    adapter: PlatformAdapter,
    pm: PackageManager,
    packages: Sequence[str],
    env: Mapping[str, str],
) -> None:
    if not packages:
        return
    run_cmd(_argv(adapter, pm, [*pm.install_argv, *packages]), env=env)


def commands_present(commands: Sequence[str], env: Optional[Mapping[str, str]] = None) -> bool:
    missing = [c for c in commands if which(c, env) is None]
    if missing:
        logger.debug("Commands not on PATH: %s", ", ".join(missing))
    return not missing
