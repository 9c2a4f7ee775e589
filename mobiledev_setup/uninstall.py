from __future__ import annotations

import argparse
import logging
import shutil
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console

from .config import VERBOSITY_LEVELS, SetupConfig, load_config
from .errors import EnvironmentalError, LockHeldError
from .followup import prompt_yes_no
from .lib.android import kill_emulators
from .lib.env import PROFILE_TAG, EnvironmentMutator, Scope, ShellProfileBackend
from .lib.platforms import PlatformAdapter, ToolLayout, detect_adapter
from .lock import install_root_lock
from .logging_utils import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNSUPPORTED = 3
EXIT_LOCKED = 4


@dataclass
class UninstallReport:
    removed: List[Path] = field(default_factory=list)
    backups: List[Path] = field(default_factory=list)
    variables: List[str] = field(default_factory=list)
    path_segments: List[str] = field(default_factory=list)
    emulators_stopped: int = 0


def backup_profile(path: Path, now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    backup = path.with_name(f"{path.name}.backup.{stamp}")
    shutil.copy2(path, backup)
    logger.info("Backed up %s -> %s", path, backup)
    return backup


def _remove(path: Path, report: UninstallReport) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()
    else:
        return
    logger.info("Removed %s", path)
    report.removed.append(path)


def removal_targets(adapter: PlatformAdapter, layout: ToolLayout, *, purge_pub_cache: bool) -> List[Path]:
    targets = [
        layout.flutter_dir,
        layout.android_sdk,
        layout.java_dir,
        layout.staging_dir,
        layout.downloads_dir,
        adapter.avd_home,
        adapter.flutter_settings_path(),
    ]
    if purge_pub_cache:
        targets.append(adapter.pub_cache_dir)
    return targets


def clean_environment(env: EnvironmentMutator, layout: ToolLayout, report: UninstallReport) -> None:
    """Drop our variables and PATH segments; values set by someone else are left alone."""

    backend = env.backend
    if isinstance(backend, ShellProfileBackend):
        for profile in backend.user_profiles:
            if profile.exists() and PROFILE_TAG in profile.read_text(encoding="utf-8"):
                report.backups.append(backup_profile(profile))

    ours = {
        "JAVA_HOME": str(layout.java_home),
        "ANDROID_HOME": str(layout.android_sdk),
        "ANDROID_SDK_ROOT": str(layout.android_sdk),
    }
    for name, value in ours.items():
        if env.is_variable_set(name, value, Scope.USER):
            env.remove_variable(name, Scope.USER)
            report.variables.append(name)

    for segment in layout.path_segments():
        if env.remove_path_segment("PATH", str(segment), Scope.USER):
            report.path_segments.append(str(segment))


def uninstall(
    config: SetupConfig,
    adapter: PlatformAdapter,
    *,
    env: Optional[EnvironmentMutator] = None,
    purge_pub_cache: bool = False,
) -> UninstallReport:
    layout = adapter.layout(config)
    env = env or EnvironmentMutator(adapter.env_backend())
    report = UninstallReport()

    with install_root_lock(layout.lock_file):
        if layout.adb.exists():
            report.emulators_stopped = kill_emulators(adapter, layout, {})
        for target in removal_targets(adapter, layout, purge_pub_cache=purge_pub_cache):
            _remove(target, report)
        clean_environment(env, layout, report)

    layout.lock_file.unlink(missing_ok=True)
    root = layout.install_root
    if root.is_dir() and not any(root.iterdir()):
        root.rmdir()
        report.removed.append(root)
        logger.info("Removed empty %s", root)
    return report


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "install_root": args.install_root,
        "java_version": args.java_version,
        "verbosity": args.verbosity,
        "log_path": args.log,
    }


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(
        prog="mobiledev-uninstall",
        description="Remove what mobiledev-setup installed.",
    )
    p.add_argument("--config", default=None, help="YAML file used for setup")
    p.add_argument("--install-root", default=None)
    p.add_argument("--java-version", default=None)
    p.add_argument("--purge-pub-cache", action="store_true", help="Also delete the Dart pub cache")
    p.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    p.add_argument("--verbosity", choices=VERBOSITY_LEVELS, default=None)
    p.add_argument("--log", default=None)

    args = p.parse_args(argv)
    try:
        config = load_config(args.config, _overrides(args))
    except (OSError, ValueError) as e:
        p.error(str(e))

    console = Console(stderr=True)
    log_path = configure_logging(log_path=config.log_path, verbosity=config.verbosity)

    try:
        adapter = detect_adapter()
    except EnvironmentalError as e:
        console.print(f"[red]{e}[/]")
        return EXIT_UNSUPPORTED

    layout = adapter.layout(config)
    console.print("This removes:")
    for target in removal_targets(adapter, layout, purge_pub_cache=args.purge_pub_cache):
        console.print(f"  {target}")
    console.print("and the environment entries mobiledev-setup added.")
    if not args.yes and not prompt_yes_no("Continue?", default=False, timeout=None):
        console.print("Nothing removed.")
        return EXIT_OK

    try:
        report = uninstall(config, adapter, purge_pub_cache=args.purge_pub_cache)
    except LockHeldError as e:
        console.print(f"[red]{e}[/]")
        return EXIT_LOCKED
    except OSError as e:
        logger.exception("Uninstall failed")
        console.print(f"[red]Uninstall failed:[/] {e}. Log: {log_path}")
        return EXIT_FAILED

    console.print(f"Removed {len(report.removed)} path(s); environment entries cleaned: "
                  f"{len(report.variables) + len(report.path_segments)}.")
    for backup in report.backups:
        console.print(f"Profile backup: {backup}")
    console.print("Open a new terminal for the environment changes to apply.")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
