from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console

from .config import PROGRESS_MODES, VERBOSITY_LEVELS, SetupConfig, load_config
from .errors import EnvironmentalError, LockHeldError
from .executor import RetryPolicy
from .followup import offer_emulator, quick_start_lines
from .lib.env import EnvironmentMutator
from .lib.platforms import PlatformAdapter, detect_adapter
from .lock import install_root_lock
from .logging_utils import configure_logging
from .pipeline import PipelineRun, RunState, run_pipeline, validate_order
from .preflight import check_requirements, require
from .progress import ProgressReporter, RichReporter, SafeReporter, make_reporter
from .steps import (
    AndroidCmdlineToolsStep,
    AndroidEnvironmentStep,
    AndroidLicensesStep,
    AndroidSdkPackagesStep,
    AndroidToolchainDoctorStep,
    ConfigureFlutterStep,
    CreateAvdStep,
    FlutterDoctorStep,
    FlutterEnvironmentStep,
    InstallFlutterStep,
    InstallJdkStep,
    JavaEnvironmentStep,
    PackageManagerStep,
    SecondaryPackageManagerStep,
    Step,
    StepContext,
    SystemPackagesStep,
    VirtualizationStep,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STEP_FAILED = 1
EXIT_PREFLIGHT = 3
EXIT_LOCKED = 4
EXIT_CANCELLED = 130


def build_steps(config: SetupConfig, adapter: PlatformAdapter) -> List[Step]:
    policy = RetryPolicy.from_config(config)
    once = RetryPolicy.once()

    classes: List[type] = []
    if config.use_package_manager:
        classes.append(PackageManagerStep)
        if adapter.secondary_package_manager:
            classes.append(SecondaryPackageManagerStep)
        classes.append(SystemPackagesStep)
    classes += [
        InstallJdkStep,
        JavaEnvironmentStep,
        AndroidCmdlineToolsStep,
        AndroidLicensesStep,
        AndroidSdkPackagesStep,
        AndroidEnvironmentStep,
        InstallFlutterStep,
        FlutterEnvironmentStep,
        ConfigureFlutterStep,
        AndroidToolchainDoctorStep,
        CreateAvdStep,
        VirtualizationStep,
        FlutterDoctorStep,
    ]

    steps = [cls(retry=policy if cls.retryable else once) for cls in classes]
    validate_order(steps)
    return steps


def build_context(
    config: SetupConfig,
    adapter: PlatformAdapter,
    reporter: ProgressReporter,
    env: Optional[EnvironmentMutator] = None,
) -> StepContext:
    return StepContext(
        config=config,
        adapter=adapter,
        layout=adapter.layout(config),
        env=env or EnvironmentMutator(adapter.env_backend()),
        reporter=reporter if isinstance(reporter, SafeReporter) else SafeReporter(reporter),
    )


def _raise_keyboard_interrupt(signum: int, frame: Any) -> None:
    raise KeyboardInterrupt


def _print_abort(console: Console, run: PipelineRun, log_path: str) -> None:
    if run.cancelled:
        console.print(f"[yellow]Setup cancelled[/] during {run.failed_step or 'startup'}.")
    else:
        console.print(f"[red]Setup failed[/] at step [bold]{run.failed_step}[/]: {run.error}")
    console.print(f"Re-running the same command resumes where it stopped. Log: {log_path}")


def run(config: SetupConfig, *, adapter: Optional[PlatformAdapter] = None) -> int:
    """Run the whole setup and return a process exit code."""

    console = Console(stderr=True)
    reporter = make_reporter(config, console)
    actual_log_path = configure_logging(
        log_path=config.log_path,
        verbosity=config.verbosity,
        console=console if isinstance(reporter, RichReporter) else None,
    )

    try:
        adapter = adapter or detect_adapter()
    except EnvironmentalError as e:
        logger.error("%s", e)
        console.print(f"[red]{e}[/]")
        return EXIT_PREFLIGHT

    logger.info(
        "mobiledev-setup: os=%s arch=%s root=%s flutter=%s java=%s",
        adapter.os_name,
        adapter.arch,
        config.install_root,
        config.flutter_version,
        config.java_version,
    )

    steps = build_steps(config, adapter)
    ctx = build_context(config, adapter, reporter)

    try:
        # Nothing under the install root is created until preflight passes.
        require(check_requirements(config, adapter))
        with install_root_lock(ctx.layout.lock_file):
            result = run_pipeline(steps=steps, ctx=ctx)
    except LockHeldError as e:
        logger.error("%s", e)
        console.print(f"[red]{e}[/]")
        return EXIT_LOCKED
    except EnvironmentalError as e:
        console.print(f"[red]Preflight failed:[/] {e}")
        console.print(f"Log: {actual_log_path}")
        return EXIT_PREFLIGHT
    except KeyboardInterrupt:
        logger.warning("Cancelled before the first step")
        return EXIT_CANCELLED

    if result.state is not RunState.COMPLETED:
        _print_abort(console, result, actual_log_path)
        return EXIT_CANCELLED if result.cancelled else EXIT_STEP_FAILED

    for record in result.warnings:
        console.print(f"[yellow]warning[/] {record.title}: {record.outcome.reason}")
    if config.verbosity != "silent":
        for line in quick_start_lines(result):
            console.print(line)
    offer_emulator(result)
    return EXIT_OK


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "install_root": args.install_root,
        "flutter_version": args.flutter_version,
        "java_version": args.java_version,
        "use_package_manager": args.use_package_manager,
        "verbosity": args.verbosity,
        "progress": args.progress,
        "log_path": args.log,
        "prompt": False if args.no_prompt else None,
        "android": {"avd_name": args.avd_name, "api_level": args.android_api},
    }


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(
        prog="mobiledev-setup",
        description="Install a JDK, the Android SDK, Flutter and an emulator image.",
    )
    p.add_argument("--config", default=None, help="YAML file with setup settings")
    p.add_argument("--install-root", default=None, help="Where tools are installed (default ~/tools)")
    p.add_argument("--flutter-version", default=None, help="Flutter release (default 3.24.3)")
    p.add_argument("--java-version", default=None, help="JDK feature release (default 17)")
    p.add_argument(
        "--use-package-manager",
        dest="use_package_manager",
        action="store_true",
        help="Install prerequisites with the system package manager (default)",
    )
    p.add_argument("--no-package-manager", dest="use_package_manager", action="store_false")
    p.set_defaults(use_package_manager=None)
    p.add_argument("--verbosity", choices=VERBOSITY_LEVELS, default=None)
    p.add_argument("--progress", choices=PROGRESS_MODES, default=None)
    p.add_argument("--log", default=None, help="Path to the setup log")
    p.add_argument("--avd-name", default=None)
    p.add_argument("--android-api", type=int, default=None)
    p.add_argument("--no-prompt", action="store_true", help="Do not offer to start the emulator")

    args = p.parse_args(argv)

    try:
        config = load_config(args.config, _overrides(args))
    except (OSError, ValueError) as e:
        p.error(str(e))

    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)

    return run(config)


if __name__ == "__main__":
    sys.exit(main())
