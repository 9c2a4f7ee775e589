from __future__ import annotations

import logging
import queue
import sys
import threading
from typing import Callable, List, Optional

from .lib.android import emulator_argv
from .pipeline import PipelineRun

logger = logging.getLogger(__name__)

PROMPT_TIMEOUT = 30.0


def prompt_yes_no(
    prompt: str,
    default: bool = False,
    *,
    timeout: Optional[float] = PROMPT_TIMEOUT,
    read_line: Callable[[], str] = sys.stdin.readline,
) -> bool:
    """Ask a yes/no question; the default wins on timeout, EOF or Ctrl-C."""

    default_str = "Y/n" if default else "y/N"
    answers: "queue.Queue[str]" = queue.Queue()

    def _reader() -> None:
        try:
            answers.put(read_line())
        except (OSError, ValueError):
            answers.put("")

    threading.Thread(target=_reader, name="prompt-reader", daemon=True).start()

    while True:
        sys.stdout.write(f"{prompt} [{default_str}] ")
        sys.stdout.flush()
        try:
            line = answers.get(timeout=timeout)
        except queue.Empty:
            sys.stdout.write("\n")
            logger.info("No answer within %.0fs; using default (%s)", timeout, "yes" if default else "no")
            return default
        except KeyboardInterrupt:
            sys.stdout.write("\n")
            return default
        if not line:
            return default
        response = line.strip().lower()
        if not response:
            return default
        if response in ("y", "yes"):
            return True
        if response in ("n", "no"):
            return False
        threading.Thread(target=_reader, name="prompt-reader", daemon=True).start()


def quick_start_lines(run: PipelineRun) -> List[str]:
    ctx = run.ctx
    return [
        f"Flutter:      {ctx.layout.flutter_dir}",
        f"Android SDK:  {ctx.layout.android_sdk}",
        f"Java:         {ctx.layout.java_home}",
        "",
        "Open a new terminal (or re-login) so the environment changes apply, then:",
        f"  emulator -avd {ctx.config.avd_name}",
        "  flutter doctor",
        "  flutter create my_app",
        "  cd my_app && flutter run",
    ]


def offer_emulator(run: PipelineRun, *, ask: Callable[[str], bool] = prompt_yes_no) -> bool:
    """Offer to start the emulator after a completed run. Never raises."""

    ctx = run.ctx
    if not ctx.config.prompt or not sys.stdin.isatty():
        return False
    if not ctx.layout.emulator.exists():
        return False
    try:
        if not ask(f"Start the {ctx.config.avd_name} emulator now?"):
            return False
        ctx.adapter.launch_detached(
            emulator_argv(ctx.adapter, ctx.layout, ctx.config.avd_name),
            env=ctx.tool_env(),
        )
    except OSError as e:
        logger.warning("Could not start the emulator: %s", e)
        return False
    logger.info("Emulator %s starting in the background", ctx.config.avd_name)
    return True
