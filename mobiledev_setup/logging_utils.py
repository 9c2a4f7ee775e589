from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import DEFAULT_LOG_PATH

CONSOLE_LEVELS = {
    "silent": logging.ERROR,
    "normal": logging.INFO,
    "verbose": logging.DEBUG,
}


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    verbosity: str = "normal",
    also_console: bool = True,
    console: Optional[Console] = None,
) -> str:
    """Configure logging.

    Everything goes to the log file at DEBUG so a failed run can be diagnosed
    after the fact. The console only shows what the verbosity asks for.

    Notes:
    - If the requested log file cannot be opened we fall back to a file in
      the working directory and keep going.
    - When a rich Console is given (interactive progress), console output is
      routed through a RichHandler on that console so log lines do not break
      the live display.

    Returns the actual file path being used.
    """

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_mobiledev_configured", False):
        return getattr(logger, "_mobiledev_log_path", log_path)

    chosen_path = log_path
    handlers: list[logging.Handler] = []

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    file_handler: logging.Handler
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        # Fall back to a writable location.
        chosen_path = str(Path.cwd() / "mobiledev-setup.log")
        file_handler = logging.FileHandler(chosen_path, encoding="utf-8")
    file_handler.setFormatter(fmt)
    file_handler.setLevel(logging.DEBUG)
    handlers.append(file_handler)

    if also_console:
        console_handler: logging.Handler
        if console is not None:
            console_handler = RichHandler(console=console, show_path=False, rich_tracebacks=False)
        else:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(fmt)
        console_handler.setLevel(CONSOLE_LEVELS.get(verbosity, logging.INFO))
        handlers.append(console_handler)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_mobiledev_configured", True)
    setattr(logger, "_mobiledev_log_path", chosen_path)
    setattr(logger, "_mobiledev_handlers", handlers)

    # urllib3 logs every connection at DEBUG.
    for noisy in ("urllib3", "requests"):
        logging.getLogger(noisy).setLevel(logging.INFO)

    logging.getLogger(__name__).info(
        "Logging initialized (requested=%s, actual=%s)", log_path, chosen_path
    )
    return chosen_path


def reset_logging() -> None:
    """Remove handlers installed by configure_logging()."""

    logger = logging.getLogger()
    for h in getattr(logger, "_mobiledev_handlers", []):
        logger.removeHandler(h)
        h.close()
    for attr in ("_mobiledev_configured", "_mobiledev_log_path", "_mobiledev_handlers"):
        if hasattr(logger, attr):
            delattr(logger, attr)
