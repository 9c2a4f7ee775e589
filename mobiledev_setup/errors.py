from __future__ import annotations

from typing import Sequence


class SetupError(Exception):
    """Base class for errors raised by the setup pipeline."""


class TransientError(SetupError):
    """Network hiccups and timeouts; worth another attempt."""


class CommandError(SetupError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        tail = stderr.strip()[-2000:]
        msg = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if tail:
            msg = f"{msg}\n{tail}"
        super().__init__(msg)


class EnvironmentalError(SetupError):
    """A machine prerequisite is missing (disk space, connectivity, OS)."""


class UnsupportedPlatformError(EnvironmentalError):
    pass


class StructuralError(SetupError):
    """A tool reported success but its expected artifact is absent."""


class LockHeldError(SetupError):
    pass


class CancelledError(SetupError):
    """The run was interrupted while this work was in progress."""
