from __future__ import annotations

import contextlib
import logging
import os
import shlex
import subprocess
import threading
from dataclasses import dataclass
from typing import Iterator, Mapping, Optional, Sequence

from ..errors import CancelledError, CommandError, TransientError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1800

# Children started by run_cmd/run_cmd_answering that are still running.
_children: set[subprocess.Popen] = set()
_killed: set[subprocess.Popen] = set()
_children_lock = threading.Lock()


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _merged_env(env: Mapping[str, str] | None) -> dict[str, str]:
    return dict(os.environ, **(env or {}))


@contextlib.contextmanager
def _tracked(p: subprocess.Popen, argv: Sequence[str]) -> Iterator[subprocess.Popen]:
    with _children_lock:
        _children.add(p)
    try:
        yield p
    finally:
        with _children_lock:
            _children.discard(p)
            killed = p in _killed
            _killed.discard(p)
    if killed:
        raise CancelledError(f"Command cancelled: {_fmt_argv(argv)}")


def kill_children() -> int:
    """Kill every command still running under run_cmd or run_cmd_answering.

    The interrupted call raises CancelledError in its own thread. Returns how
    many processes were signalled.
    """

    with _children_lock:
        running = [p for p in _children if p.poll() is None]
        _killed.update(running)
    for p in running:
        logger.info("Killing pid %d", p.pid)
        with contextlib.suppress(OSError):
            p.kill()
    return len(running)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr; both go to the log at DEBUG.
    - A missing executable is reported like a failed command (exit 127).
    - Timeouts are transient and raise TransientError.
    - A command stopped by kill_children raises CancelledError.
    """

    argv_list = [str(a) for a in argv]
    logger.info("CMD %s", _fmt_argv(argv_list))

    try:
        p = subprocess.Popen(
            argv_list,
            stdin=subprocess.PIPE if input_text is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            cwd=cwd,
            env=_merged_env(env),
        )
    except FileNotFoundError as e:
        if check:
            raise CommandError(argv_list, 127, str(e)) from e
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(e))

    with _tracked(p, argv_list):
        try:
            stdout, stderr = p.communicate(input_text, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            p.kill()
            p.communicate()
            raise TransientError(f"Command timed out after {timeout}s: {_fmt_argv(argv_list)}") from e

    if stdout:
        logger.debug("STDOUT %s", stdout.strip())
    if stderr:
        logger.debug("STDERR %s", stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(argv_list, p.returncode, stderr or stdout)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=stdout, stderr=stderr)


def run_cmd_answering(
    argv: Sequence[str],
    *,
    answer: str = "y",
    check: bool = True,
    env: Mapping[str, str] | None = None,
    timeout: Optional[float] = 600,
) -> CmdResult:
    """Run an interactive command, answering every prompt with `answer`.

    Answers are streamed until the process exits, so the number of prompts
    does not need to be known up front. stderr is folded into stdout.
    """

    argv_list = [str(a) for a in argv]
    logger.info("CMD %s (answering %r)", _fmt_argv(argv_list), answer)

    try:
        p = subprocess.Popen(
            argv_list,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            env=_merged_env(env),
        )
    except FileNotFoundError as e:
        if check:
            raise CommandError(argv_list, 127, str(e)) from e
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(e))

    def _feed() -> None:
        assert p.stdin is not None
        try:
            while p.poll() is None:
                p.stdin.write(answer + "\n")
                p.stdin.flush()
        except (BrokenPipeError, OSError, ValueError):
            # The process closed its stdin or exited.
            pass

    timed_out = threading.Event()

    def _kill() -> None:
        timed_out.set()
        p.kill()

    feeder = threading.Thread(target=_feed, name="answer-feeder", daemon=True)
    watchdog = threading.Timer(timeout, _kill) if timeout else None
    with _tracked(p, argv_list):
        feeder.start()
        if watchdog is not None:
            watchdog.start()
        try:
            assert p.stdout is not None
            out = p.stdout.read()
            returncode = p.wait()
        finally:
            if watchdog is not None:
                watchdog.cancel()

    if out:
        logger.debug("STDOUT %s", out.strip())

    if timed_out.is_set():
        raise TransientError(f"Command timed out after {timeout}s: {_fmt_argv(argv_list)}")
    if check and returncode != 0:
        raise CommandError(argv_list, returncode, out)

    return CmdResult(argv=argv_list, returncode=returncode, stdout=out, stderr="")
