from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from tenacity import (
    Retrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .errors import CancelledError
from .lib.command import kill_children

if TYPE_CHECKING:
    from .config import SetupConfig
    from .progress import ProgressReporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    delay: float = 2.0
    max_delay: float = 30.0
    jitter: float = 1.0

    @classmethod
    def from_config(cls, config: "SetupConfig") -> "RetryPolicy":
        return cls(
            max_attempts=config.retry_max_attempts,
            delay=config.retry_delay,
            max_delay=config.retry_max_delay,
        )

    @classmethod
    def once(cls) -> "RetryPolicy":
        return cls(max_attempts=1, delay=0.0, max_delay=0.0, jitter=0.0)


class StepStatus(str, Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    status: StepStatus
    reason: str = ""
    attempts: int = 0
    elapsed: float = 0.0
    warning: bool = False
    error: Optional[BaseException] = None

    @classmethod
    def skipped(cls, reason: str = "already satisfied") -> "StepOutcome":
        return cls(status=StepStatus.SKIPPED, reason=reason)

    @classmethod
    def succeeded(cls, *, attempts: int, elapsed: float) -> "StepOutcome":
        return cls(status=StepStatus.SUCCEEDED, attempts=attempts, elapsed=elapsed)

    @classmethod
    def failed(
        cls,
        reason: str,
        *,
        attempts: int = 0,
        elapsed: float = 0.0,
        error: Optional[BaseException] = None,
    ) -> "StepOutcome":
        return cls(status=StepStatus.FAILED, reason=reason, attempts=attempts, elapsed=elapsed, error=error)

    @property
    def ok(self) -> bool:
        return self.status is not StepStatus.FAILED

    def as_warning(self) -> "StepOutcome":
        return StepOutcome(
            status=self.status,
            reason=self.reason,
            attempts=self.attempts,
            elapsed=self.elapsed,
            warning=True,
            error=self.error,
        )


class RetryingExecutor:
    """Run a step action with bounded retries.

    Each attempt runs on a one-thread pool so the calling thread stays free to
    tick the reporter. Exceptions raised by the action become a failed outcome
    once attempts are exhausted. KeyboardInterrupt is never retried: the cancel
    event is set, running commands are killed, and the worker thread is joined
    before the interrupt propagates.
    """

    def __init__(
        self,
        reporter: "ProgressReporter",
        *,
        tick_interval: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.reporter = reporter
        self.tick_interval = tick_interval
        self._sleep = sleep

    def _call_in_worker(
        self,
        step_id: str,
        action: Callable[[], None],
        cancel: Optional[threading.Event],
    ) -> None:
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"step-{step_id}")
        future = pool.submit(action)
        try:
            while True:
                done, _ = concurrent.futures.wait([future], timeout=self.tick_interval)
                if done:
                    break
                self.reporter.step_tick(step_id)
        except KeyboardInterrupt:
            self._stop_worker(step_id, future, cancel)
            raise
        finally:
            pool.shutdown(wait=True)
        future.result()

    def _stop_worker(
        self,
        step_id: str,
        future: concurrent.futures.Future,
        cancel: Optional[threading.Event],
    ) -> None:
        """Signal the running action to stop and wait until its thread is done."""

        logger.warning("[%s] interrupted; waiting for the step to stop", step_id)
        if cancel is not None:
            cancel.set()
        # Commands started after the first kill (a step running several) are killed too.
        while not future.done():
            kill_children()
            concurrent.futures.wait([future], timeout=self.tick_interval)

    def run(
        self,
        step_id: str,
        action: Callable[[], None],
        policy: RetryPolicy,
        cancel: Optional[threading.Event] = None,
    ) -> StepOutcome:
        attempts = 0
        started = time.monotonic()

        def _attempt() -> None:
            nonlocal attempts
            attempts += 1
            logger.debug("[%s] attempt %d/%d", step_id, attempts, policy.max_attempts)
            self._call_in_worker(step_id, action, cancel)

        def _before_sleep(retry_state) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "[%s] attempt %d/%d failed: %s; retrying in %.1fs",
                step_id,
                retry_state.attempt_number,
                policy.max_attempts,
                error,
                delay,
            )
            self.reporter.step_retrying(step_id, retry_state.attempt_number, policy.max_attempts, error, delay)

        retrying = Retrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential_jitter(multiplier=policy.delay, max=policy.max_delay, jitter=policy.jitter),
            retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(CancelledError),
            sleep=self._sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )

        try:
            retrying(_attempt)
        except Exception as e:
            elapsed = time.monotonic() - started
            logger.error("[%s] failed after %d attempt(s): %s", step_id, attempts, e)
            logger.debug("[%s] last error", step_id, exc_info=True)
            return StepOutcome.failed(str(e) or type(e).__name__, attempts=attempts, elapsed=elapsed, error=e)

        return StepOutcome.succeeded(attempts=attempts, elapsed=time.monotonic() - started)
