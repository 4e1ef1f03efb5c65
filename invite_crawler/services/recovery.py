"""Operator decision points for the stored catalog.

Both policies are picked at startup and injected, so the cycle itself never
reads from the terminal.

CorruptionPolicy: what to do when the catalog file exists but cannot be read.
    AbortOnCorruption / OverwriteOnCorruption / PromptOperator

SaveRetryPolicy: how to wait between failed save attempts.
    PromptRetry (operator presses Enter) / BackoffRetry (capped exponential sleep)
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    wait_exponential,
    wait_none,
)

from invite_crawler.errors import CatalogCorruptionError, CatalogSaveError

logger = logging.getLogger(__name__)


YES_ANSWERS = {"y", "Y", "Yes", "yes", "YES"}
NO_ANSWERS = {"n", "N", "No", "no", "NO"}


def ask(question: str, *, input_fn: Callable[[str], str] = input, output: Callable[[str], None] = print) -> bool:
    """Block until the operator answers yes or no. A closed stdin counts as no."""
    output(f"{question} (Yes / No)")
    while True:
        try:
            answer = input_fn("").strip()
        except EOFError:
            return False
        if answer in YES_ANSWERS:
            return True
        if answer in NO_ANSWERS:
            return False
        output("invalid answer")


class CorruptionPolicy:
    name = "base"

    def should_continue(self, error: CatalogCorruptionError) -> bool:
        """True to go on with an empty catalog, False to abort the process."""
        raise NotImplementedError


class AbortOnCorruption(CorruptionPolicy):
    name = "abort"

    def should_continue(self, error: CatalogCorruptionError) -> bool:
        return False


class OverwriteOnCorruption(CorruptionPolicy):
    name = "overwrite"

    def should_continue(self, error: CatalogCorruptionError) -> bool:
        logger.warning("Continuing with an empty catalog; %s will be overwritten on next save.", error.path)
        return True


class PromptOperator(CorruptionPolicy):
    name = "prompt"

    def __init__(self, *, input_fn: Callable[[str], str] = input, output: Callable[[str], None] = print) -> None:
        self.input_fn = input_fn
        self.output = output

    def should_continue(self, error: CatalogCorruptionError) -> bool:
        if error.unreadable:
            question = "Do you want to continue and ignore the saved data (may be overwritten) ? (disrecommended)"
        else:
            question = "Do you want to continue and overwrite the saved data? (disrecommended)"
        if ask(question, input_fn=self.input_fn, output=self.output):
            self.output("Data will be overwritten.")
            return True
        self.output("To fix the problem, restore or repair the catalog file and launch the program again.")
        return False


CORRUPTION_POLICIES = {
    "abort": AbortOnCorruption,
    "overwrite": OverwriteOnCorruption,
    "prompt": PromptOperator,
}


class SaveRetryPolicy:
    """Builds the tenacity Retrying that drives save attempts.

    Only OSError is retried. max_attempts=None retries forever; once the limit
    is hit tenacity raises RetryError, which the store turns into
    CatalogSaveError. before_sleep may also raise CatalogSaveError to give up.
    """

    name = "base"

    def __init__(self, *, max_attempts: Optional[int] = None, sleep: Callable[[float], None] = time.sleep) -> None:
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.sleep = sleep

    def stop(self):
        if self.max_attempts is None:
            return stop_never
        return stop_after_attempt(self.max_attempts)

    def wait_strategy(self):
        return wait_none()

    def before_sleep(self, retry_state: RetryCallState) -> None:
        raise NotImplementedError

    def retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception_type(OSError),
            stop=self.stop(),
            wait=self.wait_strategy(),
            sleep=self.sleep,
            before_sleep=self.before_sleep,
        )


class PromptRetry(SaveRetryPolicy):
    name = "prompt"

    def __init__(
        self,
        *,
        max_attempts: Optional[int] = None,
        input_fn: Callable[[str], str] = input,
        output: Callable[[str], None] = print,
    ) -> None:
        super().__init__(max_attempts=max_attempts)
        self.input_fn = input_fn
        self.output = output

    def before_sleep(self, retry_state: RetryCallState) -> None:
        self.output("Failed to save database. Press Enter to retry.")
        try:
            self.input_fn("")
        except EOFError as exc:
            # Nobody can press Enter; spinning here would hot-loop forever
            error = retry_state.outcome.exception() if retry_state.outcome else None
            raise CatalogSaveError(f"no operator to confirm retry: {error}") from exc


class BackoffRetry(SaveRetryPolicy):
    name = "backoff"

    def __init__(
        self,
        *,
        initial: float = 1.0,
        factor: float = 2.0,
        max_delay: float = 300.0,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(max_attempts=max_attempts, sleep=sleep)
        self.initial = float(initial)
        self.factor = float(factor)
        self.max_delay = float(max_delay)

    def wait_strategy(self):
        return wait_exponential(multiplier=self.initial, exp_base=self.factor, max=self.max_delay)

    def before_sleep(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Retrying catalog save in %.1fs (attempt %d failed)",
            delay, retry_state.attempt_number,
        )


SAVE_RETRY_POLICIES = {
    "prompt": PromptRetry,
    "backoff": BackoffRetry,
}
