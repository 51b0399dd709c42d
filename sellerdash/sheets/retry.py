"""Exponential backoff around rate-limited spreadsheet calls.

Only ``SheetsError`` with code RATE_LIMITED is retried. Permission, not-found
and unknown failures are raised on the first attempt.
"""
import logging
import time
from typing import Callable, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from sellerdash.connectors.errors import SheetsError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, SheetsError) and exc.is_rate_limited


class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_attempts: Total attempts including the first call.
        base_delay: Delay in seconds before the second attempt.
        max_delay: Ceiling for any single delay.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 32.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def run(self, fn: Callable[[], T], description: str = "sheets call") -> T:
        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "%s rate limited (attempt %d/%d), retrying in %.1fs",
                description,
                retry_state.attempt_number,
                self.max_attempts,
                retry_state.next_action.sleep,
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception(is_rate_limited),
            sleep=self._sleep,
            reraise=True,
            before_sleep=log_retry,
        )
        return retrying(fn)
