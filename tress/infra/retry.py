"""
Bounded exponential backoff applied around a single fallible call.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from tress.errors import TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryHook = Callable[[int, float, BaseException], None]


def log_retry(attempt: int, delay: float, error: BaseException) -> None:
    logger.warning("Attempt %d failed (%s); retrying in %.2fs", attempt, error, delay)


@dataclass
class RetryPolicy:
    """
    Attempt ``n`` waits ``base_delay * multiplier ** (n - 1)`` seconds (capped at
    ``max_delay``) plus up to ``jitter`` random seconds before attempt ``n + 1``.
    Only ``retry_on`` exceptions are retried, and only while their ``retryable``
    attribute (when they have one) is true; the last one is re-raised once
    ``max_attempts`` is exhausted or a permanent failure is seen.
    """

    max_attempts: int = 4
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.5
    retry_on: Tuple[Type[BaseException], ...] = (TransportError,)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def should_retry(self, error: BaseException) -> bool:
        return isinstance(error, self.retry_on) and getattr(error, "retryable", True)

    def call(self, fn: Callable[..., T], *args, on_retry: Optional[RetryHook] = None, **kwargs) -> T:
        hook = on_retry or log_retry

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            hook(retry_state.attempt_number, delay, error)

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=self.multiplier, max=self.max_delay)
            + wait_random(0, self.jitter),
            retry=retry_if_exception(self.should_retry),
            before_sleep=before_sleep,
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(fn, *args, **kwargs)
