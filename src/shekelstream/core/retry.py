from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import math
import random
import time
from typing import TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded retry schedule with optional randomized backoff.

    `retries` counts retries after the first attempt, so a policy with
    `retries=5` makes at most six calls.
    """

    retries: int = 5
    min_timeout: float = 1.0
    factor: float = 2.0
    randomize: bool = True
    max_timeout: float = math.inf

    def delay(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        """Seconds to wait before retry number `attempt` (0-based)."""
        multiplier = (rng() + 1) if self.randomize else 1.0
        timeout = round(multiplier * self.min_timeout * self.factor**attempt)
        return min(timeout, self.max_timeout)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Callable[[Exception, int], None] | None = None,
) -> T:
    """Call `fn` until it succeeds or the policy is exhausted.

    Args:
        fn: Zero-argument callable to invoke
        policy: Retry schedule
        sleep: Wait function, injectable for tests
        on_retry: Called with the error and the 1-based attempt number before
            each wait

    Returns:
        The first successful result of `fn`

    Raises:
        Exception: The error raised by the final attempt
    """
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= policy.retries:
                raise
            if on_retry is not None:
                on_retry(e, attempt + 1)
            sleep(policy.delay(attempt))
            attempt += 1
