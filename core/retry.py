"""Retry combinator for storage writes.

``with_retry`` wraps an async operation in a tenacity ``AsyncRetrying`` loop.
Which failures are worth retrying is decided by an explicit classifier
passed in by the caller, not by the exception hierarchy. Delays follow a
decorrelated-jitter schedule computed up front for each call, so concurrent
writers do not retry in lockstep.
"""

from __future__ import annotations

import logging
import math
import random
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# Shape constants of the "decorrelated jitter V2" curve: P_FACTOR controls the
# steepness of the tanh ramp, RP_SCALING makes the median of the first delay
# equal to the requested base delay.
_P_FACTOR = 4.0
_RP_SCALING = 1 / 1.4


def decorrelated_jitter_backoff(
    median_first_delay: float,
    retry_count: int,
    *,
    max_delay: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> List[float]:
    """Return ``retry_count`` delays in seconds, growing roughly exponentially.

    Each delay is the increment of ``2**t * tanh(sqrt(P * t))`` where ``t``
    is the retry index plus a uniform random fraction, so delays double per
    retry on average while staying randomised around that trend.
    """
    if median_first_delay < 0:
        raise ValueError("median_first_delay must be non-negative")
    if retry_count < 0:
        raise ValueError("retry_count must be non-negative")

    rng = rng or random.Random()
    delays: List[float] = []
    prev = 0.0
    for i in range(retry_count):
        t = i + rng.random()
        nxt = math.pow(2, t) * math.tanh(math.sqrt(_P_FACTOR * t))
        delay = (nxt - prev) * _RP_SCALING * median_first_delay
        if max_delay is not None:
            delay = min(delay, max_delay)
        delays.append(delay)
        prev = nxt
    return delays


class wait_schedule(wait_base):
    """Tenacity wait strategy that replays a precomputed list of delays."""

    def __init__(self, delays: Sequence[float]) -> None:
        self.delays = list(delays)

    def __call__(self, retry_state: RetryCallState) -> float:
        if not self.delays:
            return 0.0
        index = min(retry_state.attempt_number - 1, len(self.delays) - 1)
        return self.delays[index]


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    sleep_for = retry_state.next_action.sleep if retry_state.next_action else 0.0
    LOGGER.warning(
        "Waiting %.2fs before attempt %d due to %s",
        sleep_for,
        retry_state.attempt_number + 1,
        exc,
    )


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    wait: wait_base,
    is_transient: Callable[[BaseException], bool],
    max_retries: int,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """Run ``operation`` until it succeeds, retrying transient failures.

    A failure for which ``is_transient`` is False propagates immediately.
    After ``max_retries`` retries the last transient failure is re-raised.
    ``sleep`` replaces the coroutine used between attempts; callers use it
    to make retry delays interruptible.
    """
    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait,
        retry=retry_if_exception(is_transient),
        before_sleep=_log_before_sleep,
        reraise=True,
        **kwargs,
    )
    async for attempt in retrying:
        with attempt:
            result = await operation()
    return result
