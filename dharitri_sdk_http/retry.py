"""
Retry/backoff policy.

A ``RetryPolicy`` is a read-only value shared by every call site that may
retry: the proxy client (idempotent reads) and the transaction poller.
It never sleeps itself. ``next_delay()`` is a pure function of the
attempt index, the elapsed time and the injected random source, so the
schedule can be asserted in tests without waiting.

Schedule for attempt index ``i`` (0-based, the attempt that just failed):

    delay = base_delay * multiplier ** i
    delay *= rate_limit_factor            (rate-limited errors only)
    delay  = min(delay, max_delay)        (if set)
    delay *= 1 + uniform(-jitter, +jitter)
    delay  = min(delay, deadline - elapsed)  (if set)

``None`` means stop: ``i`` was the last allowed attempt, or the
deadline has been spent.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_attempts: Total attempts allowed, first one included (>= 1).
        base_delay: Delay in seconds after the first failed attempt.
        multiplier: Growth factor per attempt (>= 1).
        max_delay: Upper bound for a single delay, before jitter.
        jitter: Fractional perturbation in [0, 1). 0 disables jitter.
        deadline: Time budget in seconds for one whole operation,
            measured by the caller from its first attempt.
        rate_limit_factor: Extra multiplier applied to delays after a
            rate-limited response (>= 1).
        rng: Random source returning floats in [0, 1). Only consulted
            when jitter > 0.
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float | None = 30.0
    jitter: float = 0.0
    deadline: float | None = None
    rate_limit_factor: float = 2.0
    rng: Callable[[], float] = field(default=random.random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got: {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got: {self.base_delay}")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got: {self.multiplier}")
        if self.max_delay is not None and self.max_delay < 0:
            raise ValueError(f"max_delay must be >= 0, got: {self.max_delay}")
        if not 0 <= self.jitter < 1:
            raise ValueError(f"jitter must be in [0, 1), got: {self.jitter}")
        if self.deadline is not None and self.deadline <= 0:
            raise ValueError(f"deadline must be > 0, got: {self.deadline}")
        if self.rate_limit_factor < 1:
            raise ValueError(
                f"rate_limit_factor must be >= 1, got: {self.rate_limit_factor}"
            )

    @classmethod
    def single(cls) -> RetryPolicy:
        """A policy that allows exactly one attempt."""
        return cls(max_attempts=1, base_delay=0.0)

    @classmethod
    def constant(cls, interval: float, max_attempts: int, **kwargs: object) -> RetryPolicy:
        """Fixed-interval policy, the usual shape for status polling."""
        return cls(
            max_attempts=max_attempts,
            base_delay=interval,
            multiplier=1.0,
            max_delay=None,
            **kwargs,  # type: ignore[arg-type]
        )

    def next_delay(
        self,
        attempt_index: int,
        *,
        elapsed: float = 0.0,
        rate_limited: bool = False,
    ) -> float | None:
        """Delay before the attempt after ``attempt_index``, or None to stop."""
        if attempt_index < 0:
            raise ValueError(f"attempt_index must be >= 0, got: {attempt_index}")
        if attempt_index >= self.max_attempts - 1:
            return None

        remaining: float | None = None
        if self.deadline is not None:
            remaining = self.deadline - elapsed
            if remaining <= 0:
                return None

        delay = self.base_delay * self.multiplier**attempt_index
        if rate_limited:
            delay *= self.rate_limit_factor
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        if self.jitter:
            delay *= 1 + self.jitter * (2 * self.rng() - 1)
        if remaining is not None:
            delay = min(delay, remaining)
        return max(delay, 0.0)

    def expired(self, elapsed: float) -> bool:
        """Whether the deadline (if any) has been spent."""
        return self.deadline is not None and elapsed >= self.deadline


DEFAULT_RETRY_POLICY = RetryPolicy()


# =========================================================================
# Cancellable pause
# =========================================================================


async def pause(
    delay: float,
    *,
    sleep: Sleep = asyncio.sleep,
    cancel: asyncio.Event | None = None,
) -> bool:
    """Wait ``delay`` seconds unless ``cancel`` fires first.

    Returns:
        True if the full delay elapsed, False if cancelled.
    """
    if cancel is None:
        await sleep(delay)
        return True
    if cancel.is_set():
        return False

    sleeper = asyncio.ensure_future(sleep(delay))
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, waiter):
            if not task.done():
                task.cancel()
    return not cancel.is_set()
