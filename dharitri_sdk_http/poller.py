"""
Transaction poller — wait for a broadcast transaction to reach finality.

One ``poll()`` is a small state machine:

    POLLING ──status success──────────────► SUCCEEDED
       │    ──status failed/invalid───────► FAILED
       │    ──fatal / decode error────────► ERRORED
       │    ──cancel event────────────────► CANCELLED
       │    ──budget or deadline spent────► TIMED_OUT
       └─── pending / not found / transient error: wait, poll again

Every tick is a single ``get_transaction`` attempt: the poller owns the
retry decision for status checks, so the proxy client is told not to
retry on its own. Ticks for one hash are strictly sequential; different
hashes can be polled concurrently with ``poll_many()``.

"Not found" right after broadcast is normal (the transaction has not
reached this node yet) and is treated as pending, never as an error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from dharitri_sdk_http.errors import ApiError, ErrorKind
from dharitri_sdk_http.models import TransactionOnNetwork, TransactionStatus
from dharitri_sdk_http.proxy import ProxyClient
from dharitri_sdk_http.retry import RetryPolicy, Sleep, pause

logger = logging.getLogger(__name__)

# One status check per second for up to two minutes.
DEFAULT_POLL_POLICY = RetryPolicy.constant(1.0, max_attempts=120, deadline=120.0)


class PollOutcome(StrEnum):
    """Terminal state of a poll."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollResult:
    """Why polling stopped, and what was seen last.

    Attributes:
        outcome: Terminal state of the poll.
        transaction: Last transaction returned by the node, if any. Set
            for SUCCEEDED/FAILED; may be set (still pending) for
            TIMED_OUT/CANCELLED.
        error: Error that ended the poll (ERRORED), or the last error
            seen before TIMED_OUT/CANCELLED. None on SUCCEEDED/FAILED.
        attempts: Number of status queries issued.
        elapsed: Seconds spent, by the poller's clock.
    """

    outcome: PollOutcome
    transaction: TransactionOnNetwork | None = None
    error: ApiError | None = None
    attempts: int = 0
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is PollOutcome.SUCCEEDED


class TransactionPoller:
    """Polls transaction status until a terminal state or budget exhaustion.

    Args:
        proxy: Client used for status queries.
        policy: Poll schedule. Every tick (pending answer or retryable
            error alike) consumes one attempt; rate-limited answers
            stretch the next wait.
        sleep: Awaitable sleep. Defaults to the proxy's.
        clock: Monotonic clock. Defaults to the proxy's.
    """

    def __init__(
        self,
        proxy: ProxyClient,
        policy: RetryPolicy = DEFAULT_POLL_POLICY,
        *,
        sleep: Sleep | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._proxy = proxy
        self._policy = policy
        self._sleep = sleep or proxy.sleep
        self._clock = clock or proxy.clock

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def poll(
        self,
        tx_hash: str,
        *,
        with_results: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> PollResult:
        """Poll one transaction. Never raises for network-side errors."""
        if not tx_hash:
            raise ValueError("tx_hash must be non-empty")

        started = self._clock()
        tick = 0
        last_tx: TransactionOnNetwork | None = None
        last_error: ApiError | None = None

        while True:
            if cancel is not None and cancel.is_set():
                return self._result(PollOutcome.CANCELLED, started, tick, last_tx, last_error)

            rate_limited = False
            try:
                tx = await self._proxy.get_transaction(
                    tx_hash,
                    with_results,
                    policy=RetryPolicy.single(),
                    cancel=cancel,
                )
            except ApiError as exc:
                tick += 1
                if exc.kind is ErrorKind.CANCELLED:
                    return self._result(PollOutcome.CANCELLED, started, tick, last_tx, last_error)
                if exc.is_not_found:
                    logger.debug("transaction %s not visible yet", tx_hash)
                    last_error = exc
                elif _is_retryable(exc):
                    logger.warning("status check for %s failed: %s", tx_hash, exc)
                    last_error = exc
                    rate_limited = _root(exc).kind is ErrorKind.RATE_LIMITED
                else:
                    logger.warning("stopping poll of %s: %s", tx_hash, exc)
                    return self._result(PollOutcome.ERRORED, started, tick, last_tx, exc)
            else:
                tick += 1
                last_tx = tx
                last_error = None
                if tx.status is TransactionStatus.SUCCESS:
                    return self._result(PollOutcome.SUCCEEDED, started, tick, tx, None)
                if tx.status.is_terminal:
                    return self._result(PollOutcome.FAILED, started, tick, tx, None)
                logger.debug("transaction %s still %s", tx_hash, tx.raw_status)

            elapsed = self._clock() - started
            delay = self._policy.next_delay(tick - 1, elapsed=elapsed, rate_limited=rate_limited)
            if delay is None:
                logger.warning(
                    "gave up on transaction %s after %d check(s) in %.1fs", tx_hash, tick, elapsed
                )
                return self._result(PollOutcome.TIMED_OUT, started, tick, last_tx, last_error)

            if not await pause(delay, sleep=self._sleep, cancel=cancel):
                return self._result(PollOutcome.CANCELLED, started, tick, last_tx, last_error)

    async def poll_many(
        self,
        tx_hashes: Sequence[str],
        *,
        with_results: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, PollResult]:
        """Poll several distinct transactions concurrently.

        Each hash gets its own sequential loop; no ordering holds between
        hashes. Duplicate hashes are polled once.
        """
        unique = list(dict.fromkeys(tx_hashes))
        results = await asyncio.gather(
            *(self.poll(h, with_results=with_results, cancel=cancel) for h in unique)
        )
        return dict(zip(unique, results))

    def _result(
        self,
        outcome: PollOutcome,
        started: float,
        attempts: int,
        transaction: TransactionOnNetwork | None,
        error: ApiError | None,
    ) -> PollResult:
        return PollResult(
            outcome=outcome,
            transaction=transaction,
            error=error,
            attempts=attempts,
            elapsed=self._clock() - started,
        )


def _root(error: ApiError) -> ApiError:
    return error.last_error if error.last_error is not None else error


def _is_retryable(error: ApiError) -> bool:
    # With a single-attempt policy the proxy reports a retryable failure
    # as TIMED_OUT wrapping the original error.
    return error.retryable or (
        error.kind is ErrorKind.TIMED_OUT
        and error.last_error is not None
        and error.last_error.retryable
    )
