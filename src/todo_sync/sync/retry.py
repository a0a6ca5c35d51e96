# src/todo_sync/sync/retry.py

"""
Bounded retry and cancellable polling.

The remote store is eventually consistent, so after a write or delete the
engine polls the directory listing until the change is visible. Polls are
registered per document slot: issuing a newer operation on the same
document cancels the outstanding poll of the older one instead of racing it.

Error classes during a poll check:
- TransientNetwork -> "not yet visible", retried within the budget
- anything else (RateLimited, Forbidden, ...) -> propagates immediately
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from ..core.errors import TodoSyncError, is_retryable

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_attempts: int = 8
    base_delay: float = 0.5
    max_delay: float = 4.0
    exponential: bool = True

    @classmethod
    def from_settings(cls, settings) -> RetryPolicy:
        return cls(
            max_attempts=max(1, int(getattr(settings, "poll_max_attempts", 8))),
            base_delay=max(0.0, float(getattr(settings, "poll_base_delay_seconds", 0.5))),
            max_delay=max(0.0, float(getattr(settings, "poll_max_delay_seconds", 4.0))),
        )

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based attempt (fixed or capped exponential)."""
        if not self.exponential:
            return min(self.base_delay, self.max_delay)
        return min(self.base_delay * (2 ** max(0, attempt - 1)), self.max_delay)


class PollOutcome(str, Enum):
    CONFIRMED = "confirmed"
    EXHAUSTED = "exhausted"
    SUPERSEDED = "superseded"
    # The poll stopped on a non-retryable error; visibility is unknown.
    FAILED = "failed"


async def poll_until(
    check: Callable[[], Awaitable[bool]],
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    label: str = "poll",
) -> bool:
    """
    Call check() up to policy.max_attempts times.

    Returns True as soon as check() is true, False when the budget is spent.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            if await check():
                logger.debug("%s: confirmed on attempt %d/%d", label, attempt, policy.max_attempts)
                return True
        except TodoSyncError as e:
            if not is_retryable(e):
                raise
            logger.debug("%s: attempt %d failed transiently (%s)", label, attempt, e)

        if attempt < policy.max_attempts:
            await sleep(policy.delay_for(attempt))

    logger.info("%s: not confirmed after %d attempts", label, policy.max_attempts)
    return False


class PollRegistry:
    """Outstanding poll tasks keyed by document slot."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[bool]] = {}

    def __contains__(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Cancelled stale poll for %s", key)
        return True

    async def run(self, key: str, poll: Awaitable[bool]) -> PollOutcome:
        """
        Run a poll as a task registered under key and wait for it.

        A cancellation coming from cancel(key) yields SUPERSEDED; a
        cancellation of the caller itself propagates (and stops the poll).
        """
        self.cancel(key)
        task: asyncio.Task[bool] = asyncio.ensure_future(poll)
        self._tasks[key] = task

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._tasks.get(key) is task:
                del self._tasks[key]

        if task.cancelled():
            return PollOutcome.SUPERSEDED
        return PollOutcome.CONFIRMED if task.result() else PollOutcome.EXHAUSTED
