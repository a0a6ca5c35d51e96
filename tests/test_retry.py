# tests/test_retry.py

from __future__ import annotations

import asyncio

import pytest

from todo_sync.core.errors import (
    Forbidden,
    RateLimited,
    RemoteRejected,
    RemoteTimeout,
    TransientNetwork,
    VersionConflict,
    is_retryable,
)
from todo_sync.sync.retry import PollOutcome, PollRegistry, RetryPolicy, poll_until

from .conftest import no_sleep


def test_delay_is_capped_exponential() -> None:
    policy = RetryPolicy(max_attempts=8, base_delay=0.5, max_delay=4.0)
    assert [policy.delay_for(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 4.0, 4.0]

    fixed = RetryPolicy(base_delay=0.5, exponential=False)
    assert fixed.delay_for(5) == 0.5


@pytest.mark.asyncio
async def test_poll_until_treats_transient_errors_as_not_yet() -> None:
    answers: list[object] = [TransientNetwork("502"), False, True]
    delays: list[float] = []

    async def check() -> bool:
        a = answers.pop(0)
        if isinstance(a, Exception):
            raise a
        return bool(a)

    async def sleep(d: float) -> None:
        delays.append(d)

    assert await poll_until(check, RetryPolicy(max_attempts=5, base_delay=1, max_delay=10), sleep=sleep) is True
    assert delays == [1, 2]


@pytest.mark.asyncio
async def test_poll_until_gives_up_and_propagates_rate_limit() -> None:
    async def never() -> bool:
        return False

    assert await poll_until(never, RetryPolicy(max_attempts=3), sleep=no_sleep) is False

    async def limited() -> bool:
        raise RateLimited()

    with pytest.raises(RateLimited):
        await poll_until(limited, RetryPolicy(max_attempts=3), sleep=no_sleep)


@pytest.mark.asyncio
async def test_registry_cancel_marks_poll_superseded() -> None:
    registry = PollRegistry()
    started = asyncio.Event()

    async def slow_poll() -> bool:
        started.set()
        await asyncio.sleep(10)
        return True

    task = asyncio.create_task(registry.run("doc", slow_poll()))
    await started.wait()
    assert "doc" in registry

    assert registry.cancel("doc") is True
    assert await task is PollOutcome.SUPERSEDED
    assert "doc" not in registry
    assert registry.cancel("doc") is False


@pytest.mark.asyncio
async def test_registry_reports_confirmed_and_exhausted() -> None:
    registry = PollRegistry()

    async def result(value: bool) -> bool:
        return value

    assert await registry.run("a", result(True)) is PollOutcome.CONFIRMED
    assert await registry.run("a", result(False)) is PollOutcome.EXHAUSTED


def test_only_network_failures_are_retryable() -> None:
    assert is_retryable(TransientNetwork("502"))
    assert is_retryable(RemoteTimeout("read_file", 5.0))
    for err in (RateLimited(), Forbidden(), RemoteRejected(status_code=400), VersionConflict("todos/a.md")):
        assert not is_retryable(err)


@pytest.mark.asyncio
async def test_poll_until_propagates_rejected_request() -> None:
    async def rejected() -> bool:
        raise RemoteRejected(status_code=400)

    with pytest.raises(RemoteRejected):
        await poll_until(rejected, RetryPolicy(max_attempts=3), sleep=no_sleep)
