"""Tests for zonewalker.core.retry."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from zonewalker.core.errors import (
    EmptyResponseError,
    ResolverError,
    UnsecuredResponseError,
    WalkCancelledError,
)
from zonewalker.core.retry import RetryPolicy


def _flaky(failures: int, exc: Exception, value: str = "ok") -> AsyncMock:
    """Operation failing *failures* times before returning *value*."""
    return AsyncMock(side_effect=[exc] * failures + [value])


def test_default_delays():
    policy = RetryPolicy()
    assert policy.initial_delay == 1.0
    assert policy.max_delay == 60.0
    assert policy.backoff_factor == 1.5


def test_delay_grows_geometrically():
    policy = RetryPolicy(initial_delay=1.0, max_delay=60.0, backoff_factor=1.5)
    assert policy.delay_for(0) == 1.0
    assert policy.delay_for(1) == pytest.approx(1.5)
    assert policy.delay_for(2) == pytest.approx(2.25)


def test_delay_is_capped():
    policy = RetryPolicy(initial_delay=1.0, max_delay=60.0, backoff_factor=1.5)
    assert policy.delay_for(50) == 60.0
    assert policy.delay_for(100_000) == 60.0


def test_invalid_parameters():
    with pytest.raises(ValueError):
        RetryPolicy(initial_delay=-1)
    with pytest.raises(ValueError):
        RetryPolicy(backoff_factor=0.5)


@pytest.mark.asyncio
async def test_success_needs_no_sleep():
    sleep = AsyncMock()
    policy = RetryPolicy(sleep=sleep)
    assert await policy.call(_flaky(0, ResolverError("x"))) == "ok"
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retries_until_success_with_backoff():
    sleep = AsyncMock()
    policy = RetryPolicy(initial_delay=1.0, max_delay=60.0, backoff_factor=1.5, sleep=sleep)
    operation = _flaky(3, ResolverError("timeout"))
    assert await policy.call(operation) == "ok"
    assert operation.await_count == 4
    delays = [c.args[0] for c in sleep.await_args_list]
    assert delays == pytest.approx([1.0, 1.5, 2.25])


@pytest.mark.asyncio
async def test_never_gives_up_on_transient_errors():
    sleep = AsyncMock()
    policy = RetryPolicy(initial_delay=1.0, max_delay=60.0, sleep=sleep)
    operation = _flaky(200, EmptyResponseError("empty"))
    assert await policy.call(operation) == "ok"
    assert sleep.await_args_list[-1].args[0] == 60.0


@pytest.mark.asyncio
async def test_non_retryable_error_propagates():
    sleep = AsyncMock()
    policy = RetryPolicy(sleep=sleep)
    with pytest.raises(UnsecuredResponseError):
        await policy.call(_flaky(1, UnsecuredResponseError("insecure")))
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_on_retry_hook_receives_error_and_delay():
    hook = MagicMock()
    policy = RetryPolicy(initial_delay=2.0, sleep=AsyncMock())
    error = ResolverError("boom")
    await policy.call(_flaky(1, error), on_retry=hook)
    hook.assert_called_once_with(error, 2.0)


@pytest.mark.asyncio
async def test_shutdown_before_retry_cancels():
    shutdown = asyncio.Event()
    shutdown.set()
    sleep = AsyncMock()
    policy = RetryPolicy(shutdown=shutdown, sleep=sleep)
    with pytest.raises(WalkCancelledError):
        await policy.call(_flaky(1, ResolverError("x")))
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_shutdown_during_wait_cancels():
    shutdown = asyncio.Event()

    async def _sleep(delay: float) -> None:
        shutdown.set()

    operation = _flaky(1, ResolverError("x"))
    policy = RetryPolicy(shutdown=shutdown, sleep=_sleep)
    with pytest.raises(WalkCancelledError):
        await policy.call(operation)
    assert operation.await_count == 1
