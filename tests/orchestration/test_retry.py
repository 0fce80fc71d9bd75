"""Tests for backoff and timeout helpers."""

import asyncio

import pytest
from pydantic import ValidationError

from blueprint_workflow.retry import backoff_delays, calculate_backoff, run_with_timeout
from blueprint_workflow.workflow import RetryPolicy


def test_calculate_backoff_grows_and_caps():
    policy = RetryPolicy(max_attempts=6, backoff_multiplier=2, initial_delay=0.01, max_delay=0.1)

    delays = [calculate_backoff(attempt, policy) for attempt in range(6)]

    assert delays == pytest.approx([0.01, 0.02, 0.04, 0.08, 0.1, 0.1])


def test_backoff_delays_between_attempts():
    policy = RetryPolicy(max_attempts=4, backoff_multiplier=3, initial_delay=1.0, max_delay=5.0)

    delays = list(backoff_delays(policy))

    assert delays == pytest.approx([1.0, 3.0, 5.0])
    assert delays == sorted(delays)


def test_single_attempt_policy_has_no_delays():
    assert list(backoff_delays(RetryPolicy(max_attempts=1))) == []


def test_negative_attempt_rejected():
    with pytest.raises(ValueError):
        calculate_backoff(-1, RetryPolicy())


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"backoff_multiplier": 0.5},
        {"initial_delay": -1},
        {"initial_delay": 5.0, "max_delay": 1.0},
    ],
)
def test_retry_policy_validation(kwargs):
    with pytest.raises(ValidationError):
        RetryPolicy(**kwargs)


@pytest.mark.asyncio
async def test_run_with_timeout_returns_result():
    async def quick() -> str:
        return "ok"

    assert await run_with_timeout(quick(), 1.0) == "ok"


@pytest.mark.asyncio
async def test_run_with_timeout_raises_on_slow_call():
    async def slow() -> None:
        await asyncio.sleep(1)

    with pytest.raises(asyncio.TimeoutError):
        await run_with_timeout(slow(), 0.01)
