import asyncio

import pytest

from finance_tracker.core.retry import exponential_backoff, with_retry


def test_backoff_doubles_from_two_seconds():
    backoff = exponential_backoff()
    assert [backoff(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]


def test_backoff_is_capped():
    backoff = exponential_backoff(base_seconds=2.0, max_seconds=5.0)
    assert [backoff(n) for n in (1, 2, 3)] == [2.0, 4.0, 5.0]


def test_succeeds_after_transient_failures(sleeper):
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("temporary")
        return "ok"

    result = asyncio.run(with_retry(flaky, max_attempts=3, sleep=sleeper))

    assert result == "ok"
    assert len(calls) == 3
    assert sleeper.calls == [2.0, 4.0]


def test_reraises_last_error_without_final_sleep(sleeper):
    calls = []

    async def always_fails():
        calls.append(1)
        raise ValueError(f"attempt {len(calls)}")

    with pytest.raises(ValueError, match="attempt 3"):
        asyncio.run(with_retry(always_fails, max_attempts=3, sleep=sleeper))

    assert len(calls) == 3
    assert sleeper.calls == [2.0, 4.0]


def test_errors_outside_retry_on_are_not_retried(sleeper):
    calls = []

    async def broken():
        calls.append(1)
        raise KeyError("no")

    with pytest.raises(KeyError):
        asyncio.run(with_retry(broken, retry_on=(ValueError,), sleep=sleeper))

    assert len(calls) == 1
    assert sleeper.calls == []


def test_rejects_non_positive_attempts():
    async def noop():
        return None

    with pytest.raises(ValueError):
        asyncio.run(with_retry(noop, max_attempts=0))
