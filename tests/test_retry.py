import asyncio

import httpx
import pytest

from seo_orchestrator.config import RetryConfig
from seo_orchestrator.gateway import ProviderError, UnsupportedProviderError
from seo_orchestrator.json_tools import JsonParsingError
from seo_orchestrator.race import AggregateProviderError
from seo_orchestrator.retry import RetryPolicy, is_transient_error, with_retry
from tests.fakes import RecordingSleep


class Flaky:
    def __init__(self, failures, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


@pytest.mark.asyncio
async def test_retries_transient_errors_with_exponential_delays():
    sleep = RecordingSleep()
    policy = RetryPolicy(sleep=sleep, jitter=lambda: 0.0)
    fn = Flaky([ProviderError("slow down", status_code=429), JsonParsingError("bad json", context="x")])

    assert await policy.run(fn) == "ok"
    assert fn.calls == 3
    assert sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_jitter_is_added_to_delay():
    sleep = RecordingSleep()
    policy = RetryPolicy(sleep=sleep, jitter=lambda: 0.5, max_jitter_s=1.0)
    fn = Flaky([httpx.ReadTimeout("timed out")])

    await policy.run(fn)
    assert sleep.delays == [2.5]


@pytest.mark.asyncio
async def test_non_transient_error_propagates_after_one_call_without_delay():
    sleep = RecordingSleep()
    policy = RetryPolicy(sleep=sleep, jitter=lambda: 0.0)
    fn = Flaky([ProviderError("unauthorized", status_code=401)])

    with pytest.raises(ProviderError):
        await policy.run(fn)
    assert fn.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_last_error_reraised_after_exhausting_attempts():
    sleep = RecordingSleep()
    policy = RetryPolicy(max_attempts=3, sleep=sleep, jitter=lambda: 0.0)
    last = JsonParsingError("third", context="x")
    fn = Flaky([JsonParsingError("first", context="x"), JsonParsingError("second", context="x"), last])

    with pytest.raises(JsonParsingError) as excinfo:
        await policy.run(fn)
    assert excinfo.value is last
    assert fn.calls == 3
    # No sleep after the final attempt.
    assert sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_with_retry_uses_given_policy():
    policy = RetryPolicy(max_attempts=2, sleep=RecordingSleep(), jitter=lambda: 0.0)
    fn = Flaky([RuntimeError("rate limit reached")])
    assert await with_retry(fn, policy) == "ok"


def test_from_config_copies_constants():
    policy = RetryPolicy.from_config(RetryConfig(max_attempts=2, base_delay_s=1.0, max_jitter_s=0.0))
    assert policy.max_attempts == 2
    assert policy.delay_for(0) == 1.0
    assert policy.delay_for(2) == 4.0


@pytest.mark.parametrize(
    "error, expected",
    [
        (ProviderError("x", status_code=429), True),
        (RuntimeError("RESOURCE_EXHAUSTED: try later"), True),
        (RuntimeError("Quota exceeded"), True),
        (JsonParsingError("bad", context="c"), True),
        (asyncio.TimeoutError(), True),
        (httpx.ConnectTimeout("t"), True),
        (ProviderError("nope", status_code=403), False),
        (UnsupportedProviderError("Unsupported AI provider: x"), False),
        (ValueError("boom"), False),
        (AggregateProviderError([ValueError("a"), ProviderError("b", status_code=429)]), True),
        (AggregateProviderError([ValueError("a"), ValueError("b")]), False),
    ],
)
def test_transient_classification(error, expected):
    assert is_transient_error(error) is expected


@pytest.mark.asyncio
async def test_single_attempt_policy_reraises_transient_error_without_delay():
    sleep = RecordingSleep()
    policy = RetryPolicy(max_attempts=1, sleep=sleep, jitter=lambda: 0.0)
    error = httpx.ReadTimeout("timed out")
    fn = Flaky([error])

    with pytest.raises(httpx.ReadTimeout) as excinfo:
        await policy.run(fn)
    assert excinfo.value is error
    assert fn.calls == 1
    assert sleep.delays == []
