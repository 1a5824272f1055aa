import httpx
import pytest

from gemini_proxy.retry import RetryPolicy, call_with_retry
from conftest import RecordingSleep


def status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://provider.test/generate")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"status {status}", request=request, response=response)


class Flaky:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.mark.asyncio
async def test_503_then_success():
    fn = Flaky(status_error(503), status_error(503), "ok")
    sleep = RecordingSleep()

    result = await call_with_retry(fn, policy=RetryPolicy(), sleep=sleep)

    assert result == "ok"
    assert fn.calls == 3
    assert sleep.calls == [2.0, 2.0]


@pytest.mark.asyncio
async def test_fourth_503_is_final():
    errors = [status_error(503) for _ in range(5)]
    fn = Flaky(*errors)
    sleep = RecordingSleep()

    with pytest.raises(httpx.HTTPStatusError) as excinfo:
        await call_with_retry(fn, policy=RetryPolicy(), sleep=sleep)

    assert fn.calls == 4
    assert sleep.calls == [2.0, 2.0, 2.0]
    # the last error is re-raised unchanged
    assert excinfo.value is errors[3]


@pytest.mark.parametrize("status", [400, 429, 500, 502])
@pytest.mark.asyncio
async def test_other_statuses_are_not_retried(status):
    fn = Flaky(status_error(status), "unreachable")
    sleep = RecordingSleep()

    with pytest.raises(httpx.HTTPStatusError):
        await call_with_retry(fn, policy=RetryPolicy(), sleep=sleep)

    assert fn.calls == 1
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_transport_errors_are_not_retried():
    request = httpx.Request("POST", "https://provider.test/generate")
    fn = Flaky(httpx.ReadTimeout("slow", request=request), "unreachable")

    with pytest.raises(httpx.ReadTimeout):
        await call_with_retry(fn, policy=RetryPolicy(), sleep=RecordingSleep())

    assert fn.calls == 1


@pytest.mark.asyncio
async def test_zero_retries():
    fn = Flaky(status_error(503), "unreachable")

    with pytest.raises(httpx.HTTPStatusError):
        await call_with_retry(fn, policy=RetryPolicy(max_retries=0), sleep=RecordingSleep())

    assert fn.calls == 1


@pytest.mark.asyncio
async def test_custom_delay():
    fn = Flaky(status_error(503), "ok")
    sleep = RecordingSleep()

    await call_with_retry(fn, policy=RetryPolicy(delay_seconds=0.25), sleep=sleep)

    assert sleep.calls == [0.25]
