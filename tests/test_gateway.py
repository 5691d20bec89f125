import asyncio

import httpx
import pytest

from icp_screener.errors import UpstreamError, UpstreamTimeout
from icp_screener.gateway import Gateway, RetryPolicy, error_message, is_retryable


class SleepRecorder:
    def __init__(self):
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


def _gateway(sleep: SleepRecorder, attempts: int = 3, timeout: float = 5.0) -> Gateway:
    return Gateway("exa", RetryPolicy(attempts=attempts, base_delay=2.0, timeout=timeout), sleep=sleep)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.test")


@pytest.mark.asyncio
async def test_rate_limited_twice_then_success():
    statuses = iter([429, 429, 200])
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        status = next(statuses)
        if status == 429:
            return httpx.Response(429, json={"error": {"message": "rate limit exceeded"}})
        return httpx.Response(200, json={"results": []})

    sleep = SleepRecorder()
    async with _client(handler) as client:
        response = await _gateway(sleep).request(client, "POST", "/search", json={"query": "acme"})

    assert response.data == {"results": []}
    assert response.retries == 2
    assert len(calls) == 3
    assert sleep.waits == [4.0, 8.0]
    assert response.waits == sleep.waits


@pytest.mark.asyncio
async def test_exhausted_retries_name_attempts_and_last_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": "slow down"})

    sleep = SleepRecorder()
    async with _client(handler) as client:
        with pytest.raises(UpstreamError) as excinfo:
            await _gateway(sleep).request(client, "POST", "/search", json={})

    err = excinfo.value
    assert err.attempts == 3
    assert err.status_code == 429
    assert "failed after 3 attempts" in str(err)
    assert "HTTP 429: slow down" in str(err)
    assert len(sleep.waits) == 2


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404, json={"message": "Profile not found"})

    sleep = SleepRecorder()
    async with _client(handler) as client:
        with pytest.raises(UpstreamError) as excinfo:
            await _gateway(sleep).request(client, "GET", "/enrich")

    assert excinfo.value.status_code == 404
    assert excinfo.value.message == "HTTP 404: Profile not found"
    assert excinfo.value.attempts == 1
    assert len(calls) == 1
    assert sleep.waits == []


@pytest.mark.asyncio
async def test_overloaded_message_is_retried_regardless_of_status():
    statuses = iter([400, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        if next(statuses) == 400:
            return httpx.Response(400, json={"error": {"type": "overloaded_error", "message": "Overloaded"}})
        return httpx.Response(200, json={"ok": True})

    sleep = SleepRecorder()
    async with _client(handler) as client:
        response = await _gateway(sleep).request(client, "POST", "/v1/messages", json={})

    assert response.data == {"ok": True}
    assert response.retries == 1


@pytest.mark.asyncio
async def test_slow_call_times_out_and_is_retried():
    async def slow():
        await asyncio.sleep(5)

    sleep = SleepRecorder()
    with pytest.raises(UpstreamTimeout) as excinfo:
        await _gateway(sleep, attempts=2, timeout=0.01).invoke(slow)

    assert excinfo.value.attempts == 2
    assert "Request timed out" in excinfo.value.message
    assert sleep.waits == [4.0]


@pytest.mark.asyncio
async def test_transport_errors_are_retried_as_unavailable():
    attempts = iter([True, False])

    def handler(request: httpx.Request) -> httpx.Response:
        if next(attempts):
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"ok": True})

    sleep = SleepRecorder()
    async with _client(handler) as client:
        response = await _gateway(sleep).request(client, "GET", "/ping")

    assert response.retries == 1


@pytest.mark.asyncio
async def test_non_upstream_exceptions_propagate_immediately():
    calls = 0

    async def broken():
        nonlocal calls
        calls += 1
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        await _gateway(SleepRecorder()).invoke(broken)
    assert calls == 1


@pytest.mark.asyncio
async def test_empty_success_body_is_an_empty_dict():
    async with _client(lambda request: httpx.Response(204)) as client:
        response = await _gateway(SleepRecorder()).request(client, "DELETE", "/leads/1")

    assert response.data == {}


@pytest.mark.asyncio
async def test_non_json_success_body_is_an_upstream_error():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, text="<html>Scheduled maintenance</html>")

    async with _client(handler) as client:
        with pytest.raises(UpstreamError) as excinfo:
            await _gateway(SleepRecorder()).request(client, "POST", "/search")

    assert excinfo.value.status_code == 200
    assert excinfo.value.provider == "exa"
    assert "not JSON" in str(excinfo.value)
    assert excinfo.value.as_error_dict()["error"].startswith("HTTP 200")
    assert len(calls) == 1


def test_retry_policy_delay_doubles():
    policy = RetryPolicy(base_delay=30.0)

    assert [policy.delay(n) for n in range(3)] == [60.0, 120.0, 240.0]


@pytest.mark.parametrize(
    ("status", "message", "expected"),
    [
        (429, "Too many requests", True),
        (503, "Service unavailable", True),
        (529, "Overloaded", True),
        (400, "Rate limit reached", True),
        (400, "Invalid filter", False),
        (401, "Unauthorized", False),
    ],
)
def test_is_retryable(status, message, expected):
    assert is_retryable(UpstreamError("exa", message, status_code=status)) is expected


def test_error_message_falls_back_to_body_text():
    response = httpx.Response(502, text="<html>Bad Gateway</html>")

    assert error_message(response) == "HTTP 502: <html>Bad Gateway</html>"
