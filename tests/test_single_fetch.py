import asyncio

import httpx
import pytest

from client.errors import ApiRequestError
from client.models import ApiError, ApiResponse
from hooks import ApiHook, Backoff, RetryPolicy
from hooks.cache import build_cache_key
from conftest import RecordingSleep


class CountingOperation:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def ok(data):
    return ApiResponse(data=data)


def fail(status_code, message="failed"):
    return ApiError(status="error", message=message, status_code=status_code)


@pytest.mark.anyio
async def test_execute_sets_data_and_calls_on_success():
    received = []
    operation = CountingOperation(ok({"name": "Ada"}))
    hook = ApiHook(operation, name="profile", on_success=received.append)

    data = await hook.execute("u1")

    assert data == {"name": "Ada"}
    assert hook.data == {"name": "Ada"}
    assert hook.loading is False
    assert hook.error is None
    assert received == [{"name": "Ada"}]
    assert operation.calls == [(("u1",), {})]


@pytest.mark.anyio
async def test_failure_sets_error_and_keeps_previous_data():
    errors = []
    operation = CountingOperation(ok([1]), fail(404, "Not found"))
    hook = ApiHook(operation, name="things", on_error=errors.append)

    await hook.execute()
    result = await hook.execute()

    assert result is None
    assert hook.data == [1]
    assert hook.error == "Not found"
    assert hook.error_detail.status_code == 404
    assert [e.status_code for e in errors] == [404]


@pytest.mark.anyio
async def test_raised_exceptions_are_normalized():
    hook = ApiHook(CountingOperation(httpx.ConnectError("offline")), name="offline")

    assert await hook.execute() is None
    assert hook.error_detail.status_code == 0


@pytest.mark.anyio
async def test_api_request_error_keeps_its_error():
    error = fail(422, "Invalid date")
    hook = ApiHook(CountingOperation(ApiRequestError(error)), name="book")

    await hook.execute()
    assert hook.error_detail is error


@pytest.mark.anyio
async def test_persistent_401_calls_on_unauthorized():
    logged_out = []
    hook = ApiHook(
        CountingOperation(fail(401, "Unauthorized")),
        name="me",
        on_unauthorized=lambda: logged_out.append(True),
    )

    await hook.execute()
    assert logged_out == [True]


@pytest.mark.anyio
async def test_fresh_cache_entry_skips_operation(cache, clock):
    operation = CountingOperation(ok("v1"), ok("v2"))
    hook = ApiHook(operation, name="cached", cache_ttl=60, cache=cache)
    successes = []
    other = ApiHook(operation, name="cached", cache_ttl=60, cache=cache, on_success=successes.append)

    assert await hook.execute("a") == "v1"
    clock.advance(30)
    assert await other.execute("a") == "v1"

    assert len(operation.calls) == 1
    assert successes == ["v1"]
    assert other.data == "v1"


@pytest.mark.anyio
async def test_stale_cache_entry_triggers_fetch(cache, clock):
    operation = CountingOperation(ok("v1"), ok("v2"))
    hook = ApiHook(operation, name="cached", cache_ttl=60, cache=cache)

    await hook.execute()
    clock.advance(60)
    assert await hook.execute() == "v2"
    assert len(operation.calls) == 2


@pytest.mark.anyio
async def test_cache_key_includes_arguments(cache):
    operation = CountingOperation(ok("x"))
    hook = ApiHook(operation, name="by-id", cache_ttl=60, cache=cache)

    await hook.execute("a")
    await hook.execute("b")

    assert len(operation.calls) == 2
    assert cache.get(build_cache_key("by-id", ("a",), {}), 60) is not None


@pytest.mark.anyio
async def test_zero_ttl_never_reads_cache(cache):
    operation = CountingOperation(ok("x"))
    hook = ApiHook(operation, name="nocache", cache=cache)

    await hook.execute()
    await hook.execute()
    assert len(operation.calls) == 2
    assert len(cache) == 0


@pytest.mark.anyio
async def test_second_execute_while_in_flight_is_declined():
    gate = asyncio.Event()
    calls = []

    async def slow():
        calls.append(1)
        await gate.wait()
        return ok("done")

    hook = ApiHook(slow, name="slow", initial_data="initial")
    first = asyncio.ensure_future(hook.execute())
    await asyncio.sleep(0)

    assert hook.in_flight
    assert await hook.execute() == "initial"

    gate.set()
    assert await first == "done"
    assert calls == [1]
    assert not hook.in_flight


@pytest.mark.anyio
async def test_transient_errors_are_retried_with_linear_backoff():
    sleep = RecordingSleep()
    operation = CountingOperation(fail(503), fail(0), ok("up"))
    hook = ApiHook(operation, name="flaky", retry=RetryPolicy(attempts=3, delay=0.5), sleep=sleep)

    assert await hook.execute() == "up"
    assert sleep.calls == [0.5, 1.0]


@pytest.mark.anyio
async def test_fixed_backoff():
    sleep = RecordingSleep()
    operation = CountingOperation(fail(408), fail(408), fail(408))
    policy = RetryPolicy(attempts=2, delay=0.25, backoff=Backoff.FIXED)
    hook = ApiHook(operation, name="timeouts", retry=policy, sleep=sleep)

    assert await hook.execute() is None
    assert sleep.calls == [0.25, 0.25]
    assert len(operation.calls) == 3


@pytest.mark.anyio
async def test_client_errors_are_not_retried():
    sleep = RecordingSleep()
    operation = CountingOperation(fail(400))
    hook = ApiHook(operation, name="bad", retry=RetryPolicy(attempts=3), sleep=sleep)

    await hook.execute()
    assert len(operation.calls) == 1
    assert sleep.calls == []


@pytest.mark.anyio
async def test_refetch_quietly_keeps_data_and_error_on_failure():
    operation = CountingOperation(ok("v1"), fail(500, "down"))
    hook = ApiHook(operation, name="quiet")

    await hook.execute()
    assert await hook.refetch_quietly() == "v1"
    assert hook.data == "v1"
    assert hook.error is None
    assert hook.loading is False


@pytest.mark.anyio
async def test_refetch_quietly_updates_data_and_cache(cache):
    operation = CountingOperation(ok("v1"), ok("v2"))
    hook = ApiHook(operation, name="quiet", cache_ttl=60, cache=cache)

    await hook.execute()
    await hook.refetch_quietly()

    assert hook.data == "v2"
    assert cache.get(build_cache_key("quiet", (), {}), 60).data == "v2"


@pytest.mark.anyio
async def test_reset_restores_initial_state():
    hook = ApiHook(CountingOperation(fail(500)), name="r", initial_data=[])

    await hook.execute()
    hook.reset()

    assert hook.data == []
    assert hook.error is None
    assert hook.loading is False


@pytest.mark.anyio
async def test_raw_payloads_are_passed_through():
    hook = ApiHook(CountingOperation({"plain": True}), name="raw")
    assert await hook.execute() == {"plain": True}


def test_cache_invalidate_by_prefix(cache):
    cache.put("bookings:1", 1)
    cache.put("bookings:2", 2)
    cache.put("offers:1", 3)

    assert cache.invalidate("bookings:") == 2
    assert len(cache) == 1
