import asyncio

import pytest

from client.errors import RefreshError, unknown_error
from client.events import SessionEvents
from client.refresh import RefreshCoordinator, RefreshState
from utils.storage import MemoryTokenStorage


class FakeRefreshCall:
    def __init__(self, result=None, error=None, delay=0.0):
        self.calls = []
        self.result = result or {"accessToken": "new-access", "refreshToken": "new-refresh"}
        self.error = error
        self.delay = delay

    async def __call__(self, refresh_token):
        self.calls.append(refresh_token)
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def events():
    return SessionEvents()


@pytest.mark.anyio
async def test_refresh_stores_new_pair(storage, events):
    storage.save_tokens("old-access", "old-refresh")
    call = FakeRefreshCall()
    coordinator = RefreshCoordinator(storage, call, events)

    token = await coordinator.refresh()

    assert token == "new-access"
    assert call.calls == ["old-refresh"]
    assert storage.get_refresh_token() == "new-refresh"
    assert coordinator.state == RefreshState.IDLE


@pytest.mark.anyio
async def test_concurrent_callers_share_one_call(storage, events):
    storage.save_tokens("old-access", "old-refresh")
    call = FakeRefreshCall(delay=0.02)
    coordinator = RefreshCoordinator(storage, call, events)

    first = asyncio.ensure_future(coordinator.refresh())
    await asyncio.sleep(0)
    assert coordinator.state == RefreshState.REFRESHING

    tokens = await asyncio.gather(first, *(coordinator.refresh() for _ in range(4)))

    assert tokens == ["new-access"] * 5
    assert len(call.calls) == 1
    assert coordinator.refresh_count == 1


@pytest.mark.anyio
async def test_all_waiters_see_the_same_failure(storage, events):
    storage.save_tokens("old-access", "old-refresh")
    failure = RefreshError(unknown_error("refresh endpoint down", status_code=503))
    coordinator = RefreshCoordinator(storage, FakeRefreshCall(error=failure, delay=0.01), events)

    results = await asyncio.gather(*(coordinator.refresh() for _ in range(3)), return_exceptions=True)

    assert all(r is failure for r in results)
    assert storage.load_tokens() is None
    assert coordinator.state == RefreshState.IDLE


@pytest.mark.anyio
async def test_missing_refresh_token(storage, events):
    call = FakeRefreshCall()
    coordinator = RefreshCoordinator(storage, call, events)

    with pytest.raises(RefreshError):
        await coordinator.refresh()
    assert call.calls == []


@pytest.mark.anyio
async def test_response_without_access_token_fails(storage, events):
    storage.save_tokens("old-access", "old-refresh")
    coordinator = RefreshCoordinator(storage, FakeRefreshCall(result={"refreshToken": "r"}), events)

    with pytest.raises(RefreshError):
        await coordinator.refresh()
    assert storage.load_tokens() is None


@pytest.mark.anyio
async def test_listener_failure_does_not_break_refresh(storage, events):
    storage.save_tokens("old-access", "old-refresh")
    notified = []

    def broken():
        raise RuntimeError("listener bug")

    events.on_credentials_refreshed(broken)
    events.on_credentials_refreshed(lambda: notified.append(1))
    coordinator = RefreshCoordinator(storage, FakeRefreshCall(), events)

    assert await coordinator.refresh() == "new-access"
    assert notified == [1]


@pytest.mark.anyio
async def test_listener_may_issue_new_refresh_without_deadlock(storage, events):
    storage.save_tokens("old-access", "old-refresh")
    call = FakeRefreshCall()
    coordinator = RefreshCoordinator(storage, call, events)
    issued = []
    nested = []

    async def on_refreshed():
        if not issued:
            issued.append(True)
            nested.append(await coordinator.refresh())

    events.on_credentials_refreshed(on_refreshed)

    await asyncio.wait_for(coordinator.refresh(), timeout=1)
    assert nested == ["new-access"]
    assert len(call.calls) == 2


@pytest.mark.anyio
async def test_unsubscribe(storage, events):
    storage.save_tokens("old-access", "old-refresh")
    seen = []
    unsubscribe = events.on_credentials_refreshed(lambda: seen.append(1))
    unsubscribe()

    await RefreshCoordinator(storage, FakeRefreshCall(), events).refresh()
    assert seen == []


@pytest.mark.anyio
async def test_waiters_get_token_before_slow_listener_finishes(storage, events):
    storage.save_tokens("old-access", "old-refresh")
    release = asyncio.Event()
    finished = []

    async def slow_listener():
        await release.wait()
        finished.append(True)

    events.on_credentials_refreshed(slow_listener)
    coordinator = RefreshCoordinator(storage, FakeRefreshCall(delay=0.01), events)

    starter = asyncio.ensure_future(coordinator.refresh())
    await asyncio.sleep(0)
    joined = await asyncio.wait_for(coordinator.refresh(), timeout=1)

    assert joined == "new-access"
    assert finished == []
    assert not starter.done()

    release.set()
    assert await starter == "new-access"
    assert finished == [True]


@pytest.mark.anyio
async def test_unexpected_failure_is_normalized_and_not_sticky(storage, events):
    storage.save_tokens("old-access", "old-refresh")
    call = FakeRefreshCall(error=RuntimeError("decoder bug"))
    coordinator = RefreshCoordinator(storage, call, events)

    with pytest.raises(RefreshError) as first:
        await coordinator.refresh()
    assert "decoder bug" in first.value.error.message
    assert storage.load_tokens() is None
    assert coordinator.state == RefreshState.IDLE

    storage.save_tokens("old-access", "old-refresh")
    call.error = None
    assert await coordinator.refresh() == "new-access"
    assert len(call.calls) == 2


@pytest.mark.anyio
async def test_store_failure_while_clearing_still_fails_waiters(events):
    class BrokenClearStorage(MemoryTokenStorage):
        def _remove(self):
            raise OSError("read-only filesystem")

    storage = BrokenClearStorage()
    storage.save_tokens("old-access", "old-refresh")
    failure = RefreshError(unknown_error("rejected", status_code=401))
    coordinator = RefreshCoordinator(storage, FakeRefreshCall(error=failure), events)

    with pytest.raises(RefreshError) as raised:
        await coordinator.refresh()
    assert raised.value is failure
    assert coordinator.state == RefreshState.IDLE
