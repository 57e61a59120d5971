import asyncio

import pytest

from calendar_sync.errors import UpstreamError
from calendar_sync.services.poller import PeriodicTask, SyncPoller
from calendar_sync.usecases.sync_events import SyncGateway


def collecting_poller(fake_provider, **kwargs):
    seen = []
    poller = SyncPoller(SyncGateway(fake_provider), "u1", lambda changes, result: seen.extend(changes), **kwargs)
    return poller, seen


def test_first_round_is_full_then_incremental(fake_provider):
    fake_provider.pages = [
        {"items": [{"id": "e1"}], "nextSyncToken": "tok1"},
        {"items": [{"id": "e2"}], "nextSyncToken": "tok2"},
    ]
    poller, seen = collecting_poller(fake_provider)

    poller.poll_once()
    assert poller.sync_token == "tok1"
    poller.poll_once()

    assert [c["op"] for c in fake_provider.calls] == ["full", "incremental"]
    assert fake_provider.calls[1]["sync_token"] == "tok1"
    assert poller.sync_token == "tok2"
    assert seen == [{"id": "e1"}, {"id": "e2"}]


def test_pages_followed_within_one_round(fake_provider):
    fake_provider.pages = [
        {"items": [{"id": "e1"}], "nextPageToken": "p2"},
        {"items": [{"id": "e2"}], "nextSyncToken": "tok1"},
    ]
    poller, seen = collecting_poller(fake_provider, max_results=1)

    result = poller.poll_once()

    assert result.next_sync_token == "tok1"
    assert [c["page_token"] for c in fake_provider.calls] == [None, "p2"]
    assert all(c["op"] == "full" for c in fake_provider.calls)
    assert seen == [{"id": "e1"}, {"id": "e2"}]


def test_expired_token_resets_to_full_sync_next_round(fake_provider, expired):
    fake_provider.pages = [expired, {"items": [], "nextSyncToken": "fresh"}]
    poller, _ = collecting_poller(fake_provider, sync_token="stale")

    assert poller.poll_once() is None
    assert poller.sync_token is None
    assert len(fake_provider.calls) == 1

    poller.poll_once()
    assert fake_provider.calls[1]["op"] == "full"
    assert poller.sync_token == "fresh"


def test_repeated_page_token_stops_the_round(fake_provider):
    fake_provider.pages = [
        {"items": [], "nextPageToken": "p2"},
        {"items": [], "nextPageToken": "p2"},
        {"items": [], "nextSyncToken": "never"},
    ]
    poller, _ = collecting_poller(fake_provider, sync_token="tok1")

    with pytest.raises(UpstreamError):
        poller.poll_once()

    assert len(fake_provider.calls) == 2
    assert poller.sync_token == "tok1"


def test_missing_next_token_drops_back_to_no_token(fake_provider):
    fake_provider.pages = [{"items": [], "nextSyncToken": None}]
    poller, _ = collecting_poller(fake_provider, sync_token="tok1")
    poller.poll_once()
    assert poller.sync_token is None


def test_periodic_task_runs_until_cancelled():
    calls = []

    async def scenario():
        task = PeriodicTask(0.01, lambda: calls.append(1)).start()
        assert task.running
        await asyncio.sleep(0.1)
        await task.cancel()
        assert not task.running
        count = len(calls)
        await asyncio.sleep(0.05)
        return count

    count = asyncio.run(scenario())
    assert count >= 2
    assert len(calls) <= count + 1


def test_periodic_task_survives_failing_tick():
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("transient")

    async def scenario():
        task = PeriodicTask(0.01, flaky).start()
        await asyncio.sleep(0.1)
        await task.cancel()

    asyncio.run(scenario())
    assert len(attempts) >= 2


def test_periodic_task_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        PeriodicTask(0, lambda: None)


def test_schedule_polls_on_event_loop(fake_provider):
    poller, _ = collecting_poller(fake_provider)

    async def scenario():
        task = poller.schedule(0.01)
        await asyncio.sleep(0.1)
        await task.cancel()

    asyncio.run(scenario())
    assert fake_provider.calls[0]["op"] == "full"
    assert len(fake_provider.calls) >= 2
    assert all(c["op"] == "incremental" for c in fake_provider.calls[1:])
