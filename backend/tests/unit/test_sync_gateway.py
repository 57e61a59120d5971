from __future__ import annotations
from unittest.mock import Mock

import pytest

from calendar_sync.domain.enums import SyncType
from calendar_sync.domain.models import SyncRequest
from calendar_sync.errors import SyncExpiredError, UpstreamError, ValidationAppError
from calendar_sync.usecases.sync_events import SyncGateway


@pytest.mark.parametrize("max_results", [0, -1, 2501, 100000])
def test_out_of_range_max_results_rejected_before_provider_call(max_results):
    provider = Mock()
    gateway = SyncGateway(provider)

    with pytest.raises(ValidationAppError) as exc:
        gateway.sync(SyncRequest(user_id="u1", max_results=max_results))

    assert exc.value.code == "MAX_RESULTS_OUT_OF_RANGE"
    assert exc.value.message == "maxResults must be between 1 and 2500"
    assert provider.mock_calls == []


@pytest.mark.parametrize("user_id", [None, ""])
def test_missing_user_id_rejected(user_id):
    provider = Mock()
    with pytest.raises(ValidationAppError) as exc:
        SyncGateway(provider).sync(SyncRequest(user_id=user_id))
    assert exc.value.message == "Missing required field: userId"
    assert provider.mock_calls == []


@pytest.mark.parametrize("max_results", [1, 2500])
def test_boundary_max_results_accepted(fake_provider, max_results):
    SyncGateway(fake_provider).sync(SyncRequest(user_id="u1", max_results=max_results))
    assert fake_provider.calls[0]["max_results"] == max_results


def test_defaults_applied_on_full_sync(fake_provider):
    SyncGateway(fake_provider).sync(SyncRequest(user_id="u1"))

    call = fake_provider.calls[0]
    assert call["op"] == "full"
    assert call["calendar_id"] == "primary"
    assert call["max_results"] == 250
    assert call["user_context"]["user_id"] == "u1"


def test_token_selects_incremental_and_is_passed_verbatim(fake_provider):
    opaque = "CPDAlvWDx70CEPDAlvWDx70CGAU= /+?&ünïcode"
    result = SyncGateway(fake_provider).sync(SyncRequest(user_id="u1", sync_token=opaque))

    assert [c["op"] for c in fake_provider.calls] == ["incremental"]
    assert fake_provider.calls[0]["sync_token"] == opaque
    assert result.sync_type is SyncType.INCREMENTAL


def test_full_sync_result_shape(fake_provider):
    fake_provider.pages = [{"items": [], "nextSyncToken": "tok1", "nextPageToken": None}]
    result = SyncGateway(fake_provider).sync(SyncRequest(user_id="u1"))

    assert result.sync_type is SyncType.FULL
    assert result.next_sync_token == "tok1"
    assert result.has_more_changes is False
    assert result.changes == []
    assert result.calendar_id == "primary"


def test_changes_are_returned_in_provider_order(fake_provider):
    items = [{"id": "e2", "changeType": "updated"}, {"id": "e1", "changeType": "created"}, {"id": "e2", "changeType": "deleted"}]
    fake_provider.pages = [{"items": items, "nextSyncToken": "tok2"}]

    result = SyncGateway(fake_provider).sync(SyncRequest(user_id="u1", sync_token="tok1"))

    assert result.changes == items


def test_next_page_token_sets_has_more_changes(fake_provider):
    fake_provider.pages = [{"items": [{"id": "e1"}], "nextSyncToken": None, "nextPageToken": "p2"}]
    result = SyncGateway(fake_provider).sync(SyncRequest(user_id="u1", max_results=1))

    assert result.has_more_changes is True
    assert result.next_page_token == "p2"
    assert result.next_sync_token is None


def test_page_token_forwarded(fake_provider):
    SyncGateway(fake_provider).sync(SyncRequest(user_id="u1", sync_token="t", page_token="p2"))
    assert fake_provider.calls[0]["page_token"] == "p2"


def test_expired_token_surfaces_without_retry(fake_provider, expired):
    fake_provider.pages = [expired]

    with pytest.raises(SyncExpiredError):
        SyncGateway(fake_provider).sync(SyncRequest(user_id="u1", sync_token="expired"))

    assert len(fake_provider.calls) == 1
    assert fake_provider.calls[0]["op"] == "incremental"


def test_upstream_error_passes_through_single_attempt(fake_provider, upstream_down):
    fake_provider.pages = [upstream_down]

    with pytest.raises(UpstreamError) as exc:
        SyncGateway(fake_provider).sync(SyncRequest(user_id="u1"))

    assert exc.value.message == "503 Backend Error"
    assert len(fake_provider.calls) == 1


def test_unexpected_provider_exception_wrapped_with_message(fake_provider):
    fake_provider.pages = [TimeoutError("read timed out")]

    with pytest.raises(UpstreamError) as exc:
        SyncGateway(fake_provider).sync(SyncRequest(user_id="u1"))

    assert exc.value.message == "read timed out"
    assert isinstance(exc.value.__cause__, TimeoutError)


def test_repeated_calls_return_same_shape(fake_provider):
    fake_provider.pages = [
        {"items": [{"id": "a"}], "nextSyncToken": "t1"},
        {"items": [], "nextSyncToken": "t2"},
    ]
    gateway = SyncGateway(fake_provider)
    first = gateway.sync(SyncRequest(user_id="u1")).to_payload()
    second = gateway.sync(SyncRequest(user_id="u1")).to_payload()

    assert first.keys() == second.keys()
    assert {k: type(v) for k, v in first.items()} == {k: type(v) for k, v in second.items()}
