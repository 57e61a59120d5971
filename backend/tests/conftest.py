import os, sys
from typing import Dict, Any, List, Optional

import pytest
from fastapi.testclient import TestClient

# Ensure package import path (backend/ first on sys.path)
backend_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if backend_root not in sys.path:
    sys.path.insert(0, backend_root)

from calendar_sync.config import Settings  # noqa: E402
from calendar_sync.errors import SyncExpiredError, UpstreamError  # noqa: E402
from calendar_sync.main import create_app  # noqa: E402
from calendar_sync.ports.calendar_provider import CalendarProvider  # noqa: E402
from calendar_sync.services.channel_store import MemoryChannelStore  # noqa: E402


class FakeProvider(CalendarProvider):
    """Deterministic provider: replays queued pages and records every call."""

    def __init__(self, pages: Optional[List[Any]] = None):
        self.pages: List[Any] = list(pages or [])
        self.calls: List[Dict[str, Any]] = []
        self.watch_calls: List[Dict[str, Any]] = []
        self.stop_calls: List[Dict[str, Any]] = []
        self.watch_response: Dict[str, Any] = {"resourceId": "res-1", "resourceUri": "https://www.googleapis.com/calendar/v3/calendars/primary/events"}
        self.watch_error: Optional[Exception] = None

    def _next(self) -> Dict[str, Any]:
        page = self.pages.pop(0) if self.pages else {"items": [], "nextSyncToken": "tok-default", "nextPageToken": None}
        if isinstance(page, Exception):
            raise page
        return page

    def list_all_events(self, user_context, calendar_id, max_results, page_token=None):
        self.calls.append({"op": "full", "user_context": user_context, "calendar_id": calendar_id,
                           "max_results": max_results, "page_token": page_token})
        return self._next()

    def list_changed_events(self, user_context, calendar_id, sync_token, max_results, page_token=None):
        self.calls.append({"op": "incremental", "user_context": user_context, "calendar_id": calendar_id,
                           "sync_token": sync_token, "max_results": max_results, "page_token": page_token})
        return self._next()

    def watch_events(self, user_context, calendar_id, channel_id, address, ttl_seconds, token=None):
        self.watch_calls.append({"user_context": user_context, "calendar_id": calendar_id, "channel_id": channel_id,
                                 "address": address, "ttl_seconds": ttl_seconds, "token": token})
        if self.watch_error:
            raise self.watch_error
        return {"id": channel_id, **self.watch_response}

    def stop_channel(self, user_context, channel_id, resource_id):
        self.stop_calls.append({"user_context": user_context, "channel_id": channel_id, "resource_id": resource_id})


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def channel_store():
    return MemoryChannelStore()


@pytest.fixture(scope="function")
def client(fake_provider, channel_store):
    app = create_app(settings=Settings(), provider=fake_provider, channel_store=channel_store)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def expired():
    return SyncExpiredError("Sync token is no longer valid, a full sync is required.")


@pytest.fixture
def upstream_down():
    return UpstreamError("503 Backend Error", code="GOOGLE_API_ERROR", provider_status=503)
