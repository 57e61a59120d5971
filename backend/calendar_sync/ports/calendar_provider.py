from __future__ import annotations
from typing import Protocol, Dict, Any, Optional


class CalendarProvider(Protocol):
    """Abstracts external calendar operations for testability.

    Listing results share one shape:
        { 'items': [...], 'nextSyncToken': Optional[str], 'nextPageToken': Optional[str] }

    Implementations raise ``SyncExpiredError`` when a sync token is rejected and
    ``UpstreamError`` for every other provider failure.
    """

    def list_all_events(
        self,
        user_context: Dict[str, Any],
        calendar_id: str,
        max_results: int,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Full listing of the calendar's current state."""
        ...

    def list_changed_events(
        self,
        user_context: Dict[str, Any],
        calendar_id: str,
        sync_token: str,
        max_results: int,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Changes since ``sync_token`` was issued."""
        ...

    def watch_events(
        self,
        user_context: Dict[str, Any],
        calendar_id: str,
        channel_id: str,
        address: str,
        ttl_seconds: int,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Open a push channel. Returns the provider's channel resource
        ({ 'id', 'resourceId', 'resourceUri', 'expiration' (ms, as string) })."""
        ...

    def stop_channel(self, user_context: Dict[str, Any], channel_id: str, resource_id: str) -> None:
        ...
