from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .enums import SyncType

PRIMARY_CALENDAR_ID = "primary"
DEFAULT_MAX_RESULTS = 250
MIN_MAX_RESULTS = 1
MAX_MAX_RESULTS = 2500


@dataclass
class SyncRequest:
    """One sync round. Built per call and discarded afterwards."""

    user_id: Optional[str]
    calendar_id: str = PRIMARY_CALENDAR_ID
    sync_token: Optional[str] = None
    max_results: Optional[int] = None
    page_token: Optional[str] = None

    @property
    def sync_type(self) -> SyncType:
        return SyncType.INCREMENTAL if self.sync_token else SyncType.FULL


@dataclass
class SyncResult:
    changes: List[Dict[str, Any]]
    next_sync_token: Optional[str]
    has_more_changes: bool
    calendar_id: str
    sync_type: SyncType
    next_page_token: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "changes": self.changes,
            "nextSyncToken": self.next_sync_token,
            "hasMoreChanges": self.has_more_changes,
            "nextPageToken": self.next_page_token,
            "calendarId": self.calendar_id,
            "syncType": self.sync_type.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class WatchChannel:
    """A push-notification channel registered with the provider."""

    id: str
    user_id: str
    calendar_id: str
    resource_id: Optional[str]
    address: str
    expiration: float  # epoch seconds
    token: Optional[str] = None
    resource_uri: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "resourceId": self.resource_id,
            "resourceUri": self.resource_uri,
            "calendarId": self.calendar_id,
            "address": self.address,
            "token": self.token,
            "expiration": datetime.fromtimestamp(self.expiration, tz=timezone.utc).isoformat(),
            "kind": "api#channel",
            "type": "web_hook",
        }

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "calendar_id": self.calendar_id,
            "resource_id": self.resource_id,
            "address": self.address,
            "expiration": self.expiration,
            "token": self.token,
            "resource_uri": self.resource_uri,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "WatchChannel":
        return cls(**record)
