"""Interpretation of inbound push notifications.

Notifications carry no event data, only headers naming the channel and the
resource that changed; callers react by running an incremental sync.
"""
from __future__ import annotations
import hmac
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Any, Mapping, Optional
from urllib.parse import unquote

from ..domain.enums import ResourceState
from ..domain.models import PRIMARY_CALENDAR_ID
from ..errors import ValidationAppError
from .channel_store import ChannelStore

logger = logging.getLogger(__name__)

NOTIFICATION_HEADERS = (
    "x-goog-channel-id",
    "x-goog-resource-id",
    "x-goog-resource-state",
    "x-goog-resource-uri",
    "x-goog-channel-expiration",
    "x-goog-channel-token",
)

_CALENDAR_IN_URI = re.compile(r"calendars/([^/]+)/events")


class ChannelTokenMismatch(Exception):
    pass


def calendar_id_from_uri(resource_uri: Optional[str]) -> str:
    match = _CALENDAR_IN_URI.search(resource_uri or "")
    return unquote(match.group(1)) if match else PRIMARY_CALENDAR_ID


@dataclass
class Notification:
    channel_id: str
    resource_id: str
    resource_state: str
    calendar_id: str
    user_id: Optional[str]
    timestamp: datetime

    @property
    def change_detected(self) -> bool:
        return self.resource_state in (ResourceState.UPDATE.value, ResourceState.SYNC.value)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "channelId": self.channel_id,
            "resourceId": self.resource_id,
            "resourceState": self.resource_state,
            "calendarId": self.calendar_id,
            "userId": self.user_id,
            "timestamp": self.timestamp.isoformat(),
            "changeDetected": self.change_detected,
        }


class NotificationService:
    def __init__(self, channel_store: ChannelStore):
        self.channel_store = channel_store

    @staticmethod
    def extract_headers(headers: Mapping[str, str]) -> Dict[str, str]:
        return {name: headers.get(name) or "" for name in NOTIFICATION_HEADERS}

    def process(self, headers: Mapping[str, str]) -> Notification:
        h = self.extract_headers(headers)
        if not h["x-goog-channel-id"] or not h["x-goog-resource-id"]:
            raise ValidationAppError(
                "INVALID_NOTIFICATION", "Invalid webhook notification - missing required headers"
            )

        channel = self.channel_store.get(h["x-goog-channel-id"])
        if channel is not None and channel.token:
            if not hmac.compare_digest(channel.token, h["x-goog-channel-token"]):
                raise ChannelTokenMismatch(f"channel token mismatch for {channel.id}")

        calendar_id = calendar_id_from_uri(h["x-goog-resource-uri"])
        if channel is not None and not h["x-goog-resource-uri"]:
            calendar_id = channel.calendar_id

        notification = Notification(
            channel_id=h["x-goog-channel-id"],
            resource_id=h["x-goog-resource-id"],
            resource_state=h["x-goog-resource-state"],
            calendar_id=calendar_id,
            user_id=channel.user_id if channel else None,
            timestamp=datetime.now(timezone.utc),
        )
        if channel is None:
            logger.info("notification for unregistered channel %s", notification.channel_id)
        if notification.resource_state == ResourceState.UPDATE.value:
            logger.info(
                "calendar update notification channel=%s calendar=%s user=%s",
                notification.channel_id, notification.calendar_id, notification.user_id,
            )
        elif notification.resource_state not in {s.value for s in ResourceState}:
            logger.warning("unknown resource state %r", notification.resource_state)
        return notification
