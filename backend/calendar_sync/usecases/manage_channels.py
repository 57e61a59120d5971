from __future__ import annotations
import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Dict, Any, Optional
from urllib.parse import urlparse

from ..domain.models import PRIMARY_CALENDAR_ID, WatchChannel
from ..errors import NotFoundError, ValidationAppError
from ..metrics import CHANNEL_STORE_SIZE
from ..ports.calendar_provider import CalendarProvider
from ..services.channel_store import ChannelStore

logger = logging.getLogger(__name__)

MAX_CHANNEL_TTL_SECONDS = 604800  # 7 days, the provider's ceiling


@dataclass
class WatchRequest:
    user_id: Optional[str]
    webhook_url: Optional[str]
    calendar_id: str = PRIMARY_CALENDAR_ID
    ttl: int = MAX_CHANNEL_TTL_SECONDS


def _is_absolute_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


class ManageChannelsUseCase:
    def __init__(
        self,
        provider: CalendarProvider,
        channel_store: ChannelStore,
        time_provider=time.time,
    ):
        self.provider = provider
        self.channel_store = channel_store
        self.time_provider = time_provider

    def start(self, request: WatchRequest, user_context: Optional[Dict[str, Any]] = None) -> WatchChannel:
        if not request.user_id or not request.webhook_url:
            raise ValidationAppError(
                "MISSING_FIELDS", "Missing required fields: userId and webhookUrl are required"
            )
        if not _is_absolute_http_url(request.webhook_url):
            raise ValidationAppError("INVALID_WEBHOOK_URL", "Invalid webhook URL format")
        if isinstance(request.ttl, bool) or not isinstance(request.ttl, int) or not (
            1 <= request.ttl <= MAX_CHANNEL_TTL_SECONDS
        ):
            raise ValidationAppError(
                "TTL_OUT_OF_RANGE", "TTL must be between 1 and 604800 seconds (7 days)"
            )

        calendar_id = request.calendar_id or PRIMARY_CALENDAR_ID
        channel_id = str(uuid.uuid4())
        channel_token = secrets.token_urlsafe(24)
        ctx = {"user_id": request.user_id, **(user_context or {})}
        res = self.provider.watch_events(
            ctx, calendar_id, channel_id, request.webhook_url, request.ttl, token=channel_token
        )

        # Provider reports expiration in epoch milliseconds
        expiration_ms = res.get("expiration")
        if expiration_ms:
            expiration = int(expiration_ms) / 1000.0
        else:
            expiration = self.time_provider() + request.ttl
        channel = WatchChannel(
            id=res.get("id") or channel_id,
            user_id=request.user_id,
            calendar_id=calendar_id,
            resource_id=res.get("resourceId"),
            resource_uri=res.get("resourceUri"),
            address=request.webhook_url,
            expiration=expiration,
            token=channel_token,
        )
        try:
            self.channel_store.put(channel)
        except Exception:
            logger.exception("could not record watch channel %s; closing it upstream", channel.id)
            try:
                self.provider.stop_channel(ctx, channel.id, channel.resource_id)
            except Exception:
                logger.exception("could not close unrecorded watch channel %s", channel.id)
            raise
        CHANNEL_STORE_SIZE.labels(backend=self.channel_store.backend).set(self.channel_store.size())
        logger.info("opened watch channel %s for user=%s calendar=%s", channel.id, request.user_id, calendar_id)
        return channel

    def stop(
        self,
        channel_id: Optional[str],
        resource_id: Optional[str],
        user_context: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not channel_id or not resource_id:
            raise ValidationAppError(
                "MISSING_FIELDS", "Missing required fields: channelId and resourceId are required"
            )
        known = self.channel_store.get(channel_id)
        if known is not None and known.resource_id and known.resource_id != resource_id:
            raise NotFoundError("CHANNEL_NOT_FOUND", "No channel with that id and resourceId")
        ctx = dict(user_context or {})
        if known is not None:
            ctx.setdefault("user_id", known.user_id)
        self.provider.stop_channel(ctx, channel_id, resource_id)
        self.channel_store.pop(channel_id)
        CHANNEL_STORE_SIZE.labels(backend=self.channel_store.backend).set(self.channel_store.size())
        logger.info("stopped watch channel %s", channel_id)
