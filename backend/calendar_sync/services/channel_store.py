"""Registry of active push-notification channels.

Maps channel id -> WatchChannel so inbound notifications can be attributed to
a user and calendar. Entries live until the channel's own expiration.
"""
from __future__ import annotations
from typing import Protocol, Optional, Dict, List, Callable
import json
import logging
import time

from ..domain.models import WatchChannel

logger = logging.getLogger(__name__)


class ChannelStore(Protocol):
    backend: str

    def put(self, channel: WatchChannel) -> None: ...
    def get(self, channel_id: str) -> Optional[WatchChannel]: ...
    def pop(self, channel_id: str) -> Optional[WatchChannel]: ...
    def prune(self) -> None: ...
    def size(self) -> int: ...
    def close(self) -> None: ...


class MemoryChannelStore:
    backend = "memory"

    def __init__(self, max_entries: int = 500, time_provider: Optional[Callable[[], float]] = None):
        self._data: Dict[str, WatchChannel] = {}
        self.max_entries = max_entries
        self.time_provider = time_provider or time.time

    def put(self, channel: WatchChannel) -> None:
        self._data[channel.id] = channel
        self.prune()

    def get(self, channel_id: str) -> Optional[WatchChannel]:
        self.prune()
        return self._data.get(channel_id)

    def pop(self, channel_id: str) -> Optional[WatchChannel]:
        self.prune()
        return self._data.pop(channel_id, None)

    def prune(self) -> None:
        now_ts = self.time_provider()
        expired = [k for k, v in self._data.items() if v.expiration <= now_ts]
        for k in expired:
            self._data.pop(k, None)
        # Enforce cap, dropping channels closest to expiry first
        while len(self._data) > self.max_entries:
            oldest_key = min(self._data.items(), key=lambda kv: kv[1].expiration)[0]
            self._data.pop(oldest_key, None)

    def size(self) -> int:
        return len(self._data)

    def close(self) -> None:
        self._data.clear()


class RedisChannelStore:
    """Redis-backed implementation.

    Key layout:
      cs:channel:<id> -> JSON WatchChannel record (TTL = remaining channel lifetime)
      cs:channels (sorted set) -> member=id, score=expiration timestamp

    prune() removes index members past expiry or whose key already expired,
    then trims the index to max_entries.
    """
    backend = "redis"
    CHANNEL_KEY_PREFIX = "cs:channel:"
    CHANNEL_INDEX_KEY = "cs:channels"

    def __init__(self, redis_client, max_entries: int = 500, time_provider: Optional[Callable[[], float]] = None):
        self.redis = redis_client
        self.max_entries = max_entries
        self.time_provider = time_provider or time.time

    @staticmethod
    def _decode(value) -> str:
        return value.decode() if isinstance(value, bytes) else value

    def put(self, channel: WatchChannel) -> None:
        ttl = max(1, int(channel.expiration - self.time_provider()))
        pipe = self.redis.pipeline()
        pipe.set(self.CHANNEL_KEY_PREFIX + channel.id, json.dumps(channel.to_record()), ex=ttl)
        pipe.zadd(self.CHANNEL_INDEX_KEY, {channel.id: channel.expiration})
        pipe.execute()
        self.prune()

    def get(self, channel_id: str) -> Optional[WatchChannel]:
        raw = self.redis.get(self.CHANNEL_KEY_PREFIX + channel_id)
        if raw is None:
            return None
        channel = WatchChannel.from_record(json.loads(self._decode(raw)))
        if channel.expiration <= self.time_provider():
            return None
        return channel

    def pop(self, channel_id: str) -> Optional[WatchChannel]:
        key = self.CHANNEL_KEY_PREFIX + channel_id
        pipe = self.redis.pipeline()
        pipe.get(key)
        pipe.delete(key)
        pipe.zrem(self.CHANNEL_INDEX_KEY, channel_id)
        raw, *_ = pipe.execute()
        if raw is None:
            return None
        return WatchChannel.from_record(json.loads(self._decode(raw)))

    def prune(self) -> None:
        self.redis.zremrangebyscore(self.CHANNEL_INDEX_KEY, "-inf", self.time_provider())
        members: List[bytes] = self.redis.zrange(self.CHANNEL_INDEX_KEY, 0, -1) or []
        dangling = [
            self._decode(m) for m in members
            if not self.redis.exists(self.CHANNEL_KEY_PREFIX + self._decode(m))
        ]
        if dangling:
            self.redis.zrem(self.CHANNEL_INDEX_KEY, *dangling)
        size = self.redis.zcard(self.CHANNEL_INDEX_KEY)
        if size and size > self.max_entries:
            surplus = size - self.max_entries
            oldest = self.redis.zrange(self.CHANNEL_INDEX_KEY, 0, surplus - 1) or []
            pipe = self.redis.pipeline()
            for member in oldest:
                channel_id = self._decode(member)
                pipe.delete(self.CHANNEL_KEY_PREFIX + channel_id)
                pipe.zrem(self.CHANNEL_INDEX_KEY, channel_id)
            pipe.execute()

    def size(self) -> int:
        return int(self.redis.zcard(self.CHANNEL_INDEX_KEY) or 0)

    def close(self) -> None:
        self.redis.close()


def build_channel_store(backend: str, redis_url: str, max_entries: int) -> ChannelStore:
    """Select the store backend; falls back to memory when Redis is unreachable."""
    if backend == "redis":
        import redis

        client = redis.from_url(redis_url)
        try:
            client.ping()
        except redis.RedisError as e:
            logger.warning("redis channel store unavailable at %s (%s); using memory store", redis_url, e)
            client.close()
            return MemoryChannelStore(max_entries=max_entries)
        return RedisChannelStore(client, max_entries=max_entries)
    return MemoryChannelStore(max_entries=max_entries)
