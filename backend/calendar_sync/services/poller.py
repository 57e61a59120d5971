"""Caller-side polling of the sync gateway.

``SyncPoller`` owns the token state machine the gateway deliberately does not:

    NO_TOKEN  --full sync-->          HAS_TOKEN
    HAS_TOKEN --incremental sync-->   HAS_TOKEN (new token)
    HAS_TOKEN --SyncExpiredError-->   NO_TOKEN

``PeriodicTask`` is the timer; cancelling it is the only way to stop polling.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from ..domain.models import PRIMARY_CALENDAR_ID, SyncRequest, SyncResult
from ..errors import SyncExpiredError, UpstreamError
from ..usecases.sync_events import SyncGateway

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[List[Dict[str, Any]], SyncResult], None]


class PeriodicTask:
    """Runs a blocking callable every ``interval_seconds`` on the event loop's thread pool."""

    def __init__(self, interval_seconds: float, func: Callable[[], Any], name: str = "periodic-task"):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self.func = func
        self.name = name
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "PeriodicTask":
        if self.running:
            raise RuntimeError(f"{self.name} already running")
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        return self

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.func)
            except Exception:
                logger.exception("%s tick failed", self.name)
            self.ticks += 1
            await asyncio.sleep(self.interval_seconds)

    async def cancel(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


class SyncPoller:
    def __init__(
        self,
        gateway: SyncGateway,
        user_id: str,
        on_changes: ChangeHandler,
        calendar_id: str = PRIMARY_CALENDAR_ID,
        max_results: Optional[int] = None,
        user_context: Optional[Dict[str, Any]] = None,
        sync_token: Optional[str] = None,
    ):
        self.gateway = gateway
        self.user_id = user_id
        self.on_changes = on_changes
        self.calendar_id = calendar_id
        self.max_results = max_results
        self.user_context = user_context or {}
        self.sync_token = sync_token

    def poll_once(self) -> Optional[SyncResult]:
        """Run one sync round, following pages to the end.

        Returns the last page's result, or None when the token had expired; in
        that case the token is cleared and the next round is a full sync.
        """
        page_token: Optional[str] = None
        round_token = self.sync_token
        while True:
            request = SyncRequest(
                user_id=self.user_id,
                calendar_id=self.calendar_id,
                sync_token=round_token,
                max_results=self.max_results,
                page_token=page_token,
            )
            try:
                result = self.gateway.sync(request, self.user_context)
            except SyncExpiredError:
                logger.info("sync token expired for user=%s; next round is a full sync", self.user_id)
                self.sync_token = None
                return None
            if result.changes:
                self.on_changes(result.changes, result)
            if result.has_more_changes and result.next_page_token:
                if result.next_page_token == page_token:
                    raise UpstreamError(
                        f"provider repeated page token {page_token!r}", code="PAGINATION_LOOP"
                    )
                page_token = result.next_page_token
                continue
            self.sync_token = result.next_sync_token
            return result

    def schedule(self, interval_seconds: float) -> PeriodicTask:
        """Start polling on the running event loop; cancel the returned task to stop."""
        return PeriodicTask(interval_seconds, self.poll_once, name=f"sync-poller:{self.user_id}:{self.calendar_id}").start()
