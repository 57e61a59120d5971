from __future__ import annotations
import logging
from typing import Dict, Any, Optional

from ..domain.enums import SyncType
from ..domain.models import (
    DEFAULT_MAX_RESULTS,
    MAX_MAX_RESULTS,
    MIN_MAX_RESULTS,
    PRIMARY_CALENDAR_ID,
    SyncRequest,
    SyncResult,
)
from ..errors import SyncExpiredError, UpstreamError, ValidationAppError
from ..metrics import SYNC_CHANGES, SYNC_COUNT, SYNC_DURATION
from ..ports.calendar_provider import CalendarProvider

logger = logging.getLogger(__name__)


def validate_sync_request(request: SyncRequest) -> int:
    """Check caller input and return the effective maxResults."""
    if not request.user_id:
        raise ValidationAppError("MISSING_USER_ID", "Missing required field: userId")
    max_results = request.max_results
    if max_results is None:
        return DEFAULT_MAX_RESULTS
    if isinstance(max_results, bool) or not isinstance(max_results, int) or not (
        MIN_MAX_RESULTS <= max_results <= MAX_MAX_RESULTS
    ):
        raise ValidationAppError(
            "MAX_RESULTS_OUT_OF_RANGE",
            f"maxResults must be between {MIN_MAX_RESULTS} and {MAX_MAX_RESULTS}",
        )
    return max_results


class SyncGateway:
    """Runs one full or incremental sync round against the calendar provider.

    Holds no state besides the injected provider. Token continuity is the
    caller's job: replay ``next_sync_token`` on the next call, or drop the
    token and resync after a ``SyncExpiredError``.
    """

    def __init__(self, provider: CalendarProvider):
        self.provider = provider

    def sync(self, request: SyncRequest, user_context: Optional[Dict[str, Any]] = None) -> SyncResult:
        max_results = validate_sync_request(request)
        calendar_id = request.calendar_id or PRIMARY_CALENDAR_ID
        sync_type = request.sync_type
        ctx = {"user_id": request.user_id, **(user_context or {})}

        logger.info(
            "starting %s sync for user=%s calendar=%s maxResults=%d",
            sync_type.value, request.user_id, calendar_id, max_results,
        )
        try:
            with SYNC_DURATION.labels(sync_type=sync_type.value).time():
                if sync_type is SyncType.INCREMENTAL:
                    res = self.provider.list_changed_events(
                        ctx, calendar_id, request.sync_token, max_results, page_token=request.page_token
                    )
                else:
                    res = self.provider.list_all_events(
                        ctx, calendar_id, max_results, page_token=request.page_token
                    )
        except SyncExpiredError:
            SYNC_COUNT.labels(sync_type=sync_type.value, outcome="expired").inc()
            logger.warning("sync token expired for user=%s calendar=%s", request.user_id, calendar_id)
            raise
        except UpstreamError as e:
            SYNC_COUNT.labels(sync_type=sync_type.value, outcome="error").inc()
            logger.error("provider failure during %s sync: %s", sync_type.value, e.message)
            raise
        except Exception as e:
            SYNC_COUNT.labels(sync_type=sync_type.value, outcome="error").inc()
            logger.exception("unexpected provider failure during %s sync", sync_type.value)
            raise UpstreamError(str(e) or e.__class__.__name__) from e

        changes = list(res.get("items") or [])
        next_page_token = res.get("nextPageToken")
        SYNC_COUNT.labels(sync_type=sync_type.value, outcome="success").inc()
        SYNC_CHANGES.labels(sync_type=sync_type.value).inc(len(changes))
        return SyncResult(
            changes=changes,
            next_sync_token=res.get("nextSyncToken"),
            has_more_changes=next_page_token is not None,
            next_page_token=next_page_token,
            calendar_id=calendar_id,
            sync_type=sync_type,
        )
