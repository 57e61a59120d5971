"""Polling-based calendar sync endpoint.

GET reads userId / calendarId / syncToken / pageToken from the query string; POST
reads the same fields plus maxResults from a JSON body. Both map onto one
SyncGateway.sync() call and return the same envelope.
"""
import logging
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ConfigDict

from ..domain.enums import SyncType
from ..domain.models import PRIMARY_CALENDAR_ID, SyncRequest
from ..errors import BaseAppException, SyncExpiredError, UpstreamError
from ..usecases.sync_events import SyncGateway
from .deps import get_gateway, get_user_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar/sync", tags=["sync"])

SYNC_ENDPOINT_DOC = {
    "endpoint": "/calendar/sync",
    "description": "Calendar Event Sync API - polling-based alternative to webhooks",
    "methods": {
        "GET": {
            "description": "Sync calendar events via query parameters",
            "parameters": {
                "userId": "string (required)",
                "calendarId": 'string (optional, defaults to "primary")',
                "syncToken": "string (optional, for incremental sync)",
                "pageToken": "string (optional, continues a paged sync round)",
            },
        },
        "POST": {
            "description": "Sync calendar events via request body",
            "body": {
                "userId": "string (required)",
                "calendarId": 'string (optional, defaults to "primary")',
                "syncToken": "string (optional, for incremental sync)",
                "maxResults": "number (optional, defaults to 250, max 2500)",
                "pageToken": "string (optional, continues a paged sync round)",
            },
        },
    },
    "usage": {
        "polling": "Call this endpoint periodically (every 1-5 minutes) to check for changes",
        "incremental": "Use the nextSyncToken from previous response for incremental updates",
        "full": "Omit syncToken for full calendar sync (first time or after errors)",
        "expired": "A 410 response means the syncToken is no longer valid; retry without it",
    },
    "benefits": [
        "More reliable than webhooks",
        "No need for public endpoint",
        "Better error handling",
    ],
}


class SyncBody(BaseModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    calendar_id: Optional[str] = Field(default=None, alias="calendarId")
    sync_token: Optional[str] = Field(default=None, alias="syncToken")
    max_results: Optional[int] = Field(default=None, alias="maxResults")
    page_token: Optional[str] = Field(default=None, alias="pageToken")

    model_config = ConfigDict(populate_by_name=True)


def _run_sync(gateway: SyncGateway, request: SyncRequest, user_context: Dict[str, Any]) -> JSONResponse:
    try:
        result = gateway.sync(request, user_context)
    except SyncExpiredError as e:
        return JSONResponse(status_code=e.http_status, content=e.to_body())
    except UpstreamError as e:
        logger.error("Error syncing calendar events: %s", e.message)
        return JSONResponse(
            status_code=e.http_status,
            content={"error": "Failed to sync calendar events", "message": e.message, "code": e.code},
        )
    except BaseAppException as e:
        return JSONResponse(status_code=e.http_status, content=e.to_body())

    message = (
        "Incremental calendar sync completed"
        if result.sync_type is SyncType.INCREMENTAL
        else "Full calendar sync completed"
    )
    return JSONResponse(content={"success": True, "message": message, "data": result.to_payload()})


@router.get("")
def sync_via_query(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    calendar_id: Optional[str] = Query(default=None, alias="calendarId"),
    sync_token: Optional[str] = Query(default=None, alias="syncToken"),
    page_token: Optional[str] = Query(default=None, alias="pageToken"),
    gateway: SyncGateway = Depends(get_gateway),
    user_context: Dict[str, Any] = Depends(get_user_context),
):
    request = SyncRequest(
        user_id=user_id,
        calendar_id=calendar_id or PRIMARY_CALENDAR_ID,
        sync_token=sync_token or None,
        page_token=page_token or None,
    )
    return _run_sync(gateway, request, user_context)


@router.post("")
def sync_via_body(
    body: SyncBody,
    gateway: SyncGateway = Depends(get_gateway),
    user_context: Dict[str, Any] = Depends(get_user_context),
):
    request = SyncRequest(
        user_id=body.user_id,
        calendar_id=body.calendar_id or PRIMARY_CALENDAR_ID,
        sync_token=body.sync_token or None,
        max_results=body.max_results,
        page_token=body.page_token or None,
    )
    return _run_sync(gateway, request, user_context)


@router.options("")
def describe_sync_endpoint():
    return SYNC_ENDPOINT_DOC
