from typing import Dict, Any, Optional
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field, ConfigDict

from ..domain.enums import ResourceState
from ..domain.models import PRIMARY_CALENDAR_ID
from ..errors import BaseAppException, UpstreamError, ValidationAppError
from ..metrics import WEBHOOK_NOTIFICATIONS
from ..services.notification_service import NotificationService
from ..usecases.manage_channels import MAX_CHANNEL_TTL_SECONDS, ManageChannelsUseCase, WatchRequest
from .deps import get_channels_usecase, get_notification_service, get_user_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])

_KNOWN_RESOURCE_STATES = {s.value for s in ResourceState}


def resource_state_label(value: Optional[str]) -> str:
    """Metric label for a notification's resource state; unknown values share one series."""
    return value if value in _KNOWN_RESOURCE_STATES else "unknown"


class TriggerCreate(BaseModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    calendar_id: Optional[str] = Field(default=None, alias="calendarId")
    webhook_url: Optional[str] = Field(default=None, alias="webhookUrl")
    ttl: int = MAX_CHANNEL_TTL_SECONDS

    model_config = ConfigDict(populate_by_name=True)


class TriggerDelete(BaseModel):
    channel_id: Optional[str] = Field(default=None, alias="channelId")
    resource_id: Optional[str] = Field(default=None, alias="resourceId")

    model_config = ConfigDict(populate_by_name=True)


@router.post("/calendar-events")
def receive_calendar_notification(
    request: Request,
    notifications: NotificationService = Depends(get_notification_service),
):
    """Push notification receiver.

    Internal failures still answer 200 so the provider does not keep
    redelivering; only malformed notifications get a 400.
    """
    resource_state = resource_state_label(request.headers.get("x-goog-resource-state"))
    try:
        notification = notifications.process(request.headers)
    except ValidationAppError as e:
        WEBHOOK_NOTIFICATIONS.labels(resource_state=resource_state, outcome="rejected").inc()
        return JSONResponse(status_code=e.http_status, content={"error": e.message})
    except Exception as e:
        WEBHOOK_NOTIFICATIONS.labels(resource_state=resource_state, outcome="error").inc()
        logger.exception("Error processing calendar webhook")
        return JSONResponse(
            status_code=200,
            content={
                "success": False,
                "message": "Error processing webhook notification",
                "error": str(e) or e.__class__.__name__,
            },
        )

    WEBHOOK_NOTIFICATIONS.labels(resource_state=resource_state, outcome="processed").inc()
    return {
        "success": True,
        "message": "Webhook notification processed successfully",
        "channelId": notification.channel_id,
        "resourceState": notification.resource_state,
        "data": notification.to_payload(),
    }


@router.get("/calendar-events")
def verify_calendar_webhook(
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
):
    if mode == "subscribe" and challenge:
        return PlainTextResponse(challenge)
    return {
        "endpoint": "/webhook/calendar-events",
        "purpose": "Google Calendar event change notifications",
        "methods": ["POST", "GET"],
        "status": "active",
    }


@router.post("/calendar-trigger")
def create_calendar_trigger(
    body: TriggerCreate,
    channels: ManageChannelsUseCase = Depends(get_channels_usecase),
    user_context: Dict[str, Any] = Depends(get_user_context),
):
    request = WatchRequest(
        user_id=body.user_id,
        webhook_url=body.webhook_url,
        calendar_id=body.calendar_id or PRIMARY_CALENDAR_ID,
        ttl=body.ttl,
    )
    try:
        channel = channels.start(request, user_context)
    except UpstreamError as e:
        logger.error("Error setting up calendar webhook: %s", e.message)
        return JSONResponse(
            status_code=e.http_status,
            content={"error": "Failed to setup webhook trigger", "message": e.message},
        )
    except BaseAppException as e:
        return JSONResponse(status_code=e.http_status, content={"error": e.message})
    return {
        "success": True,
        "message": "Calendar event change webhook configured successfully",
        "data": {"channel": channel.to_payload()},
    }


@router.delete("/calendar-trigger")
def delete_calendar_trigger(
    body: TriggerDelete,
    channels: ManageChannelsUseCase = Depends(get_channels_usecase),
    user_context: Dict[str, Any] = Depends(get_user_context),
):
    try:
        channels.stop(body.channel_id, body.resource_id, user_context)
    except UpstreamError as e:
        logger.error("Error stopping calendar webhook: %s", e.message)
        return JSONResponse(
            status_code=e.http_status,
            content={"error": "Failed to stop webhook trigger", "message": e.message},
        )
    except BaseAppException as e:
        return JSONResponse(status_code=e.http_status, content={"error": e.message})
    return {
        "success": True,
        "message": "Calendar event change webhook stopped successfully",
        "data": {"channelId": body.channel_id, "resourceId": body.resource_id},
    }
