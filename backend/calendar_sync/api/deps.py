"""FastAPI dependencies resolving the per-process services placed on app.state."""
from typing import Dict, Any

from fastapi import Header, Request

from ..services.notification_service import NotificationService
from ..usecases.manage_channels import ManageChannelsUseCase
from ..usecases.sync_events import SyncGateway


def get_gateway(request: Request) -> SyncGateway:
    return request.app.state.gateway


def get_channels_usecase(request: Request) -> ManageChannelsUseCase:
    return request.app.state.channels


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notifications


def get_user_context(authorization: str | None = Header(None)) -> Dict[str, Any]:
    """Provider credentials supplied by the caller's session, if any."""
    if not authorization or not authorization.lower().startswith("bearer "):
        return {}
    return {"access_token": authorization.split(None, 1)[1].strip()}
