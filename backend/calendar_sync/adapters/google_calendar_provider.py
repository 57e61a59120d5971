"""Google Calendar implementation of the CalendarProvider port."""
from __future__ import annotations
import logging
from typing import Dict, Any, Optional, Callable

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..domain.enums import ChangeType
from ..errors import SyncExpiredError, UpstreamError
from ..ports.calendar_provider import CalendarProvider

logger = logging.getLogger(__name__)


def annotate_change(item: Dict[str, Any]) -> Dict[str, Any]:
    """Add a ``changeType`` label to a raw Google event resource."""
    if item.get("status") == "cancelled":
        change_type = ChangeType.DELETED
    elif item.get("created") and item.get("created") == item.get("updated"):
        change_type = ChangeType.CREATED
    else:
        change_type = ChangeType.UPDATED
    return {**item, "changeType": change_type.value}


class GoogleCalendarProvider(CalendarProvider):
    def __init__(
        self,
        timeout_seconds: float = 30.0,
        service_factory: Optional[Callable[[Credentials], Any]] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self._service_factory = service_factory or self._build_service

    def _build_service(self, credentials: Credentials):
        http = AuthorizedHttp(credentials, http=httplib2.Http(timeout=self.timeout_seconds))
        return build("calendar", "v3", http=http, cache_discovery=False)

    def _service(self, user_context: Dict[str, Any]):
        token = user_context.get("access_token")
        if not token:
            raise UpstreamError(
                f"no calendar credentials for user {user_context.get('user_id')!r}",
                code="PROVIDER_AUTH_MISSING",
                provider_status=401,
            )
        return self._service_factory(Credentials(token=token))

    def list_all_events(
        self,
        user_context: Dict[str, Any],
        calendar_id: str,
        max_results: int,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "calendarId": calendar_id,
            "maxResults": max_results,
            "singleEvents": True,
            "showDeleted": False,
        }
        if page_token:
            params["pageToken"] = page_token
        return self._list(user_context, params)

    def list_changed_events(
        self,
        user_context: Dict[str, Any],
        calendar_id: str,
        sync_token: str,
        max_results: int,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        # syncToken may not be combined with timeMin/orderBy/q; deleted entries
        # are always included in incremental responses.
        params: Dict[str, Any] = {
            "calendarId": calendar_id,
            "syncToken": sync_token,
            "maxResults": max_results,
            "singleEvents": True,
        }
        if page_token:
            params["pageToken"] = page_token
        return self._list(user_context, params)

    def _list(self, user_context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
        service = self._service(user_context)
        try:
            res = service.events().list(**params).execute()
        except HttpError as e:
            if e.resp.status == 410:
                raise SyncExpiredError(f"Google rejected sync token for calendar {params['calendarId']!r}") from e
            raise UpstreamError(f"Google API error: {e}", code="GOOGLE_API_ERROR", provider_status=e.resp.status) from e
        except (TimeoutError, httplib2.HttpLib2Error, OSError) as e:
            raise UpstreamError(f"Google API unreachable: {e}", code="GOOGLE_API_UNAVAILABLE") from e
        return {
            "items": [annotate_change(item) for item in res.get("items", [])],
            "nextSyncToken": res.get("nextSyncToken"),
            "nextPageToken": res.get("nextPageToken"),
        }

    def watch_events(
        self,
        user_context: Dict[str, Any],
        calendar_id: str,
        channel_id: str,
        address: str,
        ttl_seconds: int,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "id": channel_id,
            "type": "web_hook",
            "address": address,
            "params": {"ttl": str(ttl_seconds)},
        }
        if token:
            body["token"] = token
        service = self._service(user_context)
        try:
            return service.events().watch(calendarId=calendar_id, body=body).execute()
        except HttpError as e:
            raise UpstreamError(f"Failed to create watch channel: {e}", code="GOOGLE_API_ERROR", provider_status=e.resp.status) from e
        except (TimeoutError, httplib2.HttpLib2Error, OSError) as e:
            raise UpstreamError(f"Google API unreachable: {e}", code="GOOGLE_API_UNAVAILABLE") from e

    def stop_channel(self, user_context: Dict[str, Any], channel_id: str, resource_id: str) -> None:
        service = self._service(user_context)
        try:
            service.channels().stop(body={"id": channel_id, "resourceId": resource_id}).execute()
        except HttpError as e:
            if e.resp.status == 404:
                # Channel already expired upstream
                logger.info("watch channel %s already gone upstream", channel_id)
                return
            raise UpstreamError(f"Failed to stop watch channel: {e}", code="GOOGLE_API_ERROR", provider_status=e.resp.status) from e
        except (TimeoutError, httplib2.HttpLib2Error, OSError) as e:
            raise UpstreamError(f"Google API unreachable: {e}", code="GOOGLE_API_UNAVAILABLE") from e
