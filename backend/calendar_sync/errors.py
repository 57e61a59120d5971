from typing import Any, Dict, Optional

from fastapi import status


class BaseAppException(Exception):
    def __init__(self, code: str, message: str, http_status: int):
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class NotFoundError(BaseAppException):
    def __init__(self, code: str, message: str):
        super().__init__(code, message, status.HTTP_404_NOT_FOUND)


class ValidationAppError(BaseAppException):
    def __init__(self, code: str, message: str):
        super().__init__(code, message, status.HTTP_400_BAD_REQUEST)


class SyncExpiredError(BaseAppException):
    """The provider rejected the sync token; the caller must resync without one."""

    summary = "Sync token expired; full resync required"

    def __init__(self, message: str = "sync token is no longer valid"):
        super().__init__("SYNC_TOKEN_EXPIRED", message, status.HTTP_410_GONE)

    def to_body(self) -> Dict[str, Any]:
        return {
            "error": self.summary,
            "message": self.message,
            "code": self.code,
            "resyncRequired": True,
        }


class UpstreamError(BaseAppException):
    """Any provider-side failure (timeout, 5xx, auth expiry)."""

    def __init__(self, message: str, code: str = "UPSTREAM_ERROR", provider_status: Optional[int] = None):
        super().__init__(code, message, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.provider_status = provider_status

    def to_body(self) -> Dict[str, Any]:
        return {"error": "Upstream provider error", "message": self.message, "code": self.code}
