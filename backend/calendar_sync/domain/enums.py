"""Domain enumerations for strong typing & validation."""
from enum import Enum


class SyncType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class ChangeType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ResourceState(str, Enum):
    """Values of the X-Goog-Resource-State push notification header."""
    SYNC = "sync"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    UPDATE = "update"
