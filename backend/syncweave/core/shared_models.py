"""Enums shared between models, schemas and the temporal layer."""

from enum import Enum


class ConnectorProvider(str, Enum):
    """External source a connector links to."""

    SLACK = "slack"
    GOOGLE_DRIVE = "google_drive"


class ConnectorStatus(str, Enum):
    """Lifecycle status of a connector."""

    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"


class SyncStatus(str, Enum):
    """Outcome of the last sync run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DEGRADED = "degraded"  # finished, but some sub-entities failed


class ResourcePermission(str, Enum):
    """Permission the tenant granted on a mirrored resource."""

    NONE = "none"
    READ = "read"
    READ_WRITE = "read_write"


class JoinChannelStatus(str, Enum):
    """Typed outcome of making the integration a member of a container."""

    JOINED = "joined"
    ALREADY_MEMBER = "already_member"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


class ResourceType(str, Enum):
    """Kind of externally-sourced object kept in the mirror."""

    CHANNEL = "channel"
    THREAD = "thread"
    MESSAGE = "message"
    USER = "user"
    FOLDER = "folder"
    FILE = "file"
