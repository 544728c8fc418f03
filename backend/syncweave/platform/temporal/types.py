"""Workflow and activity payloads.

Plain dataclasses so that they pass through the workflow sandbox and
Temporal's default JSON converter.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ChannelInfo:
    """A Slack channel as seen upstream."""

    id: Optional[str]
    name: Optional[str]
    is_member: bool = False


@dataclass
class SyncChannelResult:
    """Result of syncing one page of channel history.

    ``weeks_synced`` maps week-start epoch milliseconds (as strings) to True for
    every week bucket already synced in this channel run.
    """

    next_cursor: Optional[str]
    weeks_synced: Dict[str, bool] = field(default_factory=dict)


@dataclass
class GarbageCollectionSet:
    """Resources to purge, computed by diffing the mirror against upstream."""

    to_delete_from_mirror: List[str] = field(default_factory=list)
    to_delete_from_index: List[str] = field(default_factory=list)


@dataclass
class FolderPageResult:
    """Result of syncing one page of a Google Drive folder."""

    next_cursor: Optional[str]
    subfolder_ids: List[str] = field(default_factory=list)
    files_synced: int = 0


@dataclass
class ChangesPageResult:
    """Result of applying one page of the Google Drive Changes API."""

    has_more: bool
    changes_applied: int = 0


# Workflow inputs


@dataclass
class FullSyncInput:
    """Input of a workspace-wide full sync."""

    connector_id: int
    from_ts: Optional[int] = None


@dataclass
class SyncOneChannelInput:
    """Input of a single channel sync.

    ``update_sync_status`` is True when the run is top-level (not a child of a
    full sync) and must report its own outcome.
    """

    connector_id: int
    channel_id: str
    channel_name: Optional[str]
    update_sync_status: bool
    from_ts: Optional[int] = None
    # Carried over when the run continues as new mid-channel
    cursor: Optional[str] = None
    weeks_synced: Dict[str, bool] = field(default_factory=dict)


@dataclass
class DebouncedSyncInput:
    """Input of a debounced thread or message sync."""

    connector_id: int
    channel_id: str
    thread_ts: str


@dataclass
class ConnectorWorkflowInput:
    """Input of workflows scoped to a whole connector."""

    connector_id: int


@dataclass
class BotJoinedChannelSignal:
    """Payload of the bot-joined-channel signal."""

    channel_id: str
