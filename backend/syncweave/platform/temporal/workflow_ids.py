"""Deterministic workflow ids.

A workflow id is derived from (provider, kind, connector, sub-entity) so that
at most one run per logical stream exists at a time.
"""

from typing import Optional


def workspace_full_sync_workflow_id(connector_id: int, from_ts: Optional[int] = None) -> str:
    """Slack workspace full sync."""
    if from_ts:
        return f"slack-workspaceFullSync-{connector_id}-fromTs-{from_ts}"
    return f"slack-workspaceFullSync-{connector_id}"


def sync_one_channel_workflow_id(connector_id: int, channel_id: str) -> str:
    """Slack single channel sync."""
    return f"slack-syncOneChannel-{connector_id}-{channel_id}"


def sync_one_thread_debounced_workflow_id(connector_id: int, channel_id: str, thread_ts: str) -> str:
    """Slack debounced thread sync."""
    return f"slack-syncOneThreadDebounced-{connector_id}-{channel_id}-{thread_ts}"


def sync_one_message_debounced_workflow_id(
    connector_id: int, channel_id: str, start_ts_ms: int
) -> str:
    """Slack debounced sync of the week bucket starting at ``start_ts_ms``."""
    return f"slack-syncOneMessageDebounced-{connector_id}-{channel_id}-{start_ts_ms}"


def bot_joined_channel_workflow_id(connector_id: int) -> str:
    """Slack membership queue."""
    return f"slack-botJoinedChannel-{connector_id}"


def slack_garbage_collector_workflow_id(connector_id: int) -> str:
    """Slack garbage collector."""
    return f"slack-GarbageCollector-{connector_id}"


def google_drive_full_sync_workflow_id(connector_id: int) -> str:
    """Google Drive full sync."""
    return f"googleDrive-fullSync-{connector_id}"


def google_drive_incremental_sync_workflow_id(connector_id: int) -> str:
    """Google Drive changes-driven incremental sync."""
    return f"googleDrive-incrementalSync-{connector_id}"


def google_drive_garbage_collector_workflow_id(connector_id: int) -> str:
    """Google Drive garbage collector."""
    return f"googleDrive-GarbageCollector-{connector_id}"
