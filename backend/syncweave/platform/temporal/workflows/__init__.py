"""Temporal workflows for syncweave."""

from syncweave.platform.temporal.workflows.google_drive import (
    GoogleDriveFullSyncWorkflow,
    GoogleDriveGarbageCollectorWorkflow,
    GoogleDriveIncrementalSyncWorkflow,
)
from syncweave.platform.temporal.workflows.slack import (
    SlackGarbageCollectorWorkflow,
    SlackMemberJoinedChannelWorkflow,
    SlackSyncOneChannelWorkflow,
    SlackSyncOneMessageDebouncedWorkflow,
    SlackSyncOneThreadDebouncedWorkflow,
    SlackWorkspaceFullSyncWorkflow,
)

__all__ = [
    # Slack workflows
    "SlackWorkspaceFullSyncWorkflow",
    "SlackSyncOneChannelWorkflow",
    "SlackSyncOneThreadDebouncedWorkflow",
    "SlackSyncOneMessageDebouncedWorkflow",
    "SlackMemberJoinedChannelWorkflow",
    "SlackGarbageCollectorWorkflow",
    # Google Drive workflows
    "GoogleDriveFullSyncWorkflow",
    "GoogleDriveIncrementalSyncWorkflow",
    "GoogleDriveGarbageCollectorWorkflow",
]
