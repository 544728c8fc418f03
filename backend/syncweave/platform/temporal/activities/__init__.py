"""Temporal activities for syncweave."""

from syncweave.platform.temporal.activities.google_drive import (
    garbage_collect_files_activity,
    get_files_to_garbage_collect_activity,
    get_folders_to_sync_activity,
    get_start_page_token_activity,
    incremental_sync_changes_activity,
    save_changes_cursor_activity,
    sync_folder_page_activity,
)
from syncweave.platform.temporal.activities.slack import (
    delete_channel_activity,
    delete_channels_from_mirror_activity,
    fetch_users_activity,
    get_channel_activity,
    get_channels_activity,
    get_channels_to_garbage_collect_activity,
    join_channel_activity,
    sync_channel_activity,
    sync_non_threaded_activity,
    sync_thread_activity,
)
from syncweave.platform.temporal.activities.status import (
    report_initial_sync_progress_activity,
    save_degraded_sync_activity,
    save_failed_sync_activity,
    save_success_sync_activity,
)

__all__ = [
    # Slack activities
    "fetch_users_activity",
    "get_channels_activity",
    "get_channel_activity",
    "join_channel_activity",
    "sync_channel_activity",
    "sync_thread_activity",
    "sync_non_threaded_activity",
    "get_channels_to_garbage_collect_activity",
    "delete_channel_activity",
    "delete_channels_from_mirror_activity",
    # Google Drive activities
    "get_folders_to_sync_activity",
    "get_start_page_token_activity",
    "save_changes_cursor_activity",
    "sync_folder_page_activity",
    "incremental_sync_changes_activity",
    "get_files_to_garbage_collect_activity",
    "garbage_collect_files_activity",
    # Sync status activities
    "save_success_sync_activity",
    "report_initial_sync_progress_activity",
    "save_failed_sync_activity",
    "save_degraded_sync_activity",
]
