"""Temporal workflows for the Google Drive connector."""

from typing import List

from temporalio import workflow
from temporalio.exceptions import (
    ActivityError,
    ApplicationError,
    ChildWorkflowError,
    WorkflowAlreadyStartedError,
)

with workflow.unsafe.imports_passed_through():
    from syncweave.platform.temporal.activities.google_drive import (
        garbage_collect_files_activity,
        get_files_to_garbage_collect_activity,
        get_folders_to_sync_activity,
        get_start_page_token_activity,
        incremental_sync_changes_activity,
        save_changes_cursor_activity,
        sync_folder_page_activity,
    )
    from syncweave.platform.temporal.activities.status import (
        report_initial_sync_progress_activity,
        save_failed_sync_activity,
        save_success_sync_activity,
    )
    from syncweave.platform.temporal.signals import NEW_WEBHOOK_SIGNAL
    from syncweave.platform.temporal.types import ConnectorWorkflowInput
    from syncweave.platform.temporal.workflow_ids import (
        google_drive_garbage_collector_workflow_id,
    )
    from syncweave.platform.temporal.workflows._base import (
        ACTIVITY_OPTIONS,
        failure_reason,
        percent,
    )

SYNC_ERRORS = (ActivityError, ApplicationError, ChildWorkflowError)

GC_BATCH_SIZE = 100


@workflow.defn
class GoogleDriveGarbageCollectorWorkflow:
    """Remove mirrored files that left the selected folders or vanished upstream."""

    @workflow.run
    async def run(self, workflow_input: ConnectorWorkflowInput) -> int:
        """Delete in batches. Returns the number of resources deleted."""
        connector_id = workflow_input.connector_id
        file_ids: List[str] = await workflow.execute_activity(
            get_files_to_garbage_collect_activity, connector_id, **ACTIVITY_OPTIONS
        )
        deleted = 0
        for i in range(0, len(file_ids), GC_BATCH_SIZE):
            deleted += await workflow.execute_activity(
                garbage_collect_files_activity,
                args=[connector_id, file_ids[i : i + GC_BATCH_SIZE]],
                **ACTIVITY_OPTIONS,
            )
        return deleted


@workflow.defn
class GoogleDriveFullSyncWorkflow:
    """Walk every selected folder breadth first, then garbage collect."""

    def __init__(self) -> None:
        """Initialize workflow state."""
        self._folders_synced = 0
        self._files_synced = 0

    @workflow.query
    def files_synced(self) -> int:
        """Files written by this run."""
        return self._files_synced

    @workflow.run
    async def run(self, workflow_input: ConnectorWorkflowInput) -> None:
        """Sync, record the changes cursor, then garbage collect."""
        connector_id = workflow_input.connector_id
        try:
            # Taken first so that changes made during the walk are replayed later
            start_page_token = await workflow.execute_activity(
                get_start_page_token_activity, connector_id, **ACTIVITY_OPTIONS
            )
            roots: List[str] = await workflow.execute_activity(
                get_folders_to_sync_activity, connector_id, **ACTIVITY_OPTIONS
            )

            for i, root in enumerate(roots, start=1):
                await self._walk(connector_id, root)
                await workflow.execute_activity(
                    report_initial_sync_progress_activity,
                    args=[connector_id, f"{percent(i, len(roots))}%"],
                    **ACTIVITY_OPTIONS,
                )

            await workflow.execute_activity(
                save_changes_cursor_activity,
                args=[connector_id, start_page_token],
                **ACTIVITY_OPTIONS,
            )
            try:
                await workflow.execute_child_workflow(
                    GoogleDriveGarbageCollectorWorkflow.run,
                    workflow_input,
                    id=google_drive_garbage_collector_workflow_id(connector_id),
                )
            except WorkflowAlreadyStartedError:
                workflow.logger.info("Garbage collector already running, skipping")

            await workflow.execute_activity(
                save_success_sync_activity, connector_id, **ACTIVITY_OPTIONS
            )
        except SYNC_ERRORS as e:
            await workflow.execute_activity(
                save_failed_sync_activity,
                args=[connector_id, failure_reason(e)],
                **ACTIVITY_OPTIONS,
            )
            raise

        workflow.logger.info(
            f"Google Drive sync done for connector {connector_id}: "
            f"{self._folders_synced} folders, {self._files_synced} files"
        )

    async def _walk(self, connector_id: int, root: str) -> None:
        queue = [root]
        visited = set()
        while queue:
            folder_id = queue.pop(0)
            if folder_id in visited:
                continue
            visited.add(folder_id)

            cursor = None
            while True:
                result = await workflow.execute_activity(
                    sync_folder_page_activity,
                    args=[connector_id, folder_id, cursor],
                    **ACTIVITY_OPTIONS,
                )
                queue.extend(result.subfolder_ids)
                self._files_synced += result.files_synced
                cursor = result.next_cursor
                if not cursor:
                    break
            self._folders_synced += 1


@workflow.defn
class GoogleDriveIncrementalSyncWorkflow:
    """Apply Drive changes each time a webhook signals activity.

    Signals received while changes are being applied trigger another pass.
    """

    def __init__(self) -> None:
        """Initialize workflow state."""
        self._signaled = False
        self._passes = 0

    @workflow.signal(name=NEW_WEBHOOK_SIGNAL)
    def new_webhook(self) -> None:
        """Drive reported changes."""
        self._signaled = True

    @workflow.query
    def passes(self) -> int:
        """Change passes run by this workflow run."""
        return self._passes

    @workflow.run
    async def run(self, workflow_input: ConnectorWorkflowInput) -> None:
        """Wait for signals forever, draining the Changes API after each."""
        connector_id = workflow_input.connector_id
        while True:
            await workflow.wait_condition(lambda: self._signaled)
            self._signaled = False

            try:
                while True:
                    result = await workflow.execute_activity(
                        incremental_sync_changes_activity, connector_id, **ACTIVITY_OPTIONS
                    )
                    if not result.has_more:
                        break
            except SYNC_ERRORS as e:
                await workflow.execute_activity(
                    save_failed_sync_activity,
                    args=[connector_id, failure_reason(e)],
                    **ACTIVITY_OPTIONS,
                )
                raise
            await workflow.execute_activity(
                save_success_sync_activity, connector_id, **ACTIVITY_OPTIONS
            )
            self._passes += 1

            if workflow.info().is_continue_as_new_suggested() and not self._signaled:
                workflow.continue_as_new(workflow_input)
