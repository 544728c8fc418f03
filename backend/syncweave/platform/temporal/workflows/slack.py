"""Temporal workflows for the Slack connector.

Concurrency model:
- a full sync runs one child workflow per joined channel, one after the other
- a channel sync walks history 100 messages at a time, one activity per page
- inside that activity, threads and week buckets are synced in bounded waves

Webhook-driven syncs (thread, message) are long-lived and debounced: every
signal restarts a 10 second quiet period, and one sync runs once it elapses.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from temporalio import workflow
from temporalio.exceptions import (
    ActivityError,
    ApplicationError,
    ChildWorkflowError,
    WorkflowAlreadyStartedError,
)

with workflow.unsafe.imports_passed_through():
    from syncweave.core.datetime_utils import datetime_to_ms, ms_to_datetime, week_end, week_start
    from syncweave.core.shared_models import JoinChannelStatus
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
    from syncweave.platform.temporal.signals import (
        BOT_JOINED_CHANNEL_SIGNAL,
        NEW_WEBHOOK_SIGNAL,
    )
    from syncweave.platform.temporal.types import (
        BotJoinedChannelSignal,
        ChannelInfo,
        ConnectorWorkflowInput,
        DebouncedSyncInput,
        FullSyncInput,
        SyncOneChannelInput,
    )
    from syncweave.platform.temporal.workflow_ids import sync_one_channel_workflow_id
    from syncweave.platform.temporal.workflows._base import (
        ACTIVITY_OPTIONS,
        DEBOUNCE_DELAY,
        failure_reason,
        percent,
    )

SYNC_ERRORS = (ActivityError, ApplicationError, ChildWorkflowError)


async def _report_failure(connector_id: int, error: BaseException) -> None:
    await workflow.execute_activity(
        save_failed_sync_activity, args=[connector_id, failure_reason(error)], **ACTIVITY_OPTIONS
    )


async def _get_channel_name(connector_id: int, channel_id: str) -> str:
    channel: Optional[ChannelInfo] = await workflow.execute_activity(
        get_channel_activity, args=[connector_id, channel_id], **ACTIVITY_OPTIONS
    )
    if channel is None or not channel.name:
        raise ApplicationError(
            f"Could not find channel name for channel {channel_id}", non_retryable=True
        )
    return channel.name


@workflow.defn
class SlackSyncOneChannelWorkflow:
    """Sync the full history of one channel."""

    def __init__(self) -> None:
        """Initialize workflow state."""
        self._pages_synced = 0

    @workflow.query
    def pages_synced(self) -> int:
        """History pages synced by this run."""
        return self._pages_synced

    @workflow.run
    async def run(self, sync_input: SyncOneChannelInput) -> None:
        """Join the channel, then sync history pages until the cursor is exhausted."""
        try:
            completed = await self._sync(sync_input)
        except SYNC_ERRORS as e:
            if sync_input.update_sync_status:
                await _report_failure(sync_input.connector_id, e)
            raise

        if completed and sync_input.update_sync_status:
            await workflow.execute_activity(
                save_success_sync_activity, sync_input.connector_id, **ACTIVITY_OPTIONS
            )

    async def _sync(self, sync_input: SyncOneChannelInput) -> bool:
        connector_id, channel_id = sync_input.connector_id, sync_input.channel_id
        if not sync_input.channel_name:
            raise ApplicationError(f"Channel {channel_id} has no name", non_retryable=True)

        cursor = sync_input.cursor
        weeks_synced = dict(sync_input.weeks_synced)
        if cursor is None:
            workflow.logger.info(f"Syncing channel {sync_input.channel_name} ({channel_id})")
            status = await workflow.execute_activity(
                join_channel_activity, args=[connector_id, channel_id], **ACTIVITY_OPTIONS
            )
            if status not in (
                JoinChannelStatus.JOINED.value,
                JoinChannelStatus.ALREADY_MEMBER.value,
            ):
                workflow.logger.warning(f"Skipping channel {channel_id}: {status}")
                return False

        while True:
            result = await workflow.execute_activity(
                sync_channel_activity,
                args=[
                    channel_id,
                    sync_input.channel_name,
                    connector_id,
                    sync_input.from_ts,
                    weeks_synced,
                    cursor,
                ],
                **ACTIVITY_OPTIONS,
            )
            self._pages_synced += 1
            cursor, weeks_synced = result.next_cursor, result.weeks_synced
            if not cursor:
                break
            if workflow.info().is_continue_as_new_suggested():
                workflow.continue_as_new(
                    SyncOneChannelInput(
                        connector_id=connector_id,
                        channel_id=channel_id,
                        channel_name=sync_input.channel_name,
                        update_sync_status=sync_input.update_sync_status,
                        from_ts=sync_input.from_ts,
                        cursor=cursor,
                        weeks_synced=weeks_synced,
                    )
                )

        workflow.logger.info(f"Syncing channel {sync_input.channel_name} ({channel_id}) done")
        return True


@workflow.defn
class SlackWorkspaceFullSyncWorkflow:
    """Sync every joined channel of a workspace, reporting progress."""

    def __init__(self) -> None:
        """Initialize workflow state."""
        self._progress: Optional[str] = None
        self._failed_channels: List[str] = []

    @workflow.query
    def progress(self) -> Optional[str]:
        """Last reported progress, e.g. ``"67%"``."""
        return self._progress

    @workflow.query
    def failed_channels(self) -> List[str]:
        """Channels whose child sync failed."""
        return list(self._failed_channels)

    @workflow.run
    async def run(self, sync_input: FullSyncInput) -> None:
        """Fetch users, then sync channels one child workflow at a time."""
        connector_id = sync_input.connector_id
        try:
            await workflow.execute_activity(fetch_users_activity, connector_id, **ACTIVITY_OPTIONS)
            channels: List[ChannelInfo] = await workflow.execute_activity(
                get_channels_activity, args=[connector_id, True], **ACTIVITY_OPTIONS
            )

            for i, channel in enumerate(channels, start=1):
                await self._sync_channel(connector_id, channel, sync_input.from_ts)
                await self._report_progress(connector_id, f"{percent(i, len(channels))}%")
            if not channels:
                await self._report_progress(connector_id, "100%")

            if self._failed_channels:
                reason = f"{len(self._failed_channels)} of {len(channels)} channels failed to sync"
                await workflow.execute_activity(
                    save_degraded_sync_activity, args=[connector_id, reason], **ACTIVITY_OPTIONS
                )
            else:
                await workflow.execute_activity(
                    save_success_sync_activity, connector_id, **ACTIVITY_OPTIONS
                )
        except SYNC_ERRORS as e:
            await _report_failure(connector_id, e)
            raise

        workflow.logger.info(f"Workspace sync done for connector {connector_id}")

    async def _report_progress(self, connector_id: int, progress: str) -> None:
        self._progress = progress
        await workflow.execute_activity(
            report_initial_sync_progress_activity,
            args=[connector_id, progress],
            **ACTIVITY_OPTIONS,
        )

    async def _sync_channel(
        self, connector_id: int, channel: ChannelInfo, from_ts: Optional[int]
    ) -> None:
        if not channel.id:
            workflow.logger.warning(f"Skipping channel {channel.name!r} with no id")
            return
        try:
            await workflow.execute_child_workflow(
                SlackSyncOneChannelWorkflow.run,
                SyncOneChannelInput(
                    connector_id=connector_id,
                    channel_id=channel.id,
                    channel_name=channel.name,
                    update_sync_status=False,
                    from_ts=from_ts,
                ),
                id=sync_one_channel_workflow_id(connector_id, channel.id),
            )
        except WorkflowAlreadyStartedError:
            workflow.logger.info(f"Channel {channel.id} is already syncing, skipping")
        except ChildWorkflowError as e:
            workflow.logger.warning(f"Channel {channel.id} failed to sync: {failure_reason(e)}")
            self._failed_channels.append(channel.id)


class _DebouncedSync:
    """State machine shared by the debounced workflows.

    IDLE -> signal -> DEBOUNCING -> quiet period elapsed -> SYNCING -> IDLE.
    A signal during DEBOUNCING restarts the quiet period. A signal during
    SYNCING sets the flag again, so another cycle follows the current sync.
    """

    def __init__(self) -> None:
        self._signaled = False
        self._debounce_count = 0
        self._sync_count = 0

    def _on_signal(self) -> None:
        self._signaled = True

    async def _debounce_loop(
        self, sync_input: DebouncedSyncInput, sync: Callable[[], Awaitable[None]]
    ) -> None:
        while True:
            await workflow.wait_condition(lambda: self._signaled)
            self._signaled = False
            self._debounce_count = 0

            while True:
                try:
                    await workflow.wait_condition(
                        lambda: self._signaled, timeout=DEBOUNCE_DELAY
                    )
                except asyncio.TimeoutError:
                    break
                self._signaled = False
                self._debounce_count += 1

            workflow.logger.info(
                f"Talking to Slack after debouncing {self._debounce_count} time(s)"
            )
            try:
                await sync()
            except SYNC_ERRORS as e:
                await _report_failure(sync_input.connector_id, e)
                raise
            await workflow.execute_activity(
                save_success_sync_activity, sync_input.connector_id, **ACTIVITY_OPTIONS
            )
            self._sync_count += 1

            if workflow.info().is_continue_as_new_suggested() and not self._signaled:
                workflow.continue_as_new(sync_input)


@workflow.defn
class SlackSyncOneThreadDebouncedWorkflow(_DebouncedSync):
    """Resync one thread after webhook activity on it quiets down."""

    def __init__(self) -> None:
        """Initialize workflow state."""
        super().__init__()

    @workflow.signal(name=NEW_WEBHOOK_SIGNAL)
    def new_webhook(self) -> None:
        """A webhook event touched the thread."""
        self._on_signal()

    @workflow.query
    def debounce_count(self) -> int:
        """Signals absorbed during the current (or last) quiet period."""
        return self._debounce_count

    @workflow.query
    def sync_count(self) -> int:
        """Syncs run by this workflow run."""
        return self._sync_count

    @workflow.run
    async def run(self, sync_input: DebouncedSyncInput) -> None:
        """Wait for signals forever, syncing the thread after each quiet period."""

        async def sync() -> None:
            channel_name = await _get_channel_name(sync_input.connector_id, sync_input.channel_id)
            await workflow.execute_activity(
                sync_thread_activity,
                args=[
                    sync_input.channel_id,
                    channel_name,
                    sync_input.thread_ts,
                    sync_input.connector_id,
                ],
                **ACTIVITY_OPTIONS,
            )

        await self._debounce_loop(sync_input, sync)


@workflow.defn
class SlackSyncOneMessageDebouncedWorkflow(_DebouncedSync):
    """Resync the week bucket of a non-threaded message after activity quiets down."""

    def __init__(self) -> None:
        """Initialize workflow state."""
        super().__init__()

    @workflow.signal(name=NEW_WEBHOOK_SIGNAL)
    def new_webhook(self) -> None:
        """A webhook event touched a message of the week."""
        self._on_signal()

    @workflow.query
    def debounce_count(self) -> int:
        """Signals absorbed during the current (or last) quiet period."""
        return self._debounce_count

    @workflow.query
    def sync_count(self) -> int:
        """Syncs run by this workflow run."""
        return self._sync_count

    @workflow.run
    async def run(self, sync_input: DebouncedSyncInput) -> None:
        """Wait for signals forever, syncing the message's week after each quiet period."""
        message_ms = int(float(sync_input.thread_ts)) * 1000
        message_time = ms_to_datetime(message_ms)
        start_ts_ms = datetime_to_ms(week_start(message_time))
        end_ts_ms = datetime_to_ms(week_end(message_time))

        async def sync() -> None:
            channel_name = await _get_channel_name(sync_input.connector_id, sync_input.channel_id)
            await workflow.execute_activity(
                sync_non_threaded_activity,
                args=[
                    sync_input.channel_id,
                    channel_name,
                    start_ts_ms,
                    end_ts_ms,
                    sync_input.connector_id,
                ],
                **ACTIVITY_OPTIONS,
            )

        await self._debounce_loop(sync_input, sync)


@workflow.defn
class SlackMemberJoinedChannelWorkflow:
    """Sync channels the bot was added to, one at a time, in arrival order."""

    def __init__(self) -> None:
        """Initialize workflow state."""
        self._channels_to_join: List[str] = []

    @workflow.signal(name=BOT_JOINED_CHANNEL_SIGNAL)
    def bot_joined_channel(self, payload: BotJoinedChannelSignal) -> None:
        """Queue a channel unless it is already queued."""
        if payload.channel_id not in self._channels_to_join:
            self._channels_to_join.append(payload.channel_id)

    @workflow.query
    def queued_channels(self) -> List[str]:
        """Channels waiting to be synced."""
        return list(self._channels_to_join)

    @workflow.run
    async def run(self, workflow_input: ConnectorWorkflowInput) -> None:
        """Drain the queue forever."""
        connector_id = workflow_input.connector_id
        while True:
            await workflow.wait_condition(lambda: bool(self._channels_to_join))
            channel_id = self._channels_to_join.pop(0)

            channel: Optional[ChannelInfo] = await workflow.execute_activity(
                get_channel_activity, args=[connector_id, channel_id], **ACTIVITY_OPTIONS
            )
            if channel is None or not channel.name:
                workflow.logger.warning(f"Could not find channel name for channel {channel_id}")
                continue

            try:
                await workflow.execute_child_workflow(
                    SlackSyncOneChannelWorkflow.run,
                    SyncOneChannelInput(
                        connector_id=connector_id,
                        channel_id=channel_id,
                        channel_name=channel.name,
                        update_sync_status=True,
                    ),
                    id=sync_one_channel_workflow_id(connector_id, channel_id),
                )
            except WorkflowAlreadyStartedError:
                workflow.logger.info(f"Channel {channel_id} is already syncing")
            except ChildWorkflowError as e:
                # The child reported the failure on the connector itself
                workflow.logger.warning(f"Channel {channel_id} failed: {failure_reason(e)}")

            if workflow.info().is_continue_as_new_suggested() and not self._channels_to_join:
                workflow.continue_as_new(workflow_input)


@workflow.defn
class SlackGarbageCollectorWorkflow:
    """Remove channels that are gone upstream or were disabled."""

    @workflow.run
    async def run(self, workflow_input: ConnectorWorkflowInput) -> int:
        """Purge the index first, then the mirror. Returns the number of channels purged."""
        connector_id = workflow_input.connector_id
        gc_set = await workflow.execute_activity(
            get_channels_to_garbage_collect_activity, connector_id, **ACTIVITY_OPTIONS
        )
        for channel_id in gc_set.to_delete_from_index:
            await workflow.execute_activity(
                delete_channel_activity,
                args=[channel_id, connector_id],
                **ACTIVITY_OPTIONS,
            )
        await workflow.execute_activity(
            delete_channels_from_mirror_activity,
            args=[gc_set.to_delete_from_mirror, connector_id],
            **ACTIVITY_OPTIONS,
        )
        return len(gc_set.to_delete_from_index)
