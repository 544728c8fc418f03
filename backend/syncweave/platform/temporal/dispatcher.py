"""Workflow dispatcher: turns external events into workflow starts and signals.

Every outward operation validates the connector, derives the target workflow
id and returns once Temporal accepted the request. Validation errors are
raised here, synchronously, and never reach Temporal.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from temporalio.client import Client
from temporalio.exceptions import WorkflowAlreadyStartedError
from temporalio.service import RPCError, RPCStatusCode

from syncweave import schemas
from syncweave.core.config import settings
from syncweave.core.datetime_utils import datetime_to_ms, ms_to_datetime, week_start
from syncweave.core.exceptions import (
    ConnectorNotFoundException,
    ConnectorPausedException,
    InvalidStreamKeyException,
    SyncweaveException,
)
from syncweave.core.logging import logger
from syncweave.core.mirror_store import MirrorStore, mirror_store
from syncweave.core.shared_models import (
    ConnectorProvider,
    ConnectorStatus,
    ResourcePermission,
    ResourceType,
)
from syncweave.platform.cursors.google_drive import CHANGES_STREAM_KEY
from syncweave.platform.temporal import workflow_ids
from syncweave.platform.temporal.client import TemporalClient, temporal_client
from syncweave.platform.temporal.signals import BOT_JOINED_CHANNEL_SIGNAL, NEW_WEBHOOK_SIGNAL
from syncweave.platform.temporal.types import (
    BotJoinedChannelSignal,
    ConnectorWorkflowInput,
    DebouncedSyncInput,
    FullSyncInput,
)
from syncweave.platform.temporal.workflows import (
    GoogleDriveFullSyncWorkflow,
    GoogleDriveGarbageCollectorWorkflow,
    GoogleDriveIncrementalSyncWorkflow,
    SlackGarbageCollectorWorkflow,
    SlackMemberJoinedChannelWorkflow,
    SlackSyncOneMessageDebouncedWorkflow,
    SlackSyncOneThreadDebouncedWorkflow,
    SlackWorkspaceFullSyncWorkflow,
)

THREAD_STREAM = "thread"
MESSAGE_STREAM = "message"
# Slack message timestamp: epoch seconds with an optional fraction
SLACK_TS_PATTERN = re.compile(r"[0-9]{1,10}(?:\.[0-9]+)?")


@dataclass
class DispatchResult:
    """Outcome of a dispatch request."""

    workflow_id: str
    already_running: bool = False
    signaled: bool = False


@dataclass
class StartRequest:
    """Workflow to start when a signaled workflow does not exist."""

    workflow: Any
    arg: Any


class WorkflowDispatcher:
    """Starts and signals connector workflows by deterministic id."""

    def __init__(
        self,
        store: MirrorStore = mirror_store,
        client_provider: TemporalClient = temporal_client,
    ):
        """Initialize the dispatcher.

        Args:
            store: Mirror store holding connectors
            client_provider: Source of the Temporal client
        """
        self._store = store
        self._client_provider = client_provider

    async def _client(self) -> Client:
        return await self._client_provider.get_client()

    # Primitives

    async def start(self, workflow: Any, arg: Any, workflow_id: str) -> DispatchResult:
        """Start a workflow; a no-op (logged) when one with this id is running."""
        client = await self._client()
        try:
            await client.start_workflow(
                workflow, arg, id=workflow_id, task_queue=settings.TEMPORAL_TASK_QUEUE
            )
        except WorkflowAlreadyStartedError:
            logger.info(f"Workflow {workflow_id} is already running, not starting another")
            return DispatchResult(workflow_id=workflow_id, already_running=True)
        logger.info(f"Started workflow {workflow_id}")
        return DispatchResult(workflow_id=workflow_id)

    async def start_or_signal(
        self,
        workflow: Any,
        arg: Any,
        workflow_id: str,
        signal: str,
        signal_args: Sequence[Any] = (),
    ) -> DispatchResult:
        """Signal a workflow, starting it first if needed, in one atomic call."""
        client = await self._client()
        await client.start_workflow(
            workflow,
            arg,
            id=workflow_id,
            task_queue=settings.TEMPORAL_TASK_QUEUE,
            start_signal=signal,
            start_signal_args=list(signal_args),
        )
        logger.debug(f"Signal-with-start {signal} on {workflow_id}")
        return DispatchResult(workflow_id=workflow_id, signaled=True)

    async def signal(
        self,
        workflow_id: str,
        signal: str,
        signal_args: Sequence[Any] = (),
        start: Optional[StartRequest] = None,
    ) -> DispatchResult:
        """Signal a running workflow.

        When the workflow does not exist (or already closed) and ``start`` is
        given, it is started with the signal instead.

        Raises:
            RPCError: NOT_FOUND when the workflow does not exist and ``start`` is None
        """
        client = await self._client()
        try:
            await client.get_workflow_handle(workflow_id).signal(signal, args=list(signal_args))
        except RPCError as e:
            if e.status != RPCStatusCode.NOT_FOUND or start is None:
                raise
            logger.info(f"Workflow {workflow_id} not found, starting it with {signal}")
            return await self.start_or_signal(
                start.workflow, start.arg, workflow_id, signal, signal_args
            )
        return DispatchResult(workflow_id=workflow_id, signaled=True)

    # Connector lookup

    async def _get_connector(
        self, connector_id: int, require_active: bool = True
    ) -> schemas.Connector:
        connector = await self._store.get_connector(connector_id)
        if connector is None:
            raise ConnectorNotFoundException(connector_id)
        if require_active and connector.status == ConnectorStatus.PAUSED:
            raise ConnectorPausedException(connector_id)
        return connector

    # Outward operations

    async def start_full_sync(
        self, connector_id: int, from_ts: Optional[int] = None
    ) -> DispatchResult:
        """Start a full sync of the connector (Slack: only history after ``from_ts``)."""
        connector = await self._get_connector(connector_id)
        if connector.provider == ConnectorProvider.SLACK:
            return await self.start(
                SlackWorkspaceFullSyncWorkflow.run,
                FullSyncInput(connector_id=connector_id, from_ts=from_ts),
                workflow_ids.workspace_full_sync_workflow_id(connector_id, from_ts),
            )
        return await self.start(
            GoogleDriveFullSyncWorkflow.run,
            ConnectorWorkflowInput(connector_id=connector_id),
            workflow_ids.google_drive_full_sync_workflow_id(connector_id),
        )

    async def notify_webhook(self, connector_id: int, stream_key: str) -> DispatchResult:
        """Route a webhook event to the debounced workflow owning its stream.

        Stream keys: Slack ``<channel_id>/thread/<thread_ts>`` or
        ``<channel_id>/message/<message_ts>``; Google Drive ``changes``.

        Raises:
            ConnectorNotFoundException: Unknown connector
            ConnectorPausedException: Paused connector
            InvalidStreamKeyException: Key not valid for the connector's provider
        """
        connector = await self._get_connector(connector_id)
        if connector.provider == ConnectorProvider.GOOGLE_DRIVE:
            if stream_key != CHANGES_STREAM_KEY:
                raise InvalidStreamKeyException(stream_key, connector.provider.value)
            return await self.start_or_signal(
                GoogleDriveIncrementalSyncWorkflow.run,
                ConnectorWorkflowInput(connector_id=connector_id),
                workflow_ids.google_drive_incremental_sync_workflow_id(connector_id),
                NEW_WEBHOOK_SIGNAL,
            )

        channel_id, stream, ts = self._parse_slack_stream_key(stream_key)
        sync_input = DebouncedSyncInput(connector_id=connector_id, channel_id=channel_id, thread_ts=ts)
        if stream == THREAD_STREAM:
            return await self.start_or_signal(
                SlackSyncOneThreadDebouncedWorkflow.run,
                sync_input,
                workflow_ids.sync_one_thread_debounced_workflow_id(connector_id, channel_id, ts),
                NEW_WEBHOOK_SIGNAL,
            )

        start_ts_ms = datetime_to_ms(week_start(ms_to_datetime(int(float(ts)) * 1000)))
        return await self.start_or_signal(
            SlackSyncOneMessageDebouncedWorkflow.run,
            sync_input,
            workflow_ids.sync_one_message_debounced_workflow_id(
                connector_id, channel_id, start_ts_ms
            ),
            NEW_WEBHOOK_SIGNAL,
        )

    @staticmethod
    def _parse_slack_stream_key(stream_key: str):
        parts = stream_key.split("/")
        if len(parts) != 3 or not parts[0] or parts[1] not in (THREAD_STREAM, MESSAGE_STREAM):
            raise InvalidStreamKeyException(stream_key, ConnectorProvider.SLACK.value)
        if not SLACK_TS_PATTERN.fullmatch(parts[2]):
            raise InvalidStreamKeyException(stream_key, ConnectorProvider.SLACK.value)
        return parts[0], parts[1], parts[2]

    async def notify_membership_change(self, connector_id: int, channel_id: str) -> DispatchResult:
        """Queue a channel the bot was added to for a top-level sync."""
        connector = await self._get_connector(connector_id)
        if connector.provider != ConnectorProvider.SLACK:
            raise SyncweaveException(
                f"Membership changes are not supported for {connector.provider.value}"
            )
        return await self.start_or_signal(
            SlackMemberJoinedChannelWorkflow.run,
            ConnectorWorkflowInput(connector_id=connector_id),
            workflow_ids.bot_joined_channel_workflow_id(connector_id),
            BOT_JOINED_CHANNEL_SIGNAL,
            [BotJoinedChannelSignal(channel_id=channel_id)],
        )

    async def schedule_garbage_collection(self, connector_id: int) -> DispatchResult:
        """Start the connector's garbage collector (allowed while paused)."""
        connector = await self._get_connector(connector_id, require_active=False)
        arg = ConnectorWorkflowInput(connector_id=connector_id)
        if connector.provider == ConnectorProvider.SLACK:
            return await self.start(
                SlackGarbageCollectorWorkflow.run,
                arg,
                workflow_ids.slack_garbage_collector_workflow_id(connector_id),
            )
        return await self.start(
            GoogleDriveGarbageCollectorWorkflow.run,
            arg,
            workflow_ids.google_drive_garbage_collector_workflow_id(connector_id),
        )

    # Connector management

    async def set_connector_permissions(
        self, connector_id: int, permissions: Dict[str, ResourcePermission]
    ) -> List[DispatchResult]:
        """Apply tenant permission changes and launch the syncs they imply.

        Slack: ``none`` disables a channel and schedules garbage collection;
        ``read`` / ``read_write`` queue a channel sync. Google Drive: ``read``
        selects a folder, ``none`` unselects it; any change starts a full sync.
        """
        connector = await self._get_connector(connector_id)
        if not permissions:
            return []
        if connector.provider == ConnectorProvider.SLACK:
            return await self._set_slack_permissions(connector_id, permissions)
        return await self._set_google_drive_permissions(connector_id, permissions)

    async def _set_slack_permissions(
        self, connector_id: int, permissions: Dict[str, ResourcePermission]
    ) -> List[DispatchResult]:
        results = []
        existing = {
            r.external_id: r
            for r in await self._store.get_resources(connector_id, list(permissions))
        }
        await self._store.upsert_resources(
            [
                schemas.SyncedResourceUpsert(
                    connector_id=connector_id,
                    external_id=channel_id,
                    resource_type=ResourceType.CHANNEL,
                    title=existing[channel_id].title if channel_id in existing else None,
                    permission=permission,
                )
                for channel_id, permission in permissions.items()
            ]
        )
        for channel_id, permission in permissions.items():
            if permission != ResourcePermission.NONE:
                results.append(await self.notify_membership_change(connector_id, channel_id))
        if ResourcePermission.NONE in permissions.values():
            results.append(await self.schedule_garbage_collection(connector_id))
        return results

    async def _set_google_drive_permissions(
        self, connector_id: int, permissions: Dict[str, ResourcePermission]
    ) -> List[DispatchResult]:
        invalid = [i for i, p in permissions.items() if p == ResourcePermission.READ_WRITE]
        if invalid:
            raise SyncweaveException(f"Invalid permission read_write for resources {invalid}")

        unselected = [i for i, p in permissions.items() if p == ResourcePermission.NONE]
        await self._store.delete_resources(connector_id, unselected)
        await self._store.upsert_resources(
            [
                schemas.SyncedResourceUpsert(
                    connector_id=connector_id,
                    external_id=folder_id,
                    resource_type=ResourceType.FOLDER,
                    parent_id=None,
                    permission=ResourcePermission.READ,
                )
                for folder_id, permission in permissions.items()
                if permission == ResourcePermission.READ
            ]
        )
        return [await self.start_full_sync(connector_id)]

    def _long_lived_workflow_ids(self, connector: schemas.Connector) -> List[str]:
        connector_id = connector.id
        if connector.provider == ConnectorProvider.SLACK:
            return [
                workflow_ids.workspace_full_sync_workflow_id(connector_id),
                workflow_ids.bot_joined_channel_workflow_id(connector_id),
                workflow_ids.slack_garbage_collector_workflow_id(connector_id),
            ]
        return [
            workflow_ids.google_drive_full_sync_workflow_id(connector_id),
            workflow_ids.google_drive_incremental_sync_workflow_id(connector_id),
            workflow_ids.google_drive_garbage_collector_workflow_id(connector_id),
        ]

    def _workflow_id_prefixes(self, connector: schemas.Connector) -> List[str]:
        if connector.provider != ConnectorProvider.SLACK:
            return []
        return [
            f"slack-syncOneChannel-{connector.id}-",
            f"slack-syncOneThreadDebounced-{connector.id}-",
            f"slack-syncOneMessageDebounced-{connector.id}-",
            f"slack-workspaceFullSync-{connector.id}-fromTs-",
        ]

    async def stop_connector(self, connector_id: int, reason: str = "Connector stopped") -> int:
        """Terminate every running workflow of the connector.

        Returns:
            Number of workflows terminated
        """
        connector = await self._get_connector(connector_id, require_active=False)
        client = await self._client()

        targets = set(self._long_lived_workflow_ids(connector))
        for prefix in self._workflow_id_prefixes(connector):
            query = f'WorkflowId STARTS_WITH "{prefix}" AND ExecutionStatus = "Running"'
            async for execution in client.list_workflows(query):
                targets.add(execution.id)

        terminated = 0
        for workflow_id in sorted(targets):
            try:
                await client.get_workflow_handle(workflow_id).terminate(reason=reason)
                terminated += 1
            except RPCError as e:
                if e.status != RPCStatusCode.NOT_FOUND:
                    raise
        logger.info(f"Stopped connector {connector_id}: terminated {terminated} workflows")
        return terminated

    async def delete_connector(self, connector_id: int) -> None:
        """Stop the connector's workflows, then delete it with its mirror data."""
        await self.stop_connector(connector_id, reason="Connector deleted")
        await self._store.delete_connector(connector_id)
        logger.info(f"Deleted connector {connector_id}")

    async def pause_connector(self, connector_id: int) -> None:
        """Stop the connector's workflows and reject new syncs until resumed."""
        await self.stop_connector(connector_id, reason="Connector paused")
        await self._store.set_connector_status(connector_id, ConnectorStatus.PAUSED)

    async def resume_connector(self, connector_id: int) -> DispatchResult:
        """Accept syncs again and start a full sync."""
        await self._get_connector(connector_id, require_active=False)
        await self._store.set_connector_status(connector_id, ConnectorStatus.ACTIVE)
        return await self.start_full_sync(connector_id)

    async def get_sync_status(self, connector_id: int) -> schemas.ConnectorSyncStatus:
        """Operator-visible sync status of the connector."""
        status = await self._store.get_sync_status(connector_id)
        if status is None:
            raise ConnectorNotFoundException(connector_id)
        return status


dispatcher = WorkflowDispatcher()
