"""Tests for the workflow dispatcher with a mocked Temporal client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from temporalio.exceptions import WorkflowAlreadyStartedError
from temporalio.service import RPCError, RPCStatusCode

from syncweave import schemas
from syncweave.core.config import settings
from syncweave.core.exceptions import (
    ConnectorNotFoundException,
    ConnectorPausedException,
    InvalidStreamKeyException,
    SyncweaveException,
)
from syncweave.core.shared_models import ConnectorStatus, ResourcePermission, ResourceType
from syncweave.platform.temporal.dispatcher import StartRequest, WorkflowDispatcher
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


def _not_found() -> RPCError:
    return RPCError("workflow not found", RPCStatusCode.NOT_FOUND, b"")


async def _executions(*workflow_ids):
    for workflow_id in workflow_ids:
        yield SimpleNamespace(id=workflow_id)


@pytest.fixture
def handle():
    """Mocked workflow handle."""
    handle = MagicMock()
    handle.signal = AsyncMock()
    handle.terminate = AsyncMock()
    return handle


@pytest.fixture
def client(handle):
    """Mocked Temporal client."""
    client = MagicMock()
    client.start_workflow = AsyncMock()
    client.get_workflow_handle = MagicMock(return_value=handle)
    client.list_workflows = MagicMock(side_effect=lambda query: _executions())
    return client


@pytest.fixture
def dispatcher(store, client):
    """Dispatcher over the test store and the mocked client."""
    provider = MagicMock()
    provider.get_client = AsyncMock(return_value=client)
    return WorkflowDispatcher(store=store, client_provider=provider)


def _started(client, index=0):
    call = client.start_workflow.call_args_list[index]
    return call.args[0], call.args[1], call.kwargs


@pytest.mark.asyncio
async def test_start_full_sync_slack(dispatcher, client, slack_connector):
    """Test a Slack full sync starts under its deterministic id."""
    result = await dispatcher.start_full_sync(slack_connector.id)

    workflow, arg, kwargs = _started(client)
    assert workflow == SlackWorkspaceFullSyncWorkflow.run
    assert arg == FullSyncInput(connector_id=slack_connector.id)
    assert kwargs["id"] == f"slack-workspaceFullSync-{slack_connector.id}"
    assert kwargs["task_queue"] == settings.TEMPORAL_TASK_QUEUE
    assert result.workflow_id == kwargs["id"]
    assert result.already_running is False


@pytest.mark.asyncio
async def test_start_full_sync_from_ts_gets_its_own_id(dispatcher, client, slack_connector):
    """Test a bounded full sync does not collide with the unbounded one."""
    await dispatcher.start_full_sync(slack_connector.id, from_ts=1704585600000)

    workflow, arg, kwargs = _started(client)
    assert arg.from_ts == 1704585600000
    assert kwargs["id"] == f"slack-workspaceFullSync-{slack_connector.id}-fromTs-1704585600000"


@pytest.mark.asyncio
async def test_start_full_sync_google_drive(dispatcher, client, drive_connector):
    """Test a Drive full sync dispatches to the Drive workflow."""
    await dispatcher.start_full_sync(drive_connector.id)

    workflow, arg, kwargs = _started(client)
    assert workflow == GoogleDriveFullSyncWorkflow.run
    assert arg == ConnectorWorkflowInput(connector_id=drive_connector.id)
    assert kwargs["id"] == f"googleDrive-fullSync-{drive_connector.id}"


@pytest.mark.asyncio
async def test_start_when_running_is_a_noop(dispatcher, client, slack_connector):
    """Test a second start while one runs is reported, not raised."""
    client.start_workflow.side_effect = WorkflowAlreadyStartedError(
        "slack-workspaceFullSync-1", "SlackWorkspaceFullSyncWorkflow"
    )

    result = await dispatcher.start_full_sync(slack_connector.id)

    assert result.already_running is True


@pytest.mark.asyncio
async def test_unknown_connector_is_rejected(dispatcher, client):
    """Test triggers for a missing connector never reach Temporal."""
    with pytest.raises(ConnectorNotFoundException):
        await dispatcher.start_full_sync(404)
    with pytest.raises(ConnectorNotFoundException):
        await dispatcher.notify_webhook(404, "C1/thread/1.0")

    client.start_workflow.assert_not_called()


@pytest.mark.asyncio
async def test_paused_connector_is_rejected(dispatcher, client, store, slack_connector):
    """Test syncs are refused while a connector is paused."""
    await store.set_connector_status(slack_connector.id, ConnectorStatus.PAUSED)

    with pytest.raises(ConnectorPausedException):
        await dispatcher.start_full_sync(slack_connector.id)
    with pytest.raises(ConnectorPausedException):
        await dispatcher.notify_webhook(slack_connector.id, "C1/thread/1704700000.000100")

    client.start_workflow.assert_not_called()


@pytest.mark.asyncio
async def test_thread_webhook_signals_with_start(dispatcher, client, slack_connector):
    """Test thread events signal the thread's debounced workflow atomically."""
    cid = slack_connector.id

    result = await dispatcher.notify_webhook(cid, "C1/thread/1704700000.000100")

    workflow, arg, kwargs = _started(client)
    assert workflow == SlackSyncOneThreadDebouncedWorkflow.run
    assert arg == DebouncedSyncInput(connector_id=cid, channel_id="C1", thread_ts="1704700000.000100")
    assert kwargs["id"] == f"slack-syncOneThreadDebounced-{cid}-C1-1704700000.000100"
    assert kwargs["start_signal"] == NEW_WEBHOOK_SIGNAL
    assert result.signaled is True


@pytest.mark.asyncio
async def test_message_webhooks_share_the_week_workflow(dispatcher, client, slack_connector):
    """Test messages of the same week route to one debounced workflow."""
    cid = slack_connector.id

    await dispatcher.notify_webhook(cid, "C1/message/1704700000.000100")
    await dispatcher.notify_webhook(cid, "C1/message/1705000000.000200")

    first_workflow, _, first = _started(client, 0)
    _, _, second = _started(client, 1)
    assert first_workflow == SlackSyncOneMessageDebouncedWorkflow.run
    assert first["id"] == f"slack-syncOneMessageDebounced-{cid}-C1-1704585600000"
    assert second["id"] == first["id"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "stream_key",
    [
        "C1",
        "C1/reaction/1704700000.0",
        "/thread/1704700000.0",
        "C1/thread/not-a-ts",
        "changes",
        "C1/message/nan",
        "C1/thread/inf",
        "C1/message/-1704700000.0",
        "C1/message/1e9",
        "C1/message/99999999999999999999.0",
    ],
)
async def test_invalid_slack_stream_keys(dispatcher, client, slack_connector, stream_key):
    """Test malformed stream keys are rejected synchronously."""
    with pytest.raises(InvalidStreamKeyException):
        await dispatcher.notify_webhook(slack_connector.id, stream_key)

    client.start_workflow.assert_not_called()


@pytest.mark.asyncio
async def test_drive_webhook_signals_incremental_sync(dispatcher, client, drive_connector):
    """Test Drive change notifications signal the incremental sync."""
    cid = drive_connector.id

    await dispatcher.notify_webhook(cid, "changes")

    workflow, _, kwargs = _started(client)
    assert workflow == GoogleDriveIncrementalSyncWorkflow.run
    assert kwargs["id"] == f"googleDrive-incrementalSync-{cid}"
    assert kwargs["start_signal"] == NEW_WEBHOOK_SIGNAL

    with pytest.raises(InvalidStreamKeyException):
        await dispatcher.notify_webhook(cid, "C1/thread/1704700000.0")


@pytest.mark.asyncio
async def test_membership_change_queues_channel(dispatcher, client, slack_connector):
    """Test bot-joined events feed the connector's membership queue."""
    cid = slack_connector.id

    await dispatcher.notify_membership_change(cid, "C9")

    workflow, arg, kwargs = _started(client)
    assert workflow == SlackMemberJoinedChannelWorkflow.run
    assert arg == ConnectorWorkflowInput(connector_id=cid)
    assert kwargs["id"] == f"slack-botJoinedChannel-{cid}"
    assert kwargs["start_signal"] == BOT_JOINED_CHANNEL_SIGNAL
    assert kwargs["start_signal_args"] == [BotJoinedChannelSignal(channel_id="C9")]


@pytest.mark.asyncio
async def test_membership_change_is_slack_only(dispatcher, drive_connector):
    """Test Drive connectors have no membership queue."""
    with pytest.raises(SyncweaveException):
        await dispatcher.notify_membership_change(drive_connector.id, "C9")


@pytest.mark.asyncio
async def test_garbage_collection_allowed_while_paused(
    dispatcher, client, store, slack_connector, drive_connector
):
    """Test garbage collection starts per provider, even for paused connectors."""
    await store.set_connector_status(slack_connector.id, ConnectorStatus.PAUSED)

    await dispatcher.schedule_garbage_collection(slack_connector.id)
    await dispatcher.schedule_garbage_collection(drive_connector.id)

    assert _started(client, 0)[0] == SlackGarbageCollectorWorkflow.run
    assert _started(client, 0)[2]["id"] == f"slack-GarbageCollector-{slack_connector.id}"
    assert _started(client, 1)[0] == GoogleDriveGarbageCollectorWorkflow.run


@pytest.mark.asyncio
async def test_signal_falls_back_to_start(dispatcher, client, handle):
    """Test signaling a missing workflow starts it when allowed."""
    handle.signal.side_effect = _not_found()
    start = StartRequest(workflow=SlackMemberJoinedChannelWorkflow.run, arg=ConnectorWorkflowInput(1))

    result = await dispatcher.signal(
        "slack-botJoinedChannel-1", BOT_JOINED_CHANNEL_SIGNAL, ["payload"], start=start
    )

    assert result.signaled is True
    _, _, kwargs = _started(client)
    assert kwargs["start_signal_args"] == ["payload"]

    with pytest.raises(RPCError):
        await dispatcher.signal("slack-botJoinedChannel-1", BOT_JOINED_CHANNEL_SIGNAL)


@pytest.mark.asyncio
async def test_signal_running_workflow(dispatcher, client, handle):
    """Test a running workflow is signaled directly."""
    await dispatcher.signal("googleDrive-incrementalSync-1", NEW_WEBHOOK_SIGNAL)

    handle.signal.assert_awaited_once_with(NEW_WEBHOOK_SIGNAL, args=[])
    client.start_workflow.assert_not_called()


@pytest.mark.asyncio
async def test_slack_permissions(dispatcher, client, store, slack_connector):
    """Test disabling schedules garbage collection and enabling queues a sync."""
    cid = slack_connector.id
    await store.upsert_resource(
        schemas.SyncedResourceUpsert(
            connector_id=cid, external_id="C1", resource_type=ResourceType.CHANNEL, title="general"
        )
    )

    results = await dispatcher.set_connector_permissions(
        cid, {"C1": ResourcePermission.NONE, "C2": ResourcePermission.READ}
    )

    assert len(results) == 2
    c1 = await store.get_resource(cid, "C1")
    assert (c1.permission, c1.title) == (ResourcePermission.NONE, "general")
    assert (await store.get_resource(cid, "C2")).permission == ResourcePermission.READ
    started = [_started(client, i)[0] for i in range(2)]
    assert started == [SlackMemberJoinedChannelWorkflow.run, SlackGarbageCollectorWorkflow.run]


@pytest.mark.asyncio
async def test_drive_permissions(dispatcher, client, store, drive_connector):
    """Test folder selection changes and the full sync they trigger."""
    cid = drive_connector.id
    await store.upsert_resource(
        schemas.SyncedResourceUpsert(
            connector_id=cid, external_id="old-root", resource_type=ResourceType.FOLDER
        )
    )

    await dispatcher.set_connector_permissions(
        cid, {"old-root": ResourcePermission.NONE, "new-root": ResourcePermission.READ}
    )

    assert await store.get_resource(cid, "old-root") is None
    new_root = await store.get_resource(cid, "new-root")
    assert (new_root.resource_type, new_root.parent_id) == (ResourceType.FOLDER, None)
    assert _started(client)[0] == GoogleDriveFullSyncWorkflow.run

    with pytest.raises(SyncweaveException):
        await dispatcher.set_connector_permissions(cid, {"x": ResourcePermission.READ_WRITE})


@pytest.mark.asyncio
async def test_stop_connector_terminates_running_workflows(
    dispatcher, client, handle, slack_connector
):
    """Test known and listed workflows are terminated; finished ones are skipped."""
    cid = slack_connector.id
    listed = {f"slack-syncOneThreadDebounced-{cid}-": [f"slack-syncOneThreadDebounced-{cid}-C1-1.0"]}

    def list_workflows(query):
        ids = next((v for k, v in listed.items() if k in query), [])
        return _executions(*ids)

    client.list_workflows = MagicMock(side_effect=list_workflows)
    handle.terminate.side_effect = [None, _not_found(), None, None]

    terminated = await dispatcher.stop_connector(cid)

    terminated_ids = sorted(c.args[0] for c in client.get_workflow_handle.call_args_list)
    assert terminated_ids == sorted(
        [
            f"slack-workspaceFullSync-{cid}",
            f"slack-botJoinedChannel-{cid}",
            f"slack-GarbageCollector-{cid}",
            f"slack-syncOneThreadDebounced-{cid}-C1-1.0",
        ]
    )
    assert terminated == 3


@pytest.mark.asyncio
async def test_pause_and_resume(dispatcher, client, store, slack_connector):
    """Test pausing stops workflows and resuming starts a full sync."""
    cid = slack_connector.id

    await dispatcher.pause_connector(cid)
    assert (await store.get_connector(cid)).status == ConnectorStatus.PAUSED

    result = await dispatcher.resume_connector(cid)
    assert (await store.get_connector(cid)).status == ConnectorStatus.ACTIVE
    assert result.workflow_id == f"slack-workspaceFullSync-{cid}"


@pytest.mark.asyncio
async def test_delete_connector(dispatcher, store, slack_connector):
    """Test deleting stops workflows and removes the connector."""
    await dispatcher.delete_connector(slack_connector.id)

    assert await store.get_connector(slack_connector.id) is None
    with pytest.raises(ConnectorNotFoundException):
        await dispatcher.get_sync_status(slack_connector.id)


@pytest.mark.asyncio
async def test_get_sync_status(dispatcher, store, slack_connector):
    """Test the status view of a connector."""
    await store.report_progress(slack_connector.id, "10%")

    status = await dispatcher.get_sync_status(slack_connector.id)

    assert status.connector_id == slack_connector.id
    assert status.first_sync_progress == "10%"
