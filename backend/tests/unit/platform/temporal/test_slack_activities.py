"""Tests for the Slack activities.

Activities run in Temporal's ActivityEnvironment against a SQLite mirror
store, a fake Slack client and a mocked document index.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from temporalio.exceptions import ApplicationError
from temporalio.testing import ActivityEnvironment

from syncweave import schemas
from syncweave.core.exceptions import SourceApiError
from syncweave.core.shared_models import JoinChannelStatus, ResourcePermission, ResourceType
from syncweave.platform.sources._base import Container, Page
from syncweave.platform.temporal.activities import slack as slack_activities
from syncweave.platform.temporal.activities.slack import (
    delete_channel_activity,
    delete_channels_from_mirror_activity,
    fetch_users_activity,
    get_channel_activity,
    get_channels_activity,
    get_channels_to_garbage_collect_activity,
    join_channel_activity,
    sync_channel_activity,
    sync_thread_activity,
    thread_document_id,
    week_document_id,
)

# Sunday 2024-01-07 and Sunday 2024-01-14, 00:00 UTC
WEEK_1_START_MS = 1704585600000
WEEK_2_START_MS = 1705190400000
WEEK_3_START_MS = 1705795200000

THREAD_TS = "1704800000.000000"
MESSAGES = [
    {"ts": "1704700000.000100", "user": "U1", "text": "monday"},
    {"ts": THREAD_TS, "thread_ts": THREAD_TS, "user": "U1", "text": "thread parent"},
    {"ts": "1705000000.000200", "user": "U2", "text": "thursday"},
    {"ts": "1705400000.000300", "user": "U1", "text": "next week"},
]


class FakeSlackClient:
    """In-memory stand-in for SlackClient."""

    def __init__(self, channels=None, messages=None, replies=None, join_status=None):
        self.channels = channels or []
        self.messages = messages or []
        self.replies = replies or {}
        self.join_status = join_status or JoinChannelStatus.JOINED
        self.history_calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return None

    async def list_users(self):
        return [
            {"id": "U1", "name": "alice", "profile": {"real_name": "Alice Liddell"}},
            {"id": "U2", "name": "bob", "profile": {}},
            {"name": "no-id"},
        ]

    async def list_containers(self):
        return [Container(id=c["id"], name=c["name"], is_member=c["is_member"]) for c in self.channels]

    async def fetch_object(self, channel_id):
        for channel in self.channels:
            if channel["id"] == channel_id:
                return channel
        return None

    async def join_container(self, channel_id):
        return self.join_status

    async def list_page(self, channel_id, cursor=None, oldest_ts=None, latest_ts=None):
        self.history_calls.append((cursor, oldest_ts, latest_ts))
        return Page(items=list(self.messages), next_cursor=None if latest_ts else "next-page")

    async def list_replies(self, channel_id, thread_ts):
        if thread_ts not in self.replies:
            raise SourceApiError("slack", "thread_not_found")
        return self.replies[thread_ts]


@pytest.fixture
def index():
    """Mocked document index."""
    index = MagicMock()
    index.upsert_document = AsyncMock()
    index.delete_document = AsyncMock()
    return index


@pytest.fixture
def use_fakes(store, index):
    """Route the activities to the test store and index; yields a client setter."""
    holder = {}

    async def get_source_client(connector):
        return holder["client"]

    with patch.object(slack_activities, "mirror_store", store), patch.object(
        slack_activities, "document_index", index
    ), patch.object(slack_activities, "get_source_client", get_source_client):
        yield lambda client: holder.__setitem__("client", client)


@pytest.fixture
def env():
    """Temporal activity test environment."""
    return ActivityEnvironment()


@pytest.mark.asyncio
async def test_missing_connector_is_non_retryable(env, use_fakes):
    """Test activities for a deleted connector fail permanently."""
    use_fakes(FakeSlackClient())

    with pytest.raises(ApplicationError) as exc_info:
        await env.run(fetch_users_activity, 999)

    assert exc_info.value.non_retryable is True
    assert exc_info.value.type == "ConnectorNotFound"


@pytest.mark.asyncio
async def test_fetch_users_mirrors_directory(env, use_fakes, store, slack_connector):
    """Test users are mirrored with their display names."""
    use_fakes(FakeSlackClient())

    assert await env.run(fetch_users_activity, slack_connector.id) == 2

    titles = await store.get_resource_titles(slack_connector.id, ["U1", "U2"])
    assert titles == {"U1": "Alice Liddell", "U2": "bob"}


@pytest.mark.asyncio
async def test_get_channels_joined_only_skips_non_members_and_disabled(
    env, use_fakes, store, slack_connector
):
    """Test joined_only keeps member channels not disabled by the tenant."""
    use_fakes(
        FakeSlackClient(
            channels=[
                {"id": "C1", "name": "general", "is_member": True},
                {"id": "C2", "name": "random", "is_member": False},
                {"id": "C3", "name": "secret", "is_member": True},
            ]
        )
    )
    await store.upsert_resource(
        schemas.SyncedResourceUpsert(
            connector_id=slack_connector.id,
            external_id="C3",
            resource_type=ResourceType.CHANNEL,
            permission=ResourcePermission.NONE,
        )
    )

    all_channels = await env.run(get_channels_activity, slack_connector.id, False)
    joined = await env.run(get_channels_activity, slack_connector.id, True)

    assert [c.id for c in all_channels] == ["C1", "C2", "C3"]
    assert [c.id for c in joined] == ["C1"]


@pytest.mark.asyncio
async def test_get_channel_missing_returns_none(env, use_fakes, slack_connector):
    """Test an unknown channel reads as None."""
    use_fakes(FakeSlackClient(channels=[{"id": "C1", "name": "general", "is_member": True}]))

    channel = await env.run(get_channel_activity, slack_connector.id, "C1")
    assert (channel.id, channel.name, channel.is_member) == ("C1", "general", True)
    assert await env.run(get_channel_activity, slack_connector.id, "C404") is None


@pytest.mark.asyncio
async def test_join_channel_mirrors_channel_with_default_permission(
    env, use_fakes, store, slack_connector
):
    """Test a joined channel is mirrored read_write unless a permission exists."""
    use_fakes(FakeSlackClient(channels=[{"id": "C1", "name": "general", "is_member": True}]))

    assert await env.run(join_channel_activity, slack_connector.id, "C1") == "joined"

    channel = await store.get_resource(slack_connector.id, "C1")
    assert channel.resource_type == ResourceType.CHANNEL
    assert channel.title == "general"
    assert channel.permission == ResourcePermission.READ_WRITE


@pytest.mark.asyncio
async def test_join_channel_keeps_existing_permission(env, use_fakes, store, slack_connector):
    """Test joining again does not override the tenant's permission."""
    use_fakes(
        FakeSlackClient(
            channels=[{"id": "C1", "name": "general", "is_member": True}],
            join_status=JoinChannelStatus.ALREADY_MEMBER,
        )
    )
    await store.upsert_resource(
        schemas.SyncedResourceUpsert(
            connector_id=slack_connector.id,
            external_id="C1",
            resource_type=ResourceType.CHANNEL,
            permission=ResourcePermission.READ,
        )
    )

    assert await env.run(join_channel_activity, slack_connector.id, "C1") == "already_member"
    assert (await store.get_resource(slack_connector.id, "C1")).permission == ResourcePermission.READ


@pytest.mark.asyncio
async def test_join_channel_failure_writes_nothing(env, use_fakes, store, slack_connector):
    """Test a failed join is returned as a status and leaves the mirror untouched."""
    use_fakes(FakeSlackClient(join_status=JoinChannelStatus.NOT_FOUND))

    assert await env.run(join_channel_activity, slack_connector.id, "C404") == "not_found"
    assert await store.get_resource(slack_connector.id, "C404") is None


@pytest.mark.asyncio
async def test_sync_channel_page_indexes_threads_and_new_weeks(
    env, use_fakes, store, index, slack_connector
):
    """Test one history page yields one document per thread and per unsynced week."""
    cid = slack_connector.id
    client = FakeSlackClient(
        messages=MESSAGES,
        replies={
            THREAD_TS: [
                {"ts": THREAD_TS, "user": "U1", "text": "thread parent"},
                {"ts": "1704800100.000000", "user": "U2", "text": "reply"},
            ]
        },
    )
    use_fakes(client)
    await store.upsert_resource(
        schemas.SyncedResourceUpsert(
            connector_id=cid, external_id="U1", resource_type=ResourceType.USER, title="Alice"
        )
    )

    result = await env.run(
        sync_channel_activity, "C1", "general", cid, None, {str(WEEK_2_START_MS): True}, None
    )

    assert result.next_cursor == "next-page"
    assert result.weeks_synced == {str(WEEK_1_START_MS): True, str(WEEK_2_START_MS): True}

    documents = {c.args[0].document_id: c.args[0] for c in index.upsert_document.call_args_list}
    thread_id = thread_document_id("C1", THREAD_TS)
    week_id = week_document_id("C1", WEEK_1_START_MS, WEEK_2_START_MS)
    assert set(documents) == {thread_id, week_id}

    week_doc = documents[week_id]
    assert week_doc.data_source_id == "ds-slack"
    assert week_doc.tags == ["channel:general"]
    assert week_doc.parents == [week_id, "C1"]
    assert "@Alice" in week_doc.text
    assert "monday" in week_doc.text and "thursday" in week_doc.text
    assert "next week" not in week_doc.text
    assert "thread parent" not in week_doc.text
    assert "reply" in documents[thread_id].text

    # The week lookup is bounded to the week, first page only
    assert (None, f"{WEEK_1_START_MS / 1000:.6f}", f"{WEEK_2_START_MS / 1000:.6f}") in (
        client.history_calls
    )

    rows = await store.list_resources(cid, schemas.ResourceFilter(parent_id="C1"))
    assert {(r.external_id, r.resource_type) for r in rows} == {
        (thread_id, ResourceType.THREAD),
        (week_id, ResourceType.MESSAGE),
    }
    assert all(r.document_id == r.external_id for r in rows)


@pytest.mark.asyncio
async def test_sync_channel_page_from_ts_bounds_history(env, use_fakes, slack_connector):
    """Test from_ts is forwarded as the oldest bound of the history page."""
    client = FakeSlackClient(messages=[])
    use_fakes(client)

    result = await env.run(
        sync_channel_activity, "C1", "general", slack_connector.id, WEEK_3_START_MS, {}, "cur"
    )

    assert result.weeks_synced == {}
    assert client.history_calls == [("cur", f"{WEEK_3_START_MS / 1000:.6f}", None)]


@pytest.mark.asyncio
async def test_sync_deleted_thread_is_skipped(env, use_fakes, index, slack_connector):
    """Test a thread gone upstream produces no document."""
    use_fakes(FakeSlackClient())

    await env.run(sync_thread_activity, "C1", "general", THREAD_TS, slack_connector.id)

    index.upsert_document.assert_not_called()


@pytest.mark.asyncio
async def test_garbage_collection_set(env, use_fakes, store, slack_connector):
    """Test gone channels leave mirror and index, disabled ones only the index."""
    cid = slack_connector.id
    use_fakes(
        FakeSlackClient(
            channels=[
                {"id": "C1", "name": "general", "is_member": True},
                {"id": "C3", "name": "secret", "is_member": True},
                {"id": "C4", "name": "left", "is_member": False},
            ]
        )
    )
    await store.upsert_resources(
        [
            schemas.SyncedResourceUpsert(
                connector_id=cid, external_id="C1", resource_type=ResourceType.CHANNEL
            ),
            schemas.SyncedResourceUpsert(
                connector_id=cid, external_id="C2", resource_type=ResourceType.CHANNEL
            ),
            schemas.SyncedResourceUpsert(
                connector_id=cid,
                external_id="C3",
                resource_type=ResourceType.CHANNEL,
                permission=ResourcePermission.NONE,
            ),
            schemas.SyncedResourceUpsert(
                connector_id=cid, external_id="C4", resource_type=ResourceType.CHANNEL
            ),
        ]
    )

    gc_set = await env.run(get_channels_to_garbage_collect_activity, cid)

    assert gc_set.to_delete_from_mirror == ["C2", "C4"]
    assert gc_set.to_delete_from_index == ["C2", "C3", "C4"]


@pytest.mark.asyncio
async def test_delete_channel_purges_documents(env, use_fakes, store, index, slack_connector):
    """Test a channel's documents leave the index and the mirror; the channel row stays."""
    cid = slack_connector.id
    use_fakes(FakeSlackClient())
    await store.upsert_resources(
        [
            schemas.SyncedResourceUpsert(
                connector_id=cid, external_id="C1", resource_type=ResourceType.CHANNEL
            ),
            schemas.SyncedResourceUpsert(
                connector_id=cid,
                external_id="doc-a",
                resource_type=ResourceType.THREAD,
                parent_id="C1",
                document_id="doc-a",
            ),
            schemas.SyncedResourceUpsert(
                connector_id=cid,
                external_id="doc-b",
                resource_type=ResourceType.MESSAGE,
                parent_id="C1",
                document_id="doc-b",
            ),
        ]
    )

    assert await env.run(delete_channel_activity, "C1", cid) == 2

    deleted = sorted(c.args[1] for c in index.delete_document.call_args_list)
    assert deleted == ["doc-a", "doc-b"]
    assert [r.external_id for r in await store.list_resources(cid)] == ["C1"]


@pytest.mark.asyncio
async def test_delete_channels_from_mirror(env, use_fakes, store, slack_connector):
    """Test channel rows and leftovers under them are removed from the mirror."""
    cid = slack_connector.id
    use_fakes(FakeSlackClient())
    await store.upsert_resources(
        [
            schemas.SyncedResourceUpsert(
                connector_id=cid, external_id="C2", resource_type=ResourceType.CHANNEL
            ),
            schemas.SyncedResourceUpsert(
                connector_id=cid,
                external_id="doc-x",
                resource_type=ResourceType.THREAD,
                parent_id="C2",
            ),
        ]
    )

    assert await env.run(delete_channels_from_mirror_activity, ["C2"], cid) == 1
    assert await env.run(delete_channels_from_mirror_activity, [], cid) == 0
    assert await store.list_resources(cid) == []


@pytest.mark.asyncio
async def test_sync_channel_page_twice_is_idempotent(
    env, use_fakes, store, index, slack_connector
):
    """Test replaying a page sync leaves the same rows and pushes the same documents."""
    cid = slack_connector.id
    use_fakes(
        FakeSlackClient(
            messages=MESSAGES,
            replies={THREAD_TS: [{"ts": THREAD_TS, "user": "U1", "text": "thread parent"}]},
        )
    )

    first = await env.run(sync_channel_activity, "C1", "general", cid, None, {}, None)
    rows_after_first = await store.list_resources(cid)
    first_documents = [c.args[0] for c in index.upsert_document.call_args_list]
    index.upsert_document.reset_mock()

    second = await env.run(sync_channel_activity, "C1", "general", cid, None, {}, None)
    rows_after_second = await store.list_resources(cid)
    second_documents = [c.args[0] for c in index.upsert_document.call_args_list]

    assert second == first
    assert rows_after_second == rows_after_first
    external_ids = [r.external_id for r in rows_after_second]
    assert len(external_ids) == len(set(external_ids)) == 3
    assert sorted(d.document_id for d in second_documents) == sorted(
        d.document_id for d in first_documents
    )
    assert second_documents == first_documents


@pytest.mark.asyncio
async def test_garbage_collection_leaves_upstream_member_channels(
    env, use_fakes, store, index, slack_connector
):
    """Test running the collection steps in order leaves exactly the joined channels."""
    cid = slack_connector.id
    upstream = [
        {"id": "C1", "name": "general", "is_member": True},
        {"id": "C3", "name": "secret", "is_member": True},
        {"id": "C4", "name": "left", "is_member": False},
    ]
    use_fakes(FakeSlackClient(channels=upstream))
    resources = []
    for channel_id, permission in (
        ("C1", ResourcePermission.READ_WRITE),
        ("C2", ResourcePermission.READ_WRITE),
        ("C3", ResourcePermission.NONE),
        ("C4", ResourcePermission.READ_WRITE),
    ):
        resources += [
            schemas.SyncedResourceUpsert(
                connector_id=cid,
                external_id=channel_id,
                resource_type=ResourceType.CHANNEL,
                permission=permission,
            ),
            schemas.SyncedResourceUpsert(
                connector_id=cid,
                external_id=f"doc-{channel_id}",
                resource_type=ResourceType.MESSAGE,
                parent_id=channel_id,
                document_id=f"doc-{channel_id}",
            ),
        ]
    await store.upsert_resources(resources)

    gc_set = await env.run(get_channels_to_garbage_collect_activity, cid)
    for channel_id in gc_set.to_delete_from_index:
        await env.run(delete_channel_activity, channel_id, cid)
    await env.run(delete_channels_from_mirror_activity, gc_set.to_delete_from_mirror, cid)

    members = {c["id"] for c in upstream if c["is_member"]}
    channels = await store.list_resources(
        cid, schemas.ResourceFilter(resource_type=ResourceType.CHANNEL)
    )
    assert {c.external_id for c in channels} == members
    documents_left = await store.list_resources(
        cid, schemas.ResourceFilter(resource_type=ResourceType.MESSAGE)
    )
    assert [r.external_id for r in documents_left] == ["doc-C1"]
    deleted = sorted(c.args[1] for c in index.delete_document.call_args_list)
    assert deleted == ["doc-C2", "doc-C3", "doc-C4"]


class WorkspaceSlackClient(FakeSlackClient):
    """Fake whose channels each hold a single page of history."""

    def __init__(self, history):
        super().__init__(
            channels=[{"id": cid, "name": name, "is_member": True} for cid, name in history]
        )
        self.history = {cid: messages for (cid, _), messages in history.items()}

    async def list_page(self, channel_id, cursor=None, oldest_ts=None, latest_ts=None):
        self.history_calls.append((channel_id, cursor, oldest_ts, latest_ts))
        return Page(items=list(self.history[channel_id]), next_cursor=None)


@pytest.mark.asyncio
async def test_three_channel_workspace_stores_every_message(
    env, use_fakes, store, index, slack_connector
):
    """Test 3 channels of 5 unthreaded messages end up as 15 stored message records.

    Each message sits in its own week, so every week document carries one message.
    """
    cid = slack_connector.id
    week_s = 7 * 24 * 3600
    history = {
        (channel_id, name): [
            {
                "ts": f"{WEEK_1_START_MS // 1000 + week * week_s + 3600}.00010{n}",
                "text": f"{name} {week}",
            }
            for week in range(5)
        ]
        for n, (channel_id, name) in enumerate(
            [("C1", "general"), ("C2", "eng"), ("C3", "random")]
        )
    }
    use_fakes(WorkspaceSlackClient(history))

    for channel_id, name in history:
        assert await env.run(join_channel_activity, cid, channel_id) == "joined"
        weeks, cursor = {}, None
        while True:
            result = await env.run(
                sync_channel_activity, channel_id, name, cid, None, weeks, cursor
            )
            weeks, cursor = result.weeks_synced, result.next_cursor
            if cursor is None:
                break
        assert len(weeks) == 5

    records = await store.list_resources(
        cid, schemas.ResourceFilter(resource_type=ResourceType.MESSAGE)
    )
    assert len(records) == 15
    assert {r.parent_id for r in records} == {"C1", "C2", "C3"}
    assert all(sum(r.parent_id == c for r in records) == 5 for c in ("C1", "C2", "C3"))

    documents = [c.args[0] for c in index.upsert_document.call_args_list]
    assert len(documents) == len({d.document_id for d in documents}) == 15
    texts = "\n".join(d.text for d in documents)
    assert all(f"{name} {week}" in texts for (_, name) in history for week in range(5))
