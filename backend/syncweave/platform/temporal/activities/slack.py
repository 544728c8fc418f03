"""Temporal activities for the Slack connector.

Every activity is safe to run more than once: mirror writes are upserts keyed
by ``(connector_id, external_id)`` and index writes replace whole documents.

Documents pushed to the index:
- one per thread: ``slack-<channel_id>-thread-<thread_ts>``
- one per week of non-threaded messages:
  ``slack-<channel_id>-messages-<week_start_ms>-<week_end_ms>``
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from temporalio import activity

from syncweave import schemas
from syncweave.core.datetime_utils import datetime_to_ms, ms_to_datetime, week_start
from syncweave.core.exceptions import SourceApiError
from syncweave.core.logging import ContextualLogger
from syncweave.core.mirror_store import mirror_store
from syncweave.core.shared_models import JoinChannelStatus, ResourcePermission, ResourceType
from syncweave.platform.destinations.document_index import document_index
from syncweave.platform.sources.factory import get_source_client
from syncweave.platform.sources.slack import NOT_FOUND_ERRORS, SlackClient
from syncweave.platform.sync.async_helpers import run_in_waves
from syncweave.platform.temporal.activities._base import activity_logger, load_connector
from syncweave.platform.temporal.types import ChannelInfo, GarbageCollectionSet, SyncChannelResult
from syncweave.platform.temporal.worker_metrics import worker_metrics

# Slack message text beyond this is cut before indexing
MAX_MESSAGE_TEXT_LENGTH = 20_000


def _ts_to_ms(ts: str) -> int:
    """Slack timestamps are ``"<seconds>.<micros>"`` strings."""
    return int(float(ts) * 1000)


def _ms_to_ts(ts_ms: int) -> str:
    return f"{ts_ms / 1000:.6f}"


def _is_threaded(message: Dict[str, Any]) -> bool:
    return bool(message.get("thread_ts"))


def thread_document_id(channel_id: str, thread_ts: str) -> str:
    """Index document id of a thread."""
    return f"slack-{channel_id}-thread-{thread_ts}"


def week_document_id(channel_id: str, start_ts_ms: int, end_ts_ms: int) -> str:
    """Index document id of a week of non-threaded messages."""
    return f"slack-{channel_id}-messages-{start_ts_ms}-{end_ts_ms}"


def _render_messages(messages: List[Dict[str, Any]], user_names: Dict[str, Optional[str]]) -> str:
    lines = []
    for message in messages:
        author = user_names.get(message.get("user") or "") or message.get("username") or "unknown"
        sent_at = ms_to_datetime(_ts_to_ms(message["ts"])).strftime("%Y-%m-%d %H:%M:%S")
        text = (message.get("text") or "")[:MAX_MESSAGE_TEXT_LENGTH]
        lines.append(f">> @{author} [{sent_at}]:\n{text}\n")
    return "\n".join(lines)


async def _index_messages(
    connector: schemas.Connector,
    channel_id: str,
    channel_name: str,
    document_id: str,
    resource_type: ResourceType,
    title: str,
    messages: List[Dict[str, Any]],
) -> None:
    """Push one document for ``messages`` and record it in the mirror."""
    user_ids = sorted({m["user"] for m in messages if m.get("user")})
    user_names = await mirror_store.get_resource_titles(connector.id, user_ids)
    last_ts_ms = max(_ts_to_ms(m["ts"]) for m in messages)

    await document_index.upsert_document(
        schemas.Document(
            document_id=document_id,
            data_source_id=connector.data_source_id,
            title=title,
            text=_render_messages(messages, user_names),
            timestamp_ms=last_ts_ms,
            tags=[f"channel:{channel_name}"],
            parents=[document_id, channel_id],
        )
    )
    await mirror_store.upsert_resource(
        schemas.SyncedResourceUpsert(
            connector_id=connector.id,
            external_id=document_id,
            resource_type=resource_type,
            parent_id=channel_id,
            title=title,
            last_modified_at=ms_to_datetime(last_ts_ms).replace(tzinfo=None),
            permission=ResourcePermission.READ,
            document_id=document_id,
        )
    )


async def _sync_thread(
    client: SlackClient,
    connector: schemas.Connector,
    channel_id: str,
    channel_name: str,
    thread_ts: str,
    logger: ContextualLogger,
) -> None:
    try:
        messages = await client.list_replies(channel_id, thread_ts)
    except SourceApiError as e:
        if e.code not in NOT_FOUND_ERRORS:
            raise
        messages = []
    messages = [m for m in messages if m.get("ts")]
    if not messages:
        logger.info(f"Thread {thread_ts} in {channel_id} has no messages, skipping")
        return

    await _index_messages(
        connector,
        channel_id,
        channel_name,
        thread_document_id(channel_id, thread_ts),
        ResourceType.THREAD,
        f"Thread in #{channel_name}",
        messages,
    )


async def _sync_non_threaded(
    client: SlackClient,
    connector: schemas.Connector,
    channel_id: str,
    channel_name: str,
    start_ts_ms: int,
    end_ts_ms: int,
    logger: ContextualLogger,
) -> None:
    messages: List[Dict[str, Any]] = []
    cursor: Optional[str] = None
    while True:
        page = await client.list_page(
            channel_id,
            cursor=cursor,
            oldest_ts=_ms_to_ts(start_ts_ms),
            latest_ts=_ms_to_ts(end_ts_ms),
        )
        for message in page.items:
            if not message.get("ts") or _is_threaded(message):
                continue
            # Slack bounds are inclusive; the week end is not
            if start_ts_ms <= _ts_to_ms(message["ts"]) < end_ts_ms:
                messages.append(message)
        cursor = page.next_cursor
        if not cursor:
            break

    if not messages:
        logger.info(f"No non-threaded messages in {channel_id} for week starting {start_ts_ms}")
        return

    messages.sort(key=lambda m: float(m["ts"]))
    week_label = ms_to_datetime(start_ts_ms).strftime("%Y-%m-%d")
    await _index_messages(
        connector,
        channel_id,
        channel_name,
        week_document_id(channel_id, start_ts_ms, end_ts_ms),
        ResourceType.MESSAGE,
        f"Messages in #{channel_name} (week of {week_label})",
        messages,
    )


@activity.defn
async def fetch_users_activity(connector_id: int) -> int:
    """Mirror the workspace user directory (used to render message authors)."""
    connector = await load_connector(mirror_store, connector_id)
    logger = activity_logger(connector)

    async with worker_metrics.track_activity(
        "fetch_users_activity", connector_id=connector_id, provider=connector.provider.value
    ):
        async with await get_source_client(connector) as client:
            users = await client.list_users()

        records = [
            schemas.SyncedResourceUpsert(
                connector_id=connector_id,
                external_id=user["id"],
                resource_type=ResourceType.USER,
                title=(user.get("profile") or {}).get("real_name") or user.get("name"),
                permission=ResourcePermission.READ,
            )
            for user in users
            if user.get("id")
        ]
        await mirror_store.upsert_resources(records)
        logger.info(f"Mirrored {len(records)} users")
        return len(records)


@activity.defn
async def get_channels_activity(connector_id: int, joined_only: bool) -> List[ChannelInfo]:
    """List the workspace channels.

    With ``joined_only``, only channels the bot is a member of and that were not
    disabled (permission ``none``) in the mirror are returned.
    """
    connector = await load_connector(mirror_store, connector_id)
    async with await get_source_client(connector) as client:
        containers = await client.list_containers()

    channels = [ChannelInfo(id=c.id, name=c.name, is_member=c.is_member) for c in containers]
    if not joined_only:
        return channels

    disabled = {
        r.external_id
        for r in await mirror_store.list_resources(
            connector_id,
            schemas.ResourceFilter(
                resource_type=ResourceType.CHANNEL, permission=ResourcePermission.NONE
            ),
        )
    }
    return [c for c in channels if c.is_member and c.id not in disabled]


@activity.defn
async def get_channel_activity(connector_id: int, channel_id: str) -> Optional[ChannelInfo]:
    """Look up one channel; None when it does not exist upstream."""
    connector = await load_connector(mirror_store, connector_id)
    async with await get_source_client(connector) as client:
        channel = await client.fetch_object(channel_id)
    if channel is None:
        return None
    return ChannelInfo(
        id=channel.get("id"), name=channel.get("name"), is_member=bool(channel.get("is_member"))
    )


@activity.defn
async def join_channel_activity(connector_id: int, channel_id: str) -> str:
    """Make the bot a member of a channel and mirror the channel.

    Returns:
        A JoinChannelStatus value
    """
    connector = await load_connector(mirror_store, connector_id)
    logger = activity_logger(connector, channel_id=channel_id)

    async with await get_source_client(connector) as client:
        status = await client.join_container(channel_id)
        if status not in (JoinChannelStatus.JOINED, JoinChannelStatus.ALREADY_MEMBER):
            logger.warning(f"Could not join channel {channel_id}: {status.value}")
            return status.value
        channel = await client.fetch_object(channel_id)

    existing = await mirror_store.get_resource(connector_id, channel_id)
    await mirror_store.upsert_resource(
        schemas.SyncedResourceUpsert(
            connector_id=connector_id,
            external_id=channel_id,
            resource_type=ResourceType.CHANNEL,
            title=(channel or {}).get("name"),
            permission=existing.permission if existing else ResourcePermission.READ_WRITE,
        )
    )
    logger.info(f"Channel {channel_id}: {status.value}")
    return status.value


@activity.defn
async def sync_channel_activity(
    channel_id: str,
    channel_name: str,
    connector_id: int,
    from_ts: Optional[int],
    weeks_synced: Dict[str, bool],
    cursor: Optional[str],
) -> SyncChannelResult:
    """Sync one page of channel history.

    Threads found on the page are synced whole; non-threaded messages are synced
    by week bucket, skipping weeks already in ``weeks_synced``.

    Args:
        channel_id: Channel to sync
        channel_name: Channel name, used in document titles
        connector_id: Connector the channel belongs to
        from_ts: Only history after this epoch-ms timestamp, when set
        weeks_synced: Week buckets already synced during this channel run
        cursor: Slack history cursor, None for the first page

    Returns:
        The next cursor (None when history is exhausted) and the updated week set
    """
    connector = await load_connector(mirror_store, connector_id)
    logger = activity_logger(connector, channel_id=channel_id)
    weeks = dict(weeks_synced or {})

    async with worker_metrics.track_activity(
        "sync_channel_activity",
        connector_id=connector_id,
        provider=connector.provider.value,
        metadata={"channel_id": channel_id},
    ):
        async with await get_source_client(connector) as client:
            page = await client.list_page(
                channel_id,
                cursor=cursor,
                oldest_ts=_ms_to_ts(from_ts) if from_ts else None,
            )

            thread_ts_list: List[str] = []
            week_ranges: List[tuple] = []
            for message in page.items:
                if not message.get("ts"):
                    logger.warning(f"Skipping message without ts in {channel_id}")
                    continue

                if _is_threaded(message):
                    if message["thread_ts"] not in thread_ts_list:
                        thread_ts_list.append(message["thread_ts"])
                    continue

                start = week_start(ms_to_datetime(_ts_to_ms(message["ts"])))
                start_ms = datetime_to_ms(start)
                if str(start_ms) not in weeks:
                    weeks[str(start_ms)] = True
                    week_ranges.append((start_ms, datetime_to_ms(start + timedelta(days=7))))

            await run_in_waves(
                thread_ts_list,
                lambda ts: _sync_thread(client, connector, channel_id, channel_name, ts, logger),
            )
            await run_in_waves(
                week_ranges,
                lambda r: _sync_non_threaded(
                    client, connector, channel_id, channel_name, r[0], r[1], logger
                ),
            )

    logger.info(
        f"Synced page of #{channel_name}: {len(thread_ts_list)} threads, "
        f"{len(week_ranges)} weeks, more={page.next_cursor is not None}"
    )
    return SyncChannelResult(next_cursor=page.next_cursor, weeks_synced=weeks)


@activity.defn
async def sync_thread_activity(
    channel_id: str, channel_name: str, thread_ts: str, connector_id: int
) -> None:
    """Sync one whole thread into a single document."""
    connector = await load_connector(mirror_store, connector_id)
    logger = activity_logger(connector, channel_id=channel_id, thread_ts=thread_ts)
    async with worker_metrics.track_activity(
        "sync_thread_activity", connector_id=connector_id, provider=connector.provider.value
    ):
        async with await get_source_client(connector) as client:
            await _sync_thread(client, connector, channel_id, channel_name, thread_ts, logger)


@activity.defn
async def sync_non_threaded_activity(
    channel_id: str, channel_name: str, start_ts_ms: int, end_ts_ms: int, connector_id: int
) -> None:
    """Sync the non-threaded messages of ``[start_ts_ms, end_ts_ms)`` into one document."""
    connector = await load_connector(mirror_store, connector_id)
    logger = activity_logger(connector, channel_id=channel_id)
    async with worker_metrics.track_activity(
        "sync_non_threaded_activity", connector_id=connector_id, provider=connector.provider.value
    ):
        async with await get_source_client(connector) as client:
            await _sync_non_threaded(
                client, connector, channel_id, channel_name, start_ts_ms, end_ts_ms, logger
            )


@activity.defn
async def get_channels_to_garbage_collect_activity(connector_id: int) -> GarbageCollectionSet:
    """Diff mirrored channels against the channels the bot can still read.

    Channels gone upstream (deleted, archived, bot removed) leave both the
    mirror and the index. Channels disabled with permission ``none`` only
    leave the index.
    """
    connector = await load_connector(mirror_store, connector_id)
    logger = activity_logger(connector)

    async with await get_source_client(connector) as client:
        upstream = {c.id for c in await client.list_containers() if c.id and c.is_member}

    local = await mirror_store.list_resources(
        connector_id, schemas.ResourceFilter(resource_type=ResourceType.CHANNEL)
    )
    gc_set = GarbageCollectionSet(
        to_delete_from_mirror=[r.external_id for r in local if r.external_id not in upstream],
        to_delete_from_index=[
            r.external_id
            for r in local
            if r.external_id not in upstream or r.permission == ResourcePermission.NONE
        ],
    )
    logger.info(
        f"Garbage collection: {len(gc_set.to_delete_from_mirror)} channels to drop from mirror, "
        f"{len(gc_set.to_delete_from_index)} from index"
    )
    return gc_set


@activity.defn
async def delete_channel_activity(channel_id: str, connector_id: int) -> int:
    """Delete a channel's documents from the index and their mirror rows.

    Returns:
        Number of documents deleted
    """
    connector = await load_connector(mirror_store, connector_id)
    logger = activity_logger(connector, channel_id=channel_id)

    children = await mirror_store.list_resources(
        connector_id, schemas.ResourceFilter(parent_id=channel_id)
    )
    document_ids = [r.document_id for r in children if r.document_id]
    await run_in_waves(
        document_ids,
        lambda document_id: document_index.delete_document(connector.data_source_id, document_id),
    )
    await mirror_store.delete_children(connector_id, [channel_id])
    logger.info(f"Deleted {len(document_ids)} documents of channel {channel_id}")
    return len(document_ids)


@activity.defn
async def delete_channels_from_mirror_activity(channel_ids: List[str], connector_id: int) -> int:
    """Delete channels and anything still parented to them from the mirror."""
    if not channel_ids:
        return 0
    await mirror_store.delete_children(connector_id, channel_ids)
    return await mirror_store.delete_resources(connector_id, channel_ids)
