"""Temporal activities for the Google Drive connector.

The tenant selects top-level folders (mirror rows of type ``folder`` with no
parent and permission ``read``). Everything below a selected folder is
mirrored; files with text content are also pushed to the index as
``gdrive-<file_id>``.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from temporalio import activity

from syncweave import schemas
from syncweave.core.logging import ContextualLogger
from syncweave.core.mirror_store import mirror_store
from syncweave.core.shared_models import ResourcePermission, ResourceType
from syncweave.platform.cursors import GoogleDriveCursor
from syncweave.platform.cursors.google_drive import CHANGES_STREAM_KEY
from syncweave.platform.destinations.document_index import document_index
from syncweave.platform.sources.factory import get_source_client
from syncweave.platform.sources.google_drive import FOLDER_MIME_TYPE, GoogleDriveClient
from syncweave.platform.sync.async_helpers import run_in_waves
from syncweave.platform.sync.exceptions import EntityProcessingError
from syncweave.platform.temporal.activities._base import activity_logger, load_connector
from syncweave.platform.temporal.types import ChangesPageResult, FolderPageResult
from syncweave.platform.temporal.worker_metrics import worker_metrics


def file_document_id(file_id: str) -> str:
    """Index document id of a Drive file."""
    return f"gdrive-{file_id}"


def _parse_drive_time(value: Optional[str]) -> Optional[datetime]:
    """Drive RFC 3339 timestamps (``2024-01-02T03:04:05.678Z``) to naive UTC."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)


async def _selected_folder_ids(connector_id: int) -> Set[str]:
    folders = await mirror_store.list_resources(
        connector_id,
        schemas.ResourceFilter(
            resource_type=ResourceType.FOLDER,
            permission=ResourcePermission.READ,
            top_level_only=True,
        ),
    )
    return {f.external_id for f in folders}


async def _sync_file(
    client: GoogleDriveClient,
    connector: schemas.Connector,
    file: Dict[str, Any],
    parent_id: str,
    logger: ContextualLogger,
) -> bool:
    """Mirror one file and index its text. Returns False when skipped."""
    file_id = file["id"]
    modified_at = _parse_drive_time(file.get("modifiedTime"))
    existing = await mirror_store.get_resource(connector.id, file_id)
    if (
        existing
        and existing.document_id
        and existing.last_modified_at == modified_at
        and existing.parent_id == parent_id
    ):
        return False

    try:
        text = await client.export_text(file)
    except EntityProcessingError as e:
        logger.warning(f"Skipping file {file_id}: {e}")
        return False

    document_id = file_document_id(file_id) if text is not None else None
    await mirror_store.upsert_resource(
        schemas.SyncedResourceUpsert(
            connector_id=connector.id,
            external_id=file_id,
            resource_type=ResourceType.FILE,
            parent_id=parent_id,
            title=file.get("name"),
            last_modified_at=modified_at,
            permission=ResourcePermission.READ,
            document_id=document_id,
        )
    )
    if document_id is None:
        return True

    parents = await mirror_store.get_resource_parents(connector.id, file_id)
    await document_index.upsert_document(
        schemas.Document(
            document_id=document_id,
            data_source_id=connector.data_source_id,
            title=file.get("name") or file_id,
            text=text,
            source_url=file.get("webViewLink"),
            timestamp_ms=int(modified_at.timestamp() * 1000) if modified_at else None,
            tags=[f"title:{file.get('name')}", f"mimeType:{file.get('mimeType')}"],
            parents=parents,
        )
    )
    return True


async def _upsert_folder(connector_id: int, folder: Dict[str, Any], parent_id: str) -> None:
    await mirror_store.upsert_resource(
        schemas.SyncedResourceUpsert(
            connector_id=connector_id,
            external_id=folder["id"],
            resource_type=ResourceType.FOLDER,
            parent_id=parent_id,
            title=folder.get("name"),
            last_modified_at=_parse_drive_time(folder.get("modifiedTime")),
            permission=ResourcePermission.READ,
        )
    )


async def _delete_resources(connector: schemas.Connector, external_ids: List[str]) -> int:
    """Remove resources from the index (when indexed) and the mirror."""
    resources = await mirror_store.get_resources(connector.id, external_ids)
    document_ids = [r.document_id for r in resources if r.document_id]
    await run_in_waves(
        document_ids,
        lambda document_id: document_index.delete_document(connector.data_source_id, document_id),
    )
    return await mirror_store.delete_resources(connector.id, external_ids)


@activity.defn
async def get_folders_to_sync_activity(connector_id: int) -> List[str]:
    """Folder ids the tenant selected for sync, sorted."""
    return sorted(await _selected_folder_ids(connector_id))


@activity.defn
async def get_start_page_token_activity(connector_id: int) -> str:
    """Current Changes API position, taken before a full sync starts."""
    connector = await load_connector(mirror_store, connector_id)
    async with await get_source_client(connector) as client:
        return await client.get_start_page_token()


@activity.defn
async def save_changes_cursor_activity(connector_id: int, start_page_token: str) -> None:
    """Persist the Changes API position for incremental syncs."""
    await mirror_store.set_cursor(
        connector_id,
        CHANGES_STREAM_KEY,
        GoogleDriveCursor(start_page_token=start_page_token).to_token(),
    )


@activity.defn
async def sync_folder_page_activity(
    connector_id: int, folder_id: str, cursor: Optional[str]
) -> FolderPageResult:
    """Sync one page of a folder's direct children.

    Returns:
        The next page cursor and the subfolders found, for the caller to walk
    """
    connector = await load_connector(mirror_store, connector_id)
    logger = activity_logger(connector, folder_id=folder_id)
    selected = await _selected_folder_ids(connector_id)

    async with worker_metrics.track_activity(
        "sync_folder_page_activity",
        connector_id=connector_id,
        provider=connector.provider.value,
        metadata={"folder_id": folder_id},
    ):
        async with await get_source_client(connector) as client:
            page = await client.list_page(folder_id, cursor=cursor)
            subfolders = [
                item
                for item in page.items
                if item.get("mimeType") == FOLDER_MIME_TYPE and item["id"] not in selected
            ]
            files = [item for item in page.items if item.get("mimeType") != FOLDER_MIME_TYPE]

            for folder in subfolders:
                await _upsert_folder(connector_id, folder, folder_id)
            synced = await run_in_waves(
                files, lambda file: _sync_file(client, connector, file, folder_id, logger)
            )

    files_synced = sum(1 for s in synced if s)
    logger.info(
        f"Folder {folder_id}: {len(subfolders)} subfolders, {files_synced}/{len(files)} files synced"
    )
    return FolderPageResult(
        next_cursor=page.next_cursor,
        subfolder_ids=[f["id"] for f in subfolders],
        files_synced=files_synced,
    )


@activity.defn
async def incremental_sync_changes_activity(connector_id: int) -> ChangesPageResult:
    """Apply one page of Drive changes and advance the stored cursor.

    Changes outside the selected folders are ignored. Replaying a page after a
    crash is harmless: every change is applied as an upsert or a delete.
    """
    connector = await load_connector(mirror_store, connector_id)
    logger = activity_logger(connector)

    cursor = GoogleDriveCursor.from_token(
        await mirror_store.get_cursor(connector_id, CHANGES_STREAM_KEY)
    )
    if cursor is None or not cursor.start_page_token:
        logger.info("No changes cursor yet, waiting for the full sync to record one")
        return ChangesPageResult(has_more=False)

    selected = await _selected_folder_ids(connector_id)
    applied = 0
    async with worker_metrics.track_activity(
        "incremental_sync_changes_activity",
        connector_id=connector_id,
        provider=connector.provider.value,
    ):
        async with await get_source_client(connector) as client:
            page = await client.list_changes(cursor.start_page_token)
            for change in page.changes:
                file_id = change.get("fileId")
                file = change.get("file") or {}
                if not file_id:
                    continue
                if change.get("removed") or file.get("trashed"):
                    if await mirror_store.get_resource(connector_id, file_id):
                        await _delete_resources(connector, [file_id])
                        applied += 1
                    continue

                parent_id = (file.get("parents") or [None])[0]
                if parent_id is None:
                    continue
                if parent_id not in selected and not await mirror_store.get_resource(
                    connector_id, parent_id
                ):
                    continue
                if file_id in selected:
                    continue

                if file.get("mimeType") == FOLDER_MIME_TYPE:
                    await _upsert_folder(connector_id, file, parent_id)
                    applied += 1
                elif await _sync_file(client, connector, file, parent_id, logger):
                    applied += 1

    next_token = page.next_page_token or page.new_start_page_token
    if next_token:
        await mirror_store.set_cursor(
            connector_id,
            CHANGES_STREAM_KEY,
            GoogleDriveCursor(start_page_token=next_token).to_token(),
        )
    logger.info(f"Applied {applied} of {len(page.changes)} Drive changes")
    return ChangesPageResult(has_more=page.next_page_token is not None, changes_applied=applied)


@activity.defn
async def get_files_to_garbage_collect_activity(connector_id: int) -> List[str]:
    """Mirrored files and folders that left the selection or vanished upstream."""
    connector = await load_connector(mirror_store, connector_id)
    logger = activity_logger(connector)
    selected = await _selected_folder_ids(connector_id)

    candidates = []
    for resource_type in (ResourceType.FOLDER, ResourceType.FILE):
        candidates.extend(
            await mirror_store.list_resources(
                connector_id, schemas.ResourceFilter(resource_type=resource_type)
            )
        )
    candidates = [r for r in candidates if r.external_id not in selected]

    to_delete: List[str] = []
    still_selected = []
    for resource in candidates:
        ancestors = await mirror_store.get_resource_parents(connector_id, resource.external_id)
        if ancestors[-1] in selected:
            still_selected.append(resource.external_id)
        else:
            to_delete.append(resource.external_id)

    async with await get_source_client(connector) as client:
        upstream = await run_in_waves(still_selected, client.fetch_object)
    to_delete.extend(
        external_id for external_id, obj in zip(still_selected, upstream) if obj is None
    )

    logger.info(f"Garbage collection: {len(to_delete)} of {len(candidates)} resources to delete")
    return to_delete


@activity.defn
async def garbage_collect_files_activity(connector_id: int, file_ids: List[str]) -> int:
    """Delete files and folders from the index and the mirror."""
    if not file_ids:
        return 0
    connector = await load_connector(mirror_store, connector_id)
    return await _delete_resources(connector, file_ids)
