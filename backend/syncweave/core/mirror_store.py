"""Local mirror store: persisted per-connector sync state.

Holds connectors, the resources mirrored from their source, and the cursors
used to resume sync streams. Activities are the only writers; every write is
an upsert or an idempotent delete so re-executed activities converge.
"""

from contextlib import AbstractAsyncContextManager
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from syncweave import crud, schemas
from syncweave.core.datetime_utils import utc_now_naive
from syncweave.core.logging import logger
from syncweave.core.shared_models import ConnectorStatus, SyncStatus
from syncweave.db.session import get_db_context

# Guards ancestor walks against corrupted (cyclic) parent links
MAX_PARENT_DEPTH = 64

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class MirrorStore:
    """Service over the mirror store tables."""

    def __init__(self, session_factory: SessionFactory = get_db_context):
        """Initialize the store.

        Args:
            session_factory: Returns an async context manager yielding a session
        """
        self._session_factory = session_factory

    # Connectors

    async def create_connector(self, obj_in: schemas.ConnectorCreate) -> schemas.Connector:
        """Register a connector."""
        async with self._session_factory() as db:
            db_obj = await crud.connector.create(db, obj_in=obj_in)
            logger.info(f"Created {obj_in.provider.value} connector {db_obj.id}")
            return schemas.Connector.model_validate(db_obj)

    async def get_connector(self, connector_id: int) -> Optional[schemas.Connector]:
        """Get a connector, or None if it does not exist."""
        async with self._session_factory() as db:
            db_obj = await crud.connector.get(db, connector_id)
            return schemas.Connector.model_validate(db_obj) if db_obj else None

    async def delete_connector(self, connector_id: int) -> bool:
        """Delete a connector with its resources and cursors."""
        async with self._session_factory() as db:
            return await crud.connector.remove(db, connector_id)

    async def set_connector_status(self, connector_id: int, status: ConnectorStatus) -> bool:
        """Set a connector's lifecycle status."""
        async with self._session_factory() as db:
            return await crud.connector.update_fields(db, connector_id, {"status": status.value})

    # Resources

    async def upsert_resource(self, record: schemas.SyncedResourceUpsert) -> None:
        """Insert or update one resource."""
        await self.upsert_resources([record])

    async def upsert_resources(self, records: Sequence[schemas.SyncedResourceUpsert]) -> int:
        """Insert or update resources, last write wins."""
        if not records:
            return 0
        async with self._session_factory() as db:
            return await crud.synced_resource.upsert_many(db, records)

    async def delete_resources(self, connector_id: int, external_ids: Sequence[str]) -> int:
        """Delete resources by external id; unknown ids are ignored."""
        if not external_ids:
            return 0
        async with self._session_factory() as db:
            return await crud.synced_resource.remove_many(db, connector_id, external_ids)

    async def delete_children(self, connector_id: int, parent_ids: Sequence[str]) -> int:
        """Delete resources whose parent is one of ``parent_ids``."""
        async with self._session_factory() as db:
            return await crud.synced_resource.remove_children(db, connector_id, parent_ids)

    async def get_resource(
        self, connector_id: int, external_id: str
    ) -> Optional[schemas.SyncedResource]:
        """Get one resource by external id."""
        async with self._session_factory() as db:
            db_obj = await crud.synced_resource.get_by_external_id(db, connector_id, external_id)
            return schemas.SyncedResource.model_validate(db_obj) if db_obj else None

    async def list_resources(
        self, connector_id: int, resource_filter: Optional[schemas.ResourceFilter] = None
    ) -> List[schemas.SyncedResource]:
        """List a connector's resources."""
        async with self._session_factory() as db:
            rows = await crud.synced_resource.list(db, connector_id, resource_filter)
            return [schemas.SyncedResource.model_validate(r) for r in rows]

    async def get_resources(
        self, connector_id: int, external_ids: Sequence[str]
    ) -> List[schemas.SyncedResource]:
        """Get resources by external id; unknown ids are omitted."""
        async with self._session_factory() as db:
            rows = await crud.synced_resource.get_many_by_external_ids(
                db, connector_id, external_ids
            )
            return [schemas.SyncedResource.model_validate(r) for r in rows]

    async def get_resource_titles(
        self, connector_id: int, external_ids: Sequence[str]
    ) -> Dict[str, Optional[str]]:
        """Map external ids to their titles; unknown ids are omitted."""
        async with self._session_factory() as db:
            rows = await crud.synced_resource.get_many_by_external_ids(
                db, connector_id, external_ids
            )
            return {r.external_id: r.title for r in rows}

    async def get_resource_parents(self, connector_id: int, external_id: str) -> List[str]:
        """Return ``external_id`` followed by its ancestors, nearest first.

        The walk stops at the first id missing from the mirror (that id is still
        included), at a top-level resource, or on a cycle.
        """
        parents = [external_id]
        seen = {external_id}
        async with self._session_factory() as db:
            current = external_id
            for _ in range(MAX_PARENT_DEPTH):
                db_obj = await crud.synced_resource.get_by_external_id(db, connector_id, current)
                if not db_obj or not db_obj.parent_id or db_obj.parent_id in seen:
                    break
                current = db_obj.parent_id
                seen.add(current)
                parents.append(current)
        return parents

    # Cursors

    async def get_cursor(self, connector_id: int, stream_key: str) -> Optional[str]:
        """Get a stream's resumption token, or None."""
        async with self._session_factory() as db:
            return await crud.sync_cursor.get_token(db, connector_id, stream_key)

    async def set_cursor(self, connector_id: int, stream_key: str, token: str) -> None:
        """Persist a stream's resumption token."""
        async with self._session_factory() as db:
            await crud.sync_cursor.set_token(db, connector_id, stream_key, token)

    async def delete_cursor(self, connector_id: int, stream_key: str) -> None:
        """Forget a stream's resumption token."""
        async with self._session_factory() as db:
            await crud.sync_cursor.remove(db, connector_id, stream_key)

    # Sync status

    async def _update_connector(self, connector_id: int, values: dict) -> None:
        async with self._session_factory() as db:
            updated = await crud.connector.update_fields(db, connector_id, values)
        if not updated:
            logger.warning(f"Connector {connector_id} not found while updating sync status")

    async def mark_sync_success(self, connector_id: int) -> None:
        """Record a successful sync run."""
        now = utc_now_naive()
        connector = await self.get_connector(connector_id)
        values = {
            "last_sync_status": SyncStatus.SUCCEEDED.value,
            "last_sync_success_at": now,
            "last_sync_finished_at": now,
            "error_reason": None,
        }
        if connector and connector.status == ConnectorStatus.ERROR:
            values["status"] = ConnectorStatus.ACTIVE.value
        await self._update_connector(connector_id, values)
        logger.with_context(connector_id=connector_id).info("Sync marked successful")

    async def mark_sync_failure(self, connector_id: int, reason: str) -> None:
        """Record a failed sync run; the mirror keeps the last successful data."""
        await self._update_connector(
            connector_id,
            {
                "status": ConnectorStatus.ERROR.value,
                "last_sync_status": SyncStatus.FAILED.value,
                "last_sync_finished_at": utc_now_naive(),
                "error_reason": reason,
            },
        )
        logger.with_context(connector_id=connector_id).error(f"Sync marked failed: {reason}")

    async def mark_sync_degraded(self, connector_id: int, reason: str) -> None:
        """Record a sync run that finished with some sub-entities failing."""
        await self._update_connector(
            connector_id,
            {
                "last_sync_status": SyncStatus.DEGRADED.value,
                "last_sync_finished_at": utc_now_naive(),
                "error_reason": reason,
            },
        )
        logger.with_context(connector_id=connector_id).warning(f"Sync marked degraded: {reason}")

    async def report_progress(self, connector_id: int, progress: str) -> None:
        """Store the initial sync progress label (e.g. ``"33%"``)."""
        await self._update_connector(connector_id, {"first_sync_progress": progress})

    async def get_sync_status(self, connector_id: int) -> Optional[schemas.ConnectorSyncStatus]:
        """Operator-visible sync status, or None if the connector does not exist."""
        async with self._session_factory() as db:
            db_obj = await crud.connector.get(db, connector_id)
            return schemas.ConnectorSyncStatus.model_validate(db_obj) if db_obj else None


mirror_store = MirrorStore()
