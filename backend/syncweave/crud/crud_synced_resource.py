"""CRUD operations for synced resources."""

from typing import List, Optional, Sequence

from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from syncweave.core.datetime_utils import utc_now_naive
from syncweave.crud._dialect import dialect_insert
from syncweave.models.synced_resource import SyncedResource
from syncweave.schemas.synced_resource import ResourceFilter, SyncedResourceUpsert

# Keeps each statement under SQLite's bound parameter limit
UPSERT_BATCH_SIZE = 500
DELETE_BATCH_SIZE = 1000

_MUTABLE_COLUMNS = (
    "resource_type",
    "parent_id",
    "title",
    "last_modified_at",
    "permission",
    "document_id",
)


class CRUDSyncedResource:
    """CRUD operations for synced resources.

    All writes are upserts keyed by ``(connector_id, external_id)`` so that an
    activity re-executed after a crash converges to the same rows.
    """

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = SyncedResource

    async def get_by_external_id(
        self, db: AsyncSession, connector_id: int, external_id: str
    ) -> Optional[SyncedResource]:
        """Get one resource by its external id.

        Args:
            db: Database session
            connector_id: Connector ID
            external_id: Stable id of the object upstream

        Returns:
            SyncedResource if found, None otherwise
        """
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.connector_id == connector_id,
                    self.model.external_id == external_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_many_by_external_ids(
        self, db: AsyncSession, connector_id: int, external_ids: Sequence[str]
    ) -> List[SyncedResource]:
        """Get resources by external ids (missing ids are ignored)."""
        if not external_ids:
            return []
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.connector_id == connector_id,
                    self.model.external_id.in_(list(external_ids)),
                )
            )
        )
        return list(result.scalars().all())

    async def list(
        self,
        db: AsyncSession,
        connector_id: int,
        resource_filter: Optional[ResourceFilter] = None,
    ) -> List[SyncedResource]:
        """List a connector's resources, ordered by external id.

        Args:
            db: Database session
            connector_id: Connector ID
            resource_filter: Optional type/parent/permission filters

        Returns:
            Matching resources
        """
        conditions = [self.model.connector_id == connector_id]
        if resource_filter:
            if resource_filter.resource_type:
                conditions.append(self.model.resource_type == resource_filter.resource_type.value)
            if resource_filter.parent_id is not None:
                conditions.append(self.model.parent_id == resource_filter.parent_id)
            if resource_filter.permission:
                conditions.append(self.model.permission == resource_filter.permission.value)
            if resource_filter.top_level_only:
                conditions.append(self.model.parent_id.is_(None))

        result = await db.execute(
            select(self.model).where(and_(*conditions)).order_by(self.model.external_id)
        )
        return list(result.scalars().all())

    async def upsert_many(self, db: AsyncSession, objs_in: Sequence[SyncedResourceUpsert]) -> int:
        """Insert or update resources (last write wins on mutable fields).

        Args:
            db: Database session
            objs_in: Resources to write

        Returns:
            Number of resources written
        """
        if not objs_in:
            return 0

        now = utc_now_naive()
        # Later duplicates in the same batch win, one row per key per statement
        deduped = {(o.connector_id, o.external_id): o for o in objs_in}
        rows = [
            {
                "connector_id": o.connector_id,
                "external_id": o.external_id,
                "resource_type": o.resource_type.value,
                "parent_id": o.parent_id,
                "title": o.title,
                "last_modified_at": o.last_modified_at,
                "permission": o.permission.value,
                "document_id": o.document_id,
                "created_at": now,
                "modified_at": now,
            }
            for o in deduped.values()
        ]

        for start in range(0, len(rows), UPSERT_BATCH_SIZE):
            stmt = dialect_insert(db, self.model).values(rows[start : start + UPSERT_BATCH_SIZE])
            set_ = {col: getattr(stmt.excluded, col) for col in _MUTABLE_COLUMNS}
            set_["modified_at"] = now
            stmt = stmt.on_conflict_do_update(
                index_elements=["connector_id", "external_id"], set_=set_
            )
            await db.execute(stmt)

        await db.commit()
        return len(rows)

    async def remove_many(
        self, db: AsyncSession, connector_id: int, external_ids: Sequence[str]
    ) -> int:
        """Delete resources by external id.

        Args:
            db: Database session
            connector_id: Connector ID
            external_ids: Ids to delete; unknown ids are ignored

        Returns:
            Number of rows deleted
        """
        deleted = 0
        ids = list(external_ids)
        for start in range(0, len(ids), DELETE_BATCH_SIZE):
            result = await db.execute(
                delete(self.model).where(
                    and_(
                        self.model.connector_id == connector_id,
                        self.model.external_id.in_(ids[start : start + DELETE_BATCH_SIZE]),
                    )
                )
            )
            deleted += result.rowcount
        await db.commit()
        return deleted

    async def remove_children(
        self, db: AsyncSession, connector_id: int, parent_ids: Sequence[str]
    ) -> int:
        """Delete every resource whose parent is one of ``parent_ids``."""
        if not parent_ids:
            return 0
        result = await db.execute(
            delete(self.model).where(
                and_(
                    self.model.connector_id == connector_id,
                    self.model.parent_id.in_(list(parent_ids)),
                )
            )
        )
        await db.commit()
        return result.rowcount


synced_resource = CRUDSyncedResource()
