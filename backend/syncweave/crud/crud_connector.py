"""CRUD operations for connectors."""

from typing import Any, Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from syncweave.core.datetime_utils import utc_now_naive
from syncweave.models.connector import Connector
from syncweave.models.sync_cursor import SyncCursor
from syncweave.models.synced_resource import SyncedResource
from syncweave.schemas.connector import ConnectorCreate


class CRUDConnector:
    """CRUD operations for connectors."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = Connector

    async def get(self, db: AsyncSession, id: int) -> Optional[Connector]:
        """Get a connector by ID.

        Args:
            db: Database session
            id: Connector ID

        Returns:
            Connector if found, None otherwise
        """
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def create(self, db: AsyncSession, *, obj_in: ConnectorCreate) -> Connector:
        """Create a connector.

        Args:
            db: Database session
            obj_in: Connector fields

        Returns:
            The created connector
        """
        db_obj = Connector(
            provider=obj_in.provider.value,
            connection_id=obj_in.connection_id,
            workspace_id=obj_in.workspace_id,
            data_source_id=obj_in.data_source_id,
        )
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def update_fields(self, db: AsyncSession, id: int, values: Dict[str, Any]) -> bool:
        """Update columns of a connector.

        Args:
            db: Database session
            id: Connector ID
            values: Column name to new value

        Returns:
            True if a row was updated
        """
        result = await db.execute(
            update(self.model)
            .where(self.model.id == id)
            .values(**values, modified_at=utc_now_naive())
        )
        await db.commit()
        return result.rowcount > 0

    async def remove(self, db: AsyncSession, id: int) -> bool:
        """Delete a connector and everything mirrored for it.

        Children are deleted explicitly so the cascade does not depend on the
        database enforcing foreign keys.

        Args:
            db: Database session
            id: Connector ID

        Returns:
            True if the connector existed
        """
        await db.execute(delete(SyncedResource).where(SyncedResource.connector_id == id))
        await db.execute(delete(SyncCursor).where(SyncCursor.connector_id == id))
        result = await db.execute(delete(self.model).where(self.model.id == id))
        await db.commit()
        return result.rowcount > 0


connector = CRUDConnector()
