"""CRUD operations for sync cursors."""

from typing import Optional

from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from syncweave.core.datetime_utils import utc_now_naive
from syncweave.crud._dialect import dialect_insert
from syncweave.models.sync_cursor import SyncCursor


class CRUDSyncCursor:
    """CRUD operations for sync cursors."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = SyncCursor

    async def get_token(self, db: AsyncSession, connector_id: int, stream_key: str) -> Optional[str]:
        """Get the stored token of a stream.

        Args:
            db: Database session
            connector_id: Connector ID
            stream_key: Stream the cursor belongs to

        Returns:
            The token, or None if the stream has never been synced
        """
        result = await db.execute(
            select(self.model.token).where(
                and_(self.model.connector_id == connector_id, self.model.stream_key == stream_key)
            )
        )
        return result.scalar_one_or_none()

    async def set_token(
        self, db: AsyncSession, connector_id: int, stream_key: str, token: str
    ) -> None:
        """Insert or replace the token of a stream."""
        now = utc_now_naive()
        stmt = dialect_insert(db, self.model).values(
            connector_id=connector_id,
            stream_key=stream_key,
            token=token,
            created_at=now,
            modified_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["connector_id", "stream_key"],
            set_={"token": stmt.excluded.token, "modified_at": now},
        )
        await db.execute(stmt)
        await db.commit()

    async def remove(self, db: AsyncSession, connector_id: int, stream_key: str) -> None:
        """Forget a stream's cursor."""
        await db.execute(
            delete(self.model).where(
                and_(self.model.connector_id == connector_id, self.model.stream_key == stream_key)
            )
        )
        await db.commit()


sync_cursor = CRUDSyncCursor()
