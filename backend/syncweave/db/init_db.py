"""Schema creation for the mirror store."""

from sqlalchemy.ext.asyncio import AsyncEngine

from syncweave.core.logging import logger
from syncweave.models import Base


async def init_db(engine: AsyncEngine) -> None:
    """Create all mirror store tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Mirror store schema is up to date")
