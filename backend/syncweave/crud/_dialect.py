"""Dialect-specific helpers for CRUD operations."""

from sqlalchemy.ext.asyncio import AsyncSession


def dialect_insert(db: AsyncSession, model):
    """Return an INSERT construct supporting ``on_conflict_do_update`` for the session's dialect.

    PostgreSQL in production, SQLite in tests.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upserts are not supported on dialect {dialect}")
    return insert(model)
