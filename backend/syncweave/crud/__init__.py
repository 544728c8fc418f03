"""CRUD singletons for the mirror store."""

from syncweave.crud.crud_connector import connector
from syncweave.crud.crud_sync_cursor import sync_cursor
from syncweave.crud.crud_synced_resource import synced_resource

__all__ = [
    "connector",
    "sync_cursor",
    "synced_resource",
]
