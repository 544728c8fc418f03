"""Pydantic schemas for syncweave."""

from syncweave.schemas.connector import Connector, ConnectorCreate, ConnectorSyncStatus
from syncweave.schemas.document import Document
from syncweave.schemas.synced_resource import (
    ResourceFilter,
    SyncedResource,
    SyncedResourceUpsert,
)

__all__ = [
    "Connector",
    "ConnectorCreate",
    "ConnectorSyncStatus",
    "Document",
    "ResourceFilter",
    "SyncedResource",
    "SyncedResourceUpsert",
]
