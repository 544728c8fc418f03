"""Mirror store models."""

from syncweave.models._base import Base
from syncweave.models.connector import Connector
from syncweave.models.sync_cursor import SyncCursor
from syncweave.models.synced_resource import SyncedResource

__all__ = [
    "Base",
    "Connector",
    "SyncCursor",
    "SyncedResource",
]
