"""Synced resource schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from syncweave.core.shared_models import ResourcePermission, ResourceType


class SyncedResourceUpsert(BaseModel):
    """Full set of mutable fields written by one upsert.

    Upserts are last-write-wins: every field here replaces the stored value.
    """

    connector_id: int
    external_id: str
    resource_type: ResourceType
    parent_id: Optional[str] = None
    title: Optional[str] = None
    last_modified_at: Optional[datetime] = None
    permission: ResourcePermission = ResourcePermission.READ
    document_id: Optional[str] = None


class SyncedResource(SyncedResourceUpsert):
    """A synced resource as read from the mirror store."""

    model_config = ConfigDict(from_attributes=True)

    id: int


class ResourceFilter(BaseModel):
    """Optional filters for listing a connector's resources."""

    resource_type: Optional[ResourceType] = None
    parent_id: Optional[str] = None
    permission: Optional[ResourcePermission] = None
    top_level_only: bool = False
