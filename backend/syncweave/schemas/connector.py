"""Connector schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from syncweave.core.shared_models import ConnectorProvider, ConnectorStatus, SyncStatus


class ConnectorCreate(BaseModel):
    """Fields needed to register a connector."""

    provider: ConnectorProvider
    connection_id: str = Field(..., description="Reference into the OAuth connection service")
    workspace_id: str
    data_source_id: str


class Connector(BaseModel):
    """A configured connector as read from the mirror store."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    provider: ConnectorProvider
    connection_id: str
    workspace_id: str
    data_source_id: str
    status: ConnectorStatus
    last_sync_status: Optional[SyncStatus] = None
    last_sync_success_at: Optional[datetime] = None
    last_sync_finished_at: Optional[datetime] = None
    error_reason: Optional[str] = None
    first_sync_progress: Optional[str] = None


class ConnectorSyncStatus(BaseModel):
    """Operator-visible sync status of a connector."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    connector_id: int = Field(..., validation_alias="id")
    status: ConnectorStatus
    last_sync_status: Optional[SyncStatus] = None
    last_sync_success_at: Optional[datetime] = None
    last_sync_finished_at: Optional[datetime] = None
    error_reason: Optional[str] = None
    first_sync_progress: Optional[str] = None
