"""Connector model."""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from syncweave.core.shared_models import ConnectorStatus
from syncweave.models._base import Base

if TYPE_CHECKING:
    from syncweave.models.sync_cursor import SyncCursor
    from syncweave.models.synced_resource import SyncedResource


class Connector(Base):
    """One configured link between a tenant workspace and an external source.

    Deleting a connector cascades to its synced resources and cursors.
    """

    __tablename__ = "connector"

    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    # Reference into the OAuth connection service, never the token itself
    connection_id: Mapped[str] = mapped_column(String(255), nullable=False)
    workspace_id: Mapped[str] = mapped_column(String(255), nullable=False)
    data_source_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ConnectorStatus.ACTIVE.value, nullable=False
    )

    last_sync_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    last_sync_success_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_sync_finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    first_sync_progress: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    synced_resources: Mapped[List["SyncedResource"]] = relationship(
        "SyncedResource",
        back_populates="connector",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )
    sync_cursors: Mapped[List["SyncCursor"]] = relationship(
        "SyncCursor",
        back_populates="connector",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )
