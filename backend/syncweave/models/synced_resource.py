"""Synced resource model."""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from syncweave.core.shared_models import ResourcePermission
from syncweave.models._base import Base

if TYPE_CHECKING:
    from syncweave.models.connector import Connector


class SyncedResource(Base):
    """Local mirror record of one externally-sourced object.

    ``parent_id`` holds the external id of the containing resource (channel of a
    message, folder of a file) and is null for top-level containers.
    ``document_id`` points into the document index and is null for containers.
    """

    __tablename__ = "synced_resource"

    connector_id: Mapped[int] = mapped_column(
        ForeignKey("connector.id", ondelete="CASCADE"), nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(512), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    parent_id: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    last_modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    permission: Mapped[str] = mapped_column(
        String(20), default=ResourcePermission.READ.value, nullable=False
    )
    document_id: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    connector: Mapped["Connector"] = relationship(
        "Connector", back_populates="synced_resources", lazy="noload"
    )

    __table_args__ = (
        UniqueConstraint("connector_id", "external_id", name="uq_synced_resource_connector_ext"),
        Index("idx_synced_resource_connector_type", "connector_id", "resource_type"),
        Index("idx_synced_resource_connector_parent", "connector_id", "parent_id"),
    )
