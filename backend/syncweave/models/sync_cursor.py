"""Sync cursor model."""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from syncweave.models._base import Base

if TYPE_CHECKING:
    from syncweave.models.connector import Connector


class SyncCursor(Base):
    """Opaque, provider-defined resumption token for one sync stream of a connector.

    Only the workflow owning ``stream_key`` writes it; workflow identity is what
    keeps writers from overlapping.
    """

    __tablename__ = "sync_cursor"

    connector_id: Mapped[int] = mapped_column(
        ForeignKey("connector.id", ondelete="CASCADE"), nullable=False
    )
    stream_key: Mapped[str] = mapped_column(String(512), nullable=False)
    token: Mapped[str] = mapped_column(Text, nullable=False)

    connector: Mapped["Connector"] = relationship(
        "Connector", back_populates="sync_cursors", lazy="noload"
    )

    __table_args__ = (
        UniqueConstraint("connector_id", "stream_key", name="uq_sync_cursor_connector_stream"),
    )
