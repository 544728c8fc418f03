"""Base cursor class for incremental sync tracking."""

from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict

CursorT = TypeVar("CursorT", bound="BaseCursor")


class BaseCursor(BaseModel):
    """Base cursor class for incremental sync tracking.

    A cursor is stored as the JSON ``token`` of one sync_cursor row, keyed by
    ``(connector_id, stream_key)``. Only activities of the workflow owning the
    stream write it.
    """

    model_config = ConfigDict(
        # Allow extra fields for forward compatibility
        extra="allow",
    )

    def to_token(self) -> str:
        """Serialize for the sync_cursor table."""
        return self.model_dump_json()

    @classmethod
    def from_token(cls: Type[CursorT], token: Optional[str]) -> Optional[CursorT]:
        """Deserialize a stored token, or None if nothing is stored."""
        if not token:
            return None
        return cls.model_validate_json(token)
