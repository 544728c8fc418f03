"""Document schema for the downstream content index."""

from typing import List, Optional

from pydantic import BaseModel, Field


class Document(BaseModel):
    """A document pushed to the content index."""

    document_id: str
    data_source_id: str
    title: str
    text: str
    source_url: Optional[str] = None
    timestamp_ms: Optional[int] = Field(
        default=None, description="Last update of the source object, epoch milliseconds"
    )
    tags: List[str] = Field(default_factory=list)
    parents: List[str] = Field(default_factory=list)
