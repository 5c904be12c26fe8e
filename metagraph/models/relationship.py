"""Pydantic models for relationships between elements."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from metagraph.models.element import ElementStatus


class Relationship(BaseModel):
    """A typed directed edge between two elements."""

    guid: str
    type_name: str
    end1_guid: str
    end2_guid: str
    properties: dict[str, Any] = Field(default_factory=dict)
    status: ElementStatus = ElementStatus.ACTIVE
    effective_from: datetime | None = None
    effective_to: datetime | None = None
    version: int = 1
    created_by: str
    created_at: datetime
    updated_by: str | None = None
    updated_at: datetime

    def other_end(self, guid: str) -> str:
        """Return the endpoint opposite to ``guid``."""
        return self.end2_guid if self.end1_guid == guid else self.end1_guid

    def touches(self, guids: set[str]) -> bool:
        return self.end1_guid in guids or self.end2_guid in guids
