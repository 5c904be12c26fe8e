"""Pydantic models for metadata elements and their classifications."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ElementStatus(str, Enum):
    """Lifecycle status of an element or relationship."""

    DRAFT = "draft"
    PROPOSED = "proposed"
    APPROVED = "approved"
    ACTIVE = "active"
    DEPRECATED = "deprecated"
    DISABLED = "disabled"
    DELETED = "deleted"  # Soft-deleted, only visible for lineage


class Classification(BaseModel):
    """A typed property bag attached to exactly one element."""

    name: str
    properties: dict[str, Any] = Field(default_factory=dict)
    version: int = 1
    created_by: str | None = None
    created_at: datetime | None = None
    updated_by: str | None = None
    updated_at: datetime | None = None


class ClassificationRequest(BaseModel):
    """Request model for a classification supplied at create time."""

    name: str
    properties: dict[str, Any] = Field(default_factory=dict)


class AnchorSpec(BaseModel):
    """How a new element is anchored and attached to a parent.

    An element is either its own anchor, or anchored to ``anchor_guid``
    (which defaults to ``parent_guid``). Independently of anchoring, the new
    element may be linked to a parent through ``parent_relationship_type``.
    """

    is_own_anchor: bool = True
    anchor_guid: str | None = None
    parent_guid: str | None = None
    parent_relationship_type: str | None = None
    parent_at_end1: bool = True
    parent_relationship_properties: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def own_anchor(cls) -> "AnchorSpec":
        return cls()

    @classmethod
    def anchored_to(
        cls,
        parent_guid: str,
        relationship_type: str | None = None,
        parent_at_end1: bool = True,
    ) -> "AnchorSpec":
        """Anchor to a parent and link to it with the given relationship."""
        return cls(
            is_own_anchor=False,
            anchor_guid=parent_guid,
            parent_guid=parent_guid,
            parent_relationship_type=relationship_type,
            parent_at_end1=parent_at_end1,
        )

    @classmethod
    def linked_to(
        cls,
        parent_guid: str,
        relationship_type: str,
        parent_at_end1: bool = True,
    ) -> "AnchorSpec":
        """Stay an own anchor but link to a parent."""
        return cls(
            is_own_anchor=True,
            parent_guid=parent_guid,
            parent_relationship_type=relationship_type,
            parent_at_end1=parent_at_end1,
        )

    @property
    def effective_anchor_guid(self) -> str | None:
        if self.is_own_anchor:
            return None
        return self.anchor_guid or self.parent_guid


class Element(BaseModel):
    """A typed node in the metadata graph."""

    guid: str
    type_name: str
    properties: dict[str, Any] = Field(default_factory=dict)
    classifications: list[Classification] = Field(default_factory=list)
    anchor_guid: str | None = None
    status: ElementStatus = ElementStatus.ACTIVE
    effective_from: datetime | None = None
    effective_to: datetime | None = None
    version: int = 1
    created_by: str
    created_at: datetime
    updated_by: str | None = None
    updated_at: datetime

    @property
    def is_own_anchor(self) -> bool:
        return self.anchor_guid is None or self.anchor_guid == self.guid

    @property
    def qualified_name(self) -> str | None:
        return self.properties.get("qualifiedName")

    def get_classification(self, name: str) -> Classification | None:
        """Return the named classification if the element carries it."""
        for classification in self.classifications:
            if classification.name == name:
                return classification
        return None

    def has_classification(self, name: str) -> bool:
        return self.get_classification(name) is not None
