"""Request-scoped query, search and delete options."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from metagraph.models.element import ElementStatus


class ComparisonOperator(str, Enum):
    """Operators for comparing a property value against a condition value."""

    EQ = "eq"
    NEQ = "neq"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    LIKE = "like"  # Regular expression search
    IN = "in"
    IS_NULL = "is_null"
    NOT_NULL = "not_null"


class MatchCriteria(str, Enum):
    """How a set of conditions combine."""

    ALL = "all"
    ANY = "any"
    NONE = "none"


class SequencingOrder(str, Enum):
    """Ordering of search results."""

    ANY = "any"
    GUID = "guid"
    CREATION_DATE_RECENT = "creation_date_recent"
    CREATION_DATE_OLDEST = "creation_date_oldest"
    LAST_UPDATE_RECENT = "last_update_recent"
    LAST_UPDATE_OLDEST = "last_update_oldest"
    PROPERTY_ASCENDING = "property_ascending"
    PROPERTY_DESCENDING = "property_descending"


class HopDirection(str, Enum):
    """Which end of a relationship the starting element sits at."""

    ANY = "any"
    FROM_END1 = "end1"  # Start at end1, return end2 elements
    FROM_END2 = "end2"  # Start at end2, return end1 elements


class PropertyCondition(BaseModel):
    """A single property comparison."""

    property_name: str
    operator: ComparisonOperator = ComparisonOperator.EQ
    value: Any | None = None


class SearchConditions(BaseModel):
    """A set of property conditions combined by a match criteria."""

    conditions: list[PropertyCondition] = Field(default_factory=list)
    match_criteria: MatchCriteria = MatchCriteria.ALL


class QueryOptions(BaseModel):
    """Paging and filtering options shared by every read operation."""

    start_from: int = Field(default=0, ge=0)
    page_size: int = Field(default=0, ge=0)  # 0: the server maximum, or unpaged for traversal
    effective_time: datetime | None = None
    type_name: str | None = None
    limit_results_by_status: list[ElementStatus] = Field(default_factory=list)
    for_lineage: bool = False
    sequencing_order: SequencingOrder = SequencingOrder.ANY
    sequencing_property: str | None = None

    def next_page(self) -> "QueryOptions":
        """Return options for the page following this one."""
        return self.model_copy(update={"start_from": self.start_from + self.page_size})


class DeleteOptions(BaseModel):
    """Options controlling a cascading delete."""

    cascaded_delete: bool = True
    best_effort: bool = False
    soft_delete: bool = False
