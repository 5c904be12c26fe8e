"""Pydantic models for the metadata graph."""

from metagraph.models.element import (
    AnchorSpec,
    Classification,
    ClassificationRequest,
    Element,
    ElementStatus,
)
from metagraph.models.options import (
    ComparisonOperator,
    DeleteOptions,
    HopDirection,
    MatchCriteria,
    PropertyCondition,
    QueryOptions,
    SearchConditions,
    SequencingOrder,
)
from metagraph.models.relationship import Relationship
from metagraph.models.results import CloneResult, DeleteResult, TraversalResult
from metagraph.models.typedefs import (
    ClassificationDef,
    EntityDef,
    PropertyDef,
    PropertyKind,
    RelationshipDef,
    TypeCatalogue,
)

__all__ = [
    # Instances
    "Element",
    "ElementStatus",
    "Classification",
    "ClassificationRequest",
    "AnchorSpec",
    "Relationship",
    # Options
    "QueryOptions",
    "DeleteOptions",
    "HopDirection",
    "ComparisonOperator",
    "MatchCriteria",
    "PropertyCondition",
    "SearchConditions",
    "SequencingOrder",
    # Results
    "DeleteResult",
    "CloneResult",
    "TraversalResult",
    # Type definitions
    "EntityDef",
    "RelationshipDef",
    "ClassificationDef",
    "PropertyDef",
    "PropertyKind",
    "TypeCatalogue",
]
