"""Pydantic models for type definitions (the open type hierarchy)."""

from enum import Enum

from pydantic import BaseModel
from pydantic import Field as PydanticField


class PropertyKind(str, Enum):
    """Supported property value kinds."""

    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    DATE = "date"
    ARRAY = "array"
    MAP = "map"
    ANY = "any"


class PropertyDef(BaseModel):
    """A property declared by a type."""

    name: str
    kind: PropertyKind = PropertyKind.STRING
    required: bool = False
    unique: bool = False


class EntityDef(BaseModel):
    """An element type definition."""

    name: str
    supertype: str | None = PydanticField(default=None, alias="superType")
    description: str | None = None
    properties: list[PropertyDef] = []
    # Candidate properties for exact-name lookups
    name_properties: list[str] = PydanticField(default=[], alias="nameProperties")
    # Default properties for full-text search (empty means all string properties)
    search_properties: list[str] = PydanticField(default=[], alias="searchProperties")

    model_config = {"populate_by_name": True}


class RelationshipDef(BaseModel):
    """A relationship type definition."""

    name: str
    end1_type: str = PydanticField(alias="end1Type")
    end2_type: str = PydanticField(alias="end2Type")
    description: str | None = None
    properties: list[PropertyDef] = []

    model_config = {"populate_by_name": True}


class ClassificationDef(BaseModel):
    """A classification type definition."""

    name: str
    valid_entity_types: list[str] = PydanticField(alias="validEntityTypes")
    description: str | None = None
    properties: list[PropertyDef] = []

    model_config = {"populate_by_name": True}


class TypeCatalogue(BaseModel):
    """A bundle of type definitions, as loaded from a JSON file."""

    entity_defs: list[EntityDef] = PydanticField(default=[], alias="entityDefs")
    relationship_defs: list[RelationshipDef] = PydanticField(
        default=[], alias="relationshipDefs"
    )
    classification_defs: list[ClassificationDef] = PydanticField(
        default=[], alias="classificationDefs"
    )

    model_config = {"populate_by_name": True}
