"""TypeRegistry - the open, extensible type hierarchy.

Element types form a single-inheritance tree. Relationship and
classification types name the element types they may be attached to, and a
subtype is accepted wherever its supertype is.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any

from metagraph.errors import InvalidParameterError
from metagraph.models.typedefs import (
    ClassificationDef,
    EntityDef,
    PropertyDef,
    PropertyKind,
    RelationshipDef,
    TypeCatalogue,
)

logger = logging.getLogger(__name__)

# Fallback candidates for exact-name lookups
DEFAULT_NAME_PROPERTIES = ["qualifiedName", "displayName", "name", "identifier"]


def _check_kind(kind: PropertyKind, value: Any) -> Any:
    """Validate a value against a property kind, returning the stored form.

    Raises ValueError when the value does not fit the kind.
    """
    if kind == PropertyKind.ANY:
        return value
    if kind == PropertyKind.STRING:
        if not isinstance(value, str):
            raise ValueError("expected a string")
        return value
    if kind == PropertyKind.BOOL:
        if not isinstance(value, bool):
            raise ValueError("expected a boolean")
        return value
    if kind == PropertyKind.INT:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("expected an integer")
        return value
    if kind == PropertyKind.FLOAT:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("expected a number")
        return float(value)
    if kind == PropertyKind.DATE:
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, str):
            datetime.fromisoformat(value)
            return value
        raise ValueError("expected an ISO date")
    if kind == PropertyKind.ARRAY:
        if not isinstance(value, list):
            raise ValueError("expected an array")
        return value
    if kind == PropertyKind.MAP:
        if not isinstance(value, dict):
            raise ValueError("expected a map")
        return value
    return value


class TypeRegistry:
    """Registry of entity, relationship and classification definitions."""

    def __init__(self, catalogue: TypeCatalogue | None = None) -> None:
        self._entity_defs: dict[str, EntityDef] = {}
        self._relationship_defs: dict[str, RelationshipDef] = {}
        self._classification_defs: dict[str, ClassificationDef] = {}
        if catalogue is not None:
            self.load(catalogue)

    # ==================== Registration ====================

    def register_entity_def(self, entity_def: EntityDef) -> None:
        """Add an element type. Its supertype must already be registered."""
        if entity_def.name in self._entity_defs:
            raise InvalidParameterError(
                f"Entity type {entity_def.name} is already defined",
                parameter_name="entity_def",
            )
        if entity_def.supertype and entity_def.supertype not in self._entity_defs:
            raise InvalidParameterError(
                f"Supertype {entity_def.supertype} of {entity_def.name} is not defined",
                parameter_name="entity_def",
            )
        self._entity_defs[entity_def.name] = entity_def

    def register_relationship_def(self, relationship_def: RelationshipDef) -> None:
        """Add a relationship type whose end types are already registered."""
        if relationship_def.name in self._relationship_defs:
            raise InvalidParameterError(
                f"Relationship type {relationship_def.name} is already defined",
                parameter_name="relationship_def",
            )
        for end_type in (relationship_def.end1_type, relationship_def.end2_type):
            if end_type not in self._entity_defs:
                raise InvalidParameterError(
                    f"End type {end_type} of {relationship_def.name} is not defined",
                    parameter_name="relationship_def",
                )
        self._relationship_defs[relationship_def.name] = relationship_def

    def register_classification_def(self, classification_def: ClassificationDef) -> None:
        """Add a classification type."""
        if classification_def.name in self._classification_defs:
            raise InvalidParameterError(
                f"Classification type {classification_def.name} is already defined",
                parameter_name="classification_def",
            )
        for entity_type in classification_def.valid_entity_types:
            if entity_type not in self._entity_defs:
                raise InvalidParameterError(
                    f"Entity type {entity_type} of {classification_def.name} is not defined",
                    parameter_name="classification_def",
                )
        self._classification_defs[classification_def.name] = classification_def

    def load(self, catalogue: TypeCatalogue) -> None:
        """Register a catalogue, resolving entity supertypes in any order."""
        pending = list(catalogue.entity_defs)
        while pending:
            remaining = [
                d
                for d in pending
                if d.supertype and d.supertype not in self._entity_defs
            ]
            ready = [d for d in pending if d not in remaining]
            if not ready:
                names = ", ".join(d.name for d in remaining)
                raise InvalidParameterError(
                    f"Unresolvable supertypes for entity types: {names}",
                    parameter_name="catalogue",
                )
            for entity_def in ready:
                self.register_entity_def(entity_def)
            pending = remaining

        for relationship_def in catalogue.relationship_defs:
            self.register_relationship_def(relationship_def)
        for classification_def in catalogue.classification_defs:
            self.register_classification_def(classification_def)

        logger.debug(
            f"Loaded {len(catalogue.entity_defs)} entity, "
            f"{len(catalogue.relationship_defs)} relationship and "
            f"{len(catalogue.classification_defs)} classification types"
        )

    def load_json(self, path: str | Path) -> None:
        """Register the type definitions in a JSON file."""
        with open(path) as f:
            data = json.load(f)
        self.load(TypeCatalogue.model_validate(data))
        logger.info(f"Loaded type definitions from {path}")

    # ==================== Lookup ====================

    def get_entity_def(self, type_name: str) -> EntityDef | None:
        return self._entity_defs.get(type_name)

    def require_entity_def(self, type_name: str | None, parameter_name: str = "type_name") -> EntityDef:
        """Return an entity definition or raise InvalidParameterError."""
        if not type_name:
            raise InvalidParameterError("No type name supplied", parameter_name=parameter_name)
        entity_def = self._entity_defs.get(type_name)
        if entity_def is None:
            raise InvalidParameterError(
                f"Unknown element type {type_name}", parameter_name=parameter_name
            )
        return entity_def

    def require_relationship_def(self, type_name: str | None) -> RelationshipDef:
        if not type_name:
            raise InvalidParameterError(
                "No relationship type supplied", parameter_name="relationship_type"
            )
        relationship_def = self._relationship_defs.get(type_name)
        if relationship_def is None:
            raise InvalidParameterError(
                f"Unknown relationship type {type_name}",
                parameter_name="relationship_type",
            )
        return relationship_def

    def require_classification_def(self, name: str | None) -> ClassificationDef:
        if not name:
            raise InvalidParameterError(
                "No classification name supplied", parameter_name="classification_name"
            )
        classification_def = self._classification_defs.get(name)
        if classification_def is None:
            raise InvalidParameterError(
                f"Unknown classification {name}", parameter_name="classification_name"
            )
        return classification_def

    def has_relationship_type(self, type_name: str) -> bool:
        return type_name in self._relationship_defs

    # ==================== Hierarchy ====================

    def supertypes(self, type_name: str) -> list[str]:
        """Return the type and its ancestors, nearest first."""
        chain = []
        current = self._entity_defs.get(type_name)
        while current is not None and current.name not in chain:
            chain.append(current.name)
            current = self._entity_defs.get(current.supertype) if current.supertype else None
        return chain

    def is_type_of(self, type_name: str, super_type_name: str) -> bool:
        return super_type_name in self.supertypes(type_name)

    def subtypes_of(self, type_name: str) -> set[str]:
        """Return the type and every registered descendant."""
        return {name for name in self._entity_defs if self.is_type_of(name, type_name)}

    # ==================== Properties ====================

    def entity_properties(self, type_name: str) -> dict[str, PropertyDef]:
        """Return every property of a type, including inherited ones."""
        properties: dict[str, PropertyDef] = {}
        for name in reversed(self.supertypes(type_name)):
            for prop in self._entity_defs[name].properties:
                properties[prop.name] = prop
        return properties

    def declaring_type(self, type_name: str, property_name: str) -> str:
        """Return the topmost ancestor that declares a property."""
        declaring = type_name
        for name in self.supertypes(type_name):
            if any(p.name == property_name for p in self._entity_defs[name].properties):
                declaring = name
        return declaring

    def name_properties(self, type_name: str) -> list[str]:
        for name in self.supertypes(type_name):
            if self._entity_defs[name].name_properties:
                return list(self._entity_defs[name].name_properties)
        return list(DEFAULT_NAME_PROPERTIES)

    def search_properties(self, type_name: str) -> list[str]:
        for name in self.supertypes(type_name):
            if self._entity_defs[name].search_properties:
                return list(self._entity_defs[name].search_properties)
        return [
            prop.name
            for prop in self.entity_properties(type_name).values()
            if prop.kind == PropertyKind.STRING
        ]

    def is_classification_valid(self, classification_name: str, type_name: str) -> bool:
        classification_def = self._classification_defs.get(classification_name)
        if classification_def is None:
            return False
        return any(
            self.is_type_of(type_name, valid) for valid in classification_def.valid_entity_types
        )

    def relationship_ends_valid(
        self, relationship_type: str, end1_type: str, end2_type: str
    ) -> bool:
        relationship_def = self.require_relationship_def(relationship_type)
        return self.is_type_of(end1_type, relationship_def.end1_type) and self.is_type_of(
            end2_type, relationship_def.end2_type
        )

    def validate_properties(
        self,
        property_defs: dict[str, PropertyDef],
        properties: dict[str, Any] | None,
        owner: str,
        check_required: bool = True,
    ) -> dict[str, Any]:
        """Validate a property bag against its declarations.

        Returns the normalised bag with ``None`` values dropped. Raises
        InvalidParameterError for undeclared properties, wrong kinds and
        missing required properties.
        """
        normalised: dict[str, Any] = {}
        for name, value in (properties or {}).items():
            if value is None:
                continue
            prop = property_defs.get(name)
            if prop is None:
                raise InvalidParameterError(
                    f"Property {name} is not defined for {owner}", parameter_name=name
                )
            try:
                normalised[name] = _check_kind(prop.kind, value)
            except ValueError as e:
                raise InvalidParameterError(
                    f"Property {name} of {owner}: {e}", parameter_name=name
                ) from e

        if check_required:
            for prop in property_defs.values():
                if not prop.required:
                    continue
                value = normalised.get(prop.name)
                if value is None or value == "":
                    raise InvalidParameterError(
                        f"Mandatory property {prop.name} missing for {owner}",
                        parameter_name=prop.name,
                    )
        return normalised

    def relationship_properties(self, type_name: str) -> dict[str, PropertyDef]:
        return {p.name: p for p in self.require_relationship_def(type_name).properties}

    def classification_properties(self, name: str) -> dict[str, PropertyDef]:
        return {p.name: p for p in self.require_classification_def(name).properties}
