"""Tests for the type registry."""

import json
from datetime import datetime, timezone

import pytest

from metagraph.errors import InvalidParameterError
from metagraph.models import EntityDef, PropertyDef, PropertyKind, RelationshipDef, TypeCatalogue
from metagraph.services.type_registry import DEFAULT_NAME_PROPERTIES, TypeRegistry


class TestHierarchy:
    """Tests for supertypes and subtypes."""

    def test_supertypes_nearest_first(self, types):
        assert types.supertypes("DataSet") == ["DataSet", "Asset", "Referenceable", "OpenMetadataRoot"]

    def test_is_type_of(self, types):
        assert types.is_type_of("GlossaryTerm", "Referenceable")
        assert types.is_type_of("GlossaryTerm", "GlossaryTerm")
        assert not types.is_type_of("Referenceable", "GlossaryTerm")

    def test_subtypes_include_self(self, types):
        assert types.subtypes_of("Asset") == {"Asset", "DataSet"}

    def test_inherited_properties(self, types):
        properties = types.entity_properties("DataSet")
        assert "qualifiedName" in properties
        assert "resourceName" in properties

    def test_declaring_type(self, types):
        assert types.declaring_type("DataSet", "qualifiedName") == "Referenceable"
        assert types.declaring_type("DataSet", "resourceName") == "Asset"


class TestNameAndSearchProperties:
    """Tests for lookup property defaults."""

    def test_declared_name_properties(self, types):
        assert types.name_properties("Glossary") == ["qualifiedName", "displayName"]

    def test_default_name_properties(self, types):
        assert types.name_properties("Connection") == DEFAULT_NAME_PROPERTIES

    def test_search_defaults_to_string_properties(self, types):
        search = types.search_properties("Glossary")
        assert "displayName" in search
        assert "additionalProperties" not in search

    def test_declared_search_properties(self, types):
        assert types.search_properties("Comment") == ["text"]


class TestValidateProperties:
    """Tests for property validation."""

    def test_undeclared_property(self, types):
        with pytest.raises(InvalidParameterError) as exc_info:
            types.validate_properties(
                types.entity_properties("Glossary"), {"qualifiedName": "g", "colour": "red"}, "Glossary"
            )
        assert exc_info.value.parameter_name == "colour"

    def test_wrong_kind(self, types):
        with pytest.raises(InvalidParameterError):
            types.validate_properties(
                types.entity_properties("ToDo"), {"qualifiedName": "t", "priority": "high"}, "ToDo"
            )

    def test_bool_is_not_int(self, types):
        with pytest.raises(InvalidParameterError):
            types.validate_properties(
                types.entity_properties("ToDo"), {"qualifiedName": "t", "priority": True}, "ToDo"
            )

    def test_missing_required(self, types):
        with pytest.raises(InvalidParameterError) as exc_info:
            types.validate_properties(
                types.entity_properties("Glossary"), {"displayName": "g"}, "Glossary"
            )
        assert exc_info.value.parameter_name == "qualifiedName"

    def test_dates_are_normalised(self, types):
        due = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        result = types.validate_properties(
            types.entity_properties("ToDo"), {"qualifiedName": "t", "dueTime": due}, "ToDo"
        )
        assert result["dueTime"] == due.isoformat()

    def test_none_values_dropped(self, types):
        result = types.validate_properties(
            types.entity_properties("Glossary"),
            {"qualifiedName": "g", "description": None},
            "Glossary",
        )
        assert result == {"qualifiedName": "g"}


class TestClassificationsAndRelationships:
    """Tests for classification and relationship validity."""

    def test_classification_valid_on_subtype(self, types):
        assert types.is_classification_valid("Confidentiality", "GlossaryTerm")
        assert types.is_classification_valid("Taxonomy", "Glossary")
        assert not types.is_classification_valid("Taxonomy", "GlossaryTerm")
        assert not types.is_classification_valid("NoSuchThing", "Glossary")

    def test_relationship_ends(self, types):
        assert types.relationship_ends_valid("TermAnchor", "Glossary", "GlossaryTerm")
        assert not types.relationship_ends_valid("TermAnchor", "GlossaryTerm", "Glossary")
        assert types.relationship_ends_valid("SemanticAssignment", "DataSet", "GlossaryTerm")

    def test_unknown_relationship(self, types):
        with pytest.raises(InvalidParameterError):
            types.require_relationship_def("NoSuchRelationship")


class TestRegistration:
    """Tests for loading type definitions."""

    def test_duplicate_entity_def(self, types):
        with pytest.raises(InvalidParameterError):
            types.register_entity_def(EntityDef(name="Glossary"))

    def test_supertypes_resolved_in_any_order(self):
        registry = TypeRegistry(
            TypeCatalogue(
                entity_defs=[
                    EntityDef(name="Child", supertype="Parent"),
                    EntityDef(name="Parent"),
                ]
            )
        )
        assert registry.is_type_of("Child", "Parent")

    def test_unresolvable_supertype(self):
        with pytest.raises(InvalidParameterError):
            TypeRegistry(TypeCatalogue(entity_defs=[EntityDef(name="Orphan", supertype="Missing")]))

    def test_relationship_end_must_exist(self):
        registry = TypeRegistry(TypeCatalogue(entity_defs=[EntityDef(name="Thing")]))
        with pytest.raises(InvalidParameterError):
            registry.register_relationship_def(
                RelationshipDef(name="Link", end1_type="Thing", end2_type="Missing")
            )

    def test_load_json(self, types, tmp_path):
        path = tmp_path / "types.json"
        path.write_text(
            json.dumps(
                {
                    "entityDefs": [
                        {
                            "name": "Report",
                            "superType": "Asset",
                            "properties": [{"name": "author", "kind": "string"}],
                        }
                    ],
                    "relationshipDefs": [
                        {"name": "ReportSource", "end1Type": "Report", "end2Type": "DataSet"}
                    ],
                }
            )
        )
        types.load_json(path)
        assert types.is_type_of("Report", "Referenceable")
        assert types.relationship_ends_valid("ReportSource", "Report", "DataSet")
        assert types.entity_properties("Report")["author"] == PropertyDef(
            name="author", kind=PropertyKind.STRING
        )
