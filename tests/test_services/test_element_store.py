"""Tests for element creation, update and classification."""

import asyncio
from datetime import datetime, timezone

import pytest

from metagraph.errors import InvalidParameterError, PropertyServerError
from metagraph.models import AnchorSpec, ClassificationRequest, ElementStatus, QueryOptions


async def create_glossary(graph, name="A", **extra) -> str:
    return await graph.create_element(
        "Glossary", {"qualifiedName": f"Glossary:{name}", "displayName": name, **extra}
    )


class TestCreate:
    """Tests for creating elements."""

    async def test_create_own_anchor(self, graph):
        guid = await create_glossary(graph)
        element = await graph.get_by_guid(guid)
        assert element.type_name == "Glossary"
        assert element.is_own_anchor
        assert element.created_by == "tester"
        assert element.version == 1
        assert element.status == ElementStatus.ACTIVE

    async def test_create_with_classifications(self, graph):
        guid = await graph.create_element(
            "Glossary",
            {"qualifiedName": "Glossary:A"},
            classifications=[
                ClassificationRequest(name="Taxonomy", properties={"organizingPrinciple": "tree"})
            ],
        )
        element = await graph.get_by_guid(guid)
        assert element.get_classification("Taxonomy").properties == {"organizingPrinciple": "tree"}

    async def test_anchored_with_parent_relationship(self, graph):
        glossary_guid = await create_glossary(graph)
        term_guid = await graph.create_element(
            "GlossaryTerm",
            {"qualifiedName": "Term:1"},
            anchor=AnchorSpec.anchored_to(glossary_guid, "TermAnchor"),
        )
        term = await graph.get_by_guid(term_guid)
        assert term.anchor_guid == glossary_guid
        links = await graph.get_relationships_between(glossary_guid, term_guid, "TermAnchor")
        assert len(links) == 1
        assert links[0].end1_guid == glossary_guid

    async def test_linked_but_own_anchor(self, graph):
        parent = await graph.create_element("Location", {"qualifiedName": "Location:EU"})
        child = await graph.create_element(
            "Location",
            {"qualifiedName": "Location:DE"},
            anchor=AnchorSpec.linked_to(parent, "NestedLocation"),
        )
        assert (await graph.get_by_guid(child)).is_own_anchor
        assert len(await graph.get_relationships_between(parent, child, "NestedLocation")) == 1

    async def test_unknown_type(self, graph):
        with pytest.raises(InvalidParameterError) as exc_info:
            await graph.create_element("Spaceship", {"qualifiedName": "x"})
        assert exc_info.value.parameter_name == "type_name"

    async def test_missing_required_property(self, graph):
        with pytest.raises(InvalidParameterError):
            await graph.create_element("Glossary", {"displayName": "A"})

    async def test_undeclared_property(self, graph):
        with pytest.raises(InvalidParameterError):
            await graph.create_element("Glossary", {"qualifiedName": "g", "colour": "red"})

    async def test_duplicate_unique_value_across_subtypes(self, graph):
        await graph.create_element("Glossary", {"qualifiedName": "Shared:1"})
        with pytest.raises(InvalidParameterError) as exc_info:
            await graph.create_element("DataSet", {"qualifiedName": "Shared:1"})
        assert exc_info.value.parameter_name == "qualifiedName"

    async def test_missing_anchor(self, graph):
        with pytest.raises(InvalidParameterError) as exc_info:
            await graph.create_element(
                "GlossaryTerm",
                {"qualifiedName": "Term:1"},
                anchor=AnchorSpec.anchored_to("no-such-guid", "TermAnchor"),
            )
        assert exc_info.value.parameter_name == "anchor_guid"

    async def test_incompatible_parent_relationship(self, graph):
        location = await graph.create_element("Location", {"qualifiedName": "Location:X"})
        with pytest.raises(InvalidParameterError):
            await graph.create_element(
                "GlossaryTerm",
                {"qualifiedName": "Term:1"},
                anchor=AnchorSpec.anchored_to(location, "TermAnchor"),
            )
        assert await graph.get_by_name("Term:1") == []

    async def test_illegal_classification(self, graph):
        with pytest.raises(InvalidParameterError):
            await graph.create_element(
                "Glossary",
                {"qualifiedName": "Glossary:A"},
                classifications=[ClassificationRequest(name="SpineObject")],
            )

    async def test_cannot_create_deleted(self, graph):
        with pytest.raises(InvalidParameterError):
            await graph.create_element(
                "Glossary", {"qualifiedName": "Glossary:A"}, status=ElementStatus.DELETED
            )


class TestUpdate:
    """Tests for updating elements."""

    async def test_merge_update(self, graph):
        guid = await create_glossary(graph, description="old")
        assert await graph.update_element(guid, {"description": "new"})
        element = await graph.get_by_guid(guid)
        assert element.properties["description"] == "new"
        assert element.properties["displayName"] == "A"
        assert element.version == 2

    async def test_merge_none_removes_property(self, graph):
        guid = await create_glossary(graph, description="old")
        await graph.update_element(guid, {"description": None})
        assert "description" not in (await graph.get_by_guid(guid)).properties

    async def test_replace_update(self, graph):
        guid = await create_glossary(graph, description="old")
        await graph.update_element(guid, {"qualifiedName": "Glossary:A"}, merge=False)
        assert (await graph.get_by_guid(guid)).properties == {"qualifiedName": "Glossary:A"}

    async def test_replace_cannot_drop_required(self, graph):
        guid = await create_glossary(graph)
        with pytest.raises(InvalidParameterError):
            await graph.update_element(guid, {"displayName": "B"}, merge=False)

    async def test_no_change_returns_false(self, graph):
        guid = await create_glossary(graph)
        assert not await graph.update_element(guid, {"displayName": "A"})
        assert (await graph.get_by_guid(guid)).version == 1

    async def test_wrong_type(self, graph):
        guid = await create_glossary(graph)
        with pytest.raises(InvalidParameterError):
            await graph.update_element(guid, {"displayName": "B"}, type_name="GlossaryTerm")

    async def test_unknown_guid(self, graph):
        with pytest.raises(InvalidParameterError):
            await graph.update_element("no-such-guid", {"displayName": "B"})

    async def test_unique_clash_on_update(self, graph):
        await create_glossary(graph, "A")
        other = await create_glossary(graph, "B")
        with pytest.raises(InvalidParameterError):
            await graph.update_element(other, {"qualifiedName": "Glossary:A"})

    async def test_concurrent_modification(self, graph, monkeypatch):
        guid = await create_glossary(graph)

        async def stale_write(element, expected_version, unique_keys=()):
            return False

        monkeypatch.setattr(graph.repository, "update_element", stale_write)
        with pytest.raises(PropertyServerError) as exc_info:
            await graph.update_element(guid, {"displayName": "B"})
        assert exc_info.value.guid == guid

    async def test_update_status(self, graph):
        guid = await create_glossary(graph)
        assert await graph.update_status(guid, ElementStatus.DEPRECATED)
        assert not await graph.update_status(guid, ElementStatus.DEPRECATED)
        assert (await graph.get_by_guid(guid)).status == ElementStatus.DEPRECATED

    async def test_update_status_rejects_deleted(self, graph):
        guid = await create_glossary(graph)
        with pytest.raises(InvalidParameterError):
            await graph.update_status(guid, ElementStatus.DELETED)


class TestConcurrentUniqueness:
    """Tests for unique values claimed by concurrent writers."""

    async def test_concurrent_creates(self, graph):
        results = await asyncio.gather(
            graph.create_element("Glossary", {"qualifiedName": "Glossary:dup"}),
            graph.create_element("Glossary", {"qualifiedName": "Glossary:dup"}),
            return_exceptions=True,
        )

        created = [r for r in results if isinstance(r, str)]
        rejected = [r for r in results if isinstance(r, InvalidParameterError)]
        assert len(created) == 1
        assert len(rejected) == 1
        assert len(await graph.get_by_name("Glossary:dup")) == 1

    async def test_concurrent_renames(self, graph):
        first = await create_glossary(graph, "A")
        second = await create_glossary(graph, "B")

        results = await asyncio.gather(
            graph.update_element(first, {"qualifiedName": "Glossary:C"}),
            graph.update_element(second, {"qualifiedName": "Glossary:C"}),
            return_exceptions=True,
        )

        assert sorted(type(r).__name__ for r in results) == ["InvalidParameterError", "bool"]
        assert len(await graph.get_by_name("Glossary:C")) == 1


class TestClassifications:
    """Tests for classify, declassify and reclassify."""

    async def test_classify_and_declassify(self, graph):
        guid = await create_glossary(graph)
        await graph.classify(guid, "Confidentiality", {"levelIdentifier": 2})
        element = await graph.get_by_guid(guid)
        assert element.get_classification("Confidentiality").properties == {"levelIdentifier": 2}

        assert await graph.declassify(guid, "Confidentiality")
        assert not await graph.declassify(guid, "Confidentiality")
        assert not (await graph.get_by_guid(guid)).has_classification("Confidentiality")

    async def test_classify_twice_fails(self, graph):
        guid = await create_glossary(graph)
        await graph.classify(guid, "SubjectArea", {"subjectAreaName": "Sales"})
        with pytest.raises(InvalidParameterError):
            await graph.classify(guid, "SubjectArea", {"subjectAreaName": "Sales"})

    async def test_classification_not_valid_for_type(self, graph):
        guid = await create_glossary(graph)
        with pytest.raises(InvalidParameterError):
            await graph.classify(guid, "PrimaryKey")

    async def test_reclassify_merge_and_replace(self, graph):
        guid = await create_glossary(graph)
        await graph.classify(guid, "Confidentiality", {"levelIdentifier": 2, "notes": "n"})

        assert await graph.reclassify(guid, "Confidentiality", {"levelIdentifier": 3})
        classification = (await graph.get_by_guid(guid)).get_classification("Confidentiality")
        assert classification.properties == {"levelIdentifier": 3, "notes": "n"}
        assert classification.version == 2

        await graph.reclassify(guid, "Confidentiality", {"levelIdentifier": 1}, merge=False)
        classification = (await graph.get_by_guid(guid)).get_classification("Confidentiality")
        assert classification.properties == {"levelIdentifier": 1}

    async def test_reclassify_missing_fails(self, graph):
        guid = await create_glossary(graph)
        with pytest.raises(InvalidParameterError):
            await graph.reclassify(guid, "Confidentiality", {"levelIdentifier": 1})


class TestGetByGuid:
    """Tests for reading single elements."""

    async def test_type_narrowing(self, graph):
        guid = await graph.create_element("DataSet", {"qualifiedName": "DataSet:1"})
        assert await graph.get_by_guid(guid, QueryOptions(type_name="Asset")) is not None
        assert await graph.get_by_guid(guid, QueryOptions(type_name="Glossary")) is None

    async def test_effective_time(self, graph):
        guid = await graph.create_element(
            "Glossary",
            {"qualifiedName": "Glossary:A"},
            effective_from=datetime(2030, 1, 1, tzinfo=timezone.utc),
        )
        now = QueryOptions(effective_time=datetime(2025, 1, 1, tzinfo=timezone.utc))
        later = QueryOptions(effective_time=datetime(2031, 1, 1, tzinfo=timezone.utc))
        assert await graph.get_by_guid(guid, now) is None
        assert await graph.get_by_guid(guid, later) is not None

    async def test_status_filter(self, graph):
        guid = await create_glossary(graph)
        options = QueryOptions(limit_results_by_status=[ElementStatus.DRAFT])
        assert await graph.get_by_guid(guid, options) is None
