"""Tests for anchor chains and cascading deletes."""

import pytest

from metagraph.db.repository import MetadataRepository
from metagraph.errors import InvalidParameterError, PropertyServerError
from metagraph.graph import MetadataGraph
from metagraph.models import AnchorSpec, DeleteOptions, ElementStatus, QueryOptions


async def build_glossary(graph):
    """Glossary-A owning Term-1 and Category-1, with an asset assigned to Term-1."""
    glossary = await graph.create_element(
        "Glossary", {"qualifiedName": "Glossary:A", "displayName": "Glossary-A"}
    )
    term = await graph.create_element(
        "GlossaryTerm",
        {"qualifiedName": "Term:1", "displayName": "Term-1"},
        anchor=AnchorSpec.anchored_to(glossary, "TermAnchor"),
    )
    category = await graph.create_element(
        "GlossaryCategory",
        {"qualifiedName": "Category:1"},
        anchor=AnchorSpec.anchored_to(glossary, "CategoryAnchor"),
    )
    await graph.link_elements("TermCategorization", category, term)
    asset = await graph.create_element("Asset", {"qualifiedName": "Asset:X"})
    await graph.link_elements("SemanticAssignment", asset, term)
    return glossary, term, category, asset


class FailingRepository(MetadataRepository):
    """Repository that fails to delete one chosen element."""

    fail_guid: str | None = None

    async def delete_element(self, guid):
        if guid == self.fail_guid:
            raise PropertyServerError("simulated repository outage", guid=guid)
        return await super().delete_element(guid)


class TestAnchors:
    """Tests for anchor lookups."""

    async def test_get_anchor(self, graph):
        glossary, term, _, _ = await build_glossary(graph)
        assert (await graph.get_anchor(term)).guid == glossary
        assert await graph.get_anchor(glossary) is None

    async def test_root_anchor_walks_chain(self, graph):
        structure = await graph.create_element("DataStructure", {"qualifiedName": "DS:1"})
        field = await graph.create_element(
            "DataField",
            {"qualifiedName": "DS:1.f"},
            anchor=AnchorSpec.anchored_to(structure, "MemberDataField"),
        )
        nested = await graph.create_element(
            "DataField",
            {"qualifiedName": "DS:1.f.g"},
            anchor=AnchorSpec.anchored_to(field, "NestedDataField"),
        )
        assert (await graph.get_anchor(nested)).guid == field
        assert (await graph.get_root_anchor(nested)).guid == structure

    async def test_subgraph_is_breadth_first(self, graph):
        structure = await graph.create_element("DataStructure", {"qualifiedName": "DS:1"})
        field = await graph.create_element(
            "DataField", {"qualifiedName": "f"}, anchor=AnchorSpec.anchored_to(structure)
        )
        nested = await graph.create_element(
            "DataField", {"qualifiedName": "g"}, anchor=AnchorSpec.anchored_to(field)
        )
        assert await graph.anchors.anchored_subgraph(structure) == [structure, field, nested]

    async def test_cycle_detected(self, graph, repository):
        a = await graph.create_element("Location", {"qualifiedName": "Location:a"})
        b = await graph.create_element(
            "Location", {"qualifiedName": "Location:b"}, anchor=AnchorSpec.anchored_to(a)
        )
        # Corrupt the store so a and b anchor each other
        await repository._db.execute("UPDATE elements SET anchor_guid = ? WHERE guid = ?", (b, a))
        await repository._db.commit()

        with pytest.raises(PropertyServerError):
            await graph.get_root_anchor(b)
        with pytest.raises(PropertyServerError):
            await graph.anchors.anchored_subgraph(a)
        with pytest.raises(PropertyServerError) as exc_info:
            await graph.delete_element(a)
        assert exc_info.value.progress.deleted_element_guids == []


class TestCascadingDelete:
    """Tests for deleting anchored sub-graphs."""

    async def test_delete_glossary_removes_terms(self, graph, repository):
        glossary, term, category, asset = await build_glossary(graph)

        result = await graph.delete_element(glossary)

        assert result.complete
        assert set(result.anchored_guids) == {glossary, term, category}
        assert result.deleted_element_guids[-1] == glossary
        assert result.deleted_relationship_count == 4
        for guid in (glossary, term, category):
            assert await graph.get_by_guid(guid, QueryOptions(for_lineage=True)) is None
        # The asset survives, its assignment to the term does not
        assert await graph.get_by_guid(asset) is not None
        assert await repository.count_relationships_touching([asset]) == 0

    async def test_delete_leaf_keeps_anchor(self, graph):
        glossary, term, _, asset = await build_glossary(graph)
        await graph.delete_element(term)
        assert await graph.get_by_guid(glossary) is not None
        assert await graph.get_relationships_between(asset, term) == []

    async def test_cascade_refused(self, graph):
        glossary, term, _, _ = await build_glossary(graph)
        with pytest.raises(InvalidParameterError) as exc_info:
            await graph.delete_element(glossary, DeleteOptions(cascaded_delete=False))
        assert exc_info.value.parameter_name == "cascaded_delete"
        assert await graph.get_by_guid(term) is not None

    async def test_single_element_without_cascade(self, graph):
        asset = await graph.create_element("Asset", {"qualifiedName": "Asset:X"})
        result = await graph.delete_element(asset, DeleteOptions(cascaded_delete=False))
        assert result.deleted_element_guids == [asset]

    async def test_missing_element(self, graph):
        with pytest.raises(InvalidParameterError):
            await graph.delete_element("no-such-guid")

    async def test_best_effort_is_idempotent(self, graph):
        glossary, _, _, _ = await build_glossary(graph)
        await graph.delete_element(glossary)
        result = await graph.delete_element(glossary, DeleteOptions(best_effort=True))
        assert result.already_removed
        assert result.complete

    async def test_wrong_type(self, graph):
        glossary, _, _, _ = await build_glossary(graph)
        with pytest.raises(InvalidParameterError):
            await graph.delete_element(glossary, type_name="Asset")

    async def test_failure_reports_progress_and_retry_completes(self, repository, types):
        failing = FailingRepository(repository._db)
        graph = MetadataGraph(failing, types, user_id="tester")
        glossary, term, category, _ = await build_glossary(graph)
        failing.fail_guid = glossary

        with pytest.raises(PropertyServerError) as exc_info:
            await graph.delete_element(glossary)
        progress = exc_info.value.progress
        assert set(progress.deleted_element_guids) == {term, category}
        assert progress.deleted_relationship_count == 4
        assert not progress.complete
        # Nothing dangles: the survivor has no anchored elements or relationships
        assert await repository.get_anchored_guids(glossary) == []
        assert await repository.count_relationships_touching([glossary]) == 0

        failing.fail_guid = None
        result = await graph.delete_element(glossary)
        assert result.deleted_element_guids == [glossary]
        assert await graph.get_by_guid(glossary) is None


class TestSoftDelete:
    """Tests for soft deletes."""

    async def test_soft_delete_keeps_lineage(self, graph):
        glossary, term, _, asset = await build_glossary(graph)

        result = await graph.delete_element(glossary, DeleteOptions(soft_delete=True))

        assert result.soft_delete
        assert await graph.get_by_guid(term) is None
        lineage = await graph.get_by_guid(term, QueryOptions(for_lineage=True))
        assert lineage.status == ElementStatus.DELETED
        assert await graph.get_relationships_between(asset, term) == []
        old_links = await graph.get_relationships_between(
            asset, term, options=QueryOptions(for_lineage=True)
        )
        assert len(old_links) == 1

    async def test_soft_then_hard_delete(self, graph):
        glossary, term, _, _ = await build_glossary(graph)
        await graph.delete_element(glossary, DeleteOptions(soft_delete=True))
        await graph.delete_element(glossary)
        assert await graph.get_by_guid(term, QueryOptions(for_lineage=True)) is None

    async def test_repeat_soft_delete_best_effort(self, graph):
        glossary, _, _, _ = await build_glossary(graph)
        await graph.delete_element(glossary, DeleteOptions(soft_delete=True))
        result = await graph.delete_element(
            glossary, DeleteOptions(soft_delete=True, best_effort=True)
        )
        assert result.already_removed
