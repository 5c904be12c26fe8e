"""Tests for name lookup, search and traversal."""

import logging
import math
from datetime import datetime, timedelta, timezone

import pytest

from metagraph.errors import InvalidParameterError
from metagraph.models import (
    AnchorSpec,
    ComparisonOperator,
    HopDirection,
    MatchCriteria,
    PropertyCondition,
    QueryOptions,
    SearchConditions,
    SequencingOrder,
)


async def create_locations(graph, hub: str, count: int) -> list[str]:
    spokes = []
    for i in range(count):
        spokes.append(
            await graph.create_element(
                "Location",
                {"qualifiedName": f"Location:{hub}:{i}", "displayName": f"Spoke {i}"},
                anchor=AnchorSpec.linked_to(hub, "NestedLocation"),
            )
        )
    return spokes


class TestGetByName:
    """Tests for exact name lookups."""

    async def test_matches_any_name_property(self, graph):
        guid = await graph.create_element(
            "Glossary", {"qualifiedName": "Glossary:Sales", "displayName": "Sales"}
        )
        await graph.create_element("Glossary", {"qualifiedName": "Glossary:Other"})

        by_display = await graph.get_by_name("Sales", options=QueryOptions(type_name="Glossary"))
        by_qualified = await graph.get_by_name("Glossary:Sales")
        assert [e.guid for e in by_display] == [guid]
        assert [e.guid for e in by_qualified] == [guid]

    async def test_exact_not_partial(self, graph):
        await graph.create_element("Glossary", {"qualifiedName": "Glossary:Sales"})
        assert await graph.get_by_name("Glossary:Sal") == []

    async def test_explicit_property_names(self, graph):
        await graph.create_element(
            "Glossary", {"qualifiedName": "Glossary:A", "language": "French"}
        )
        assert len(await graph.get_by_name("French", ["language"])) == 1
        assert await graph.get_by_name("French") == []

    async def test_type_narrowing_includes_subtypes(self, graph):
        await graph.create_element("DataSet", {"qualifiedName": "Data:1", "name": "orders"})
        await graph.create_element("Endpoint", {"qualifiedName": "Endpoint:1", "name": "orders"})
        found = await graph.get_by_name("orders", options=QueryOptions(type_name="Asset"))
        assert [e.type_name for e in found] == ["DataSet"]

    async def test_empty_name(self, graph):
        with pytest.raises(InvalidParameterError):
            await graph.get_by_name("")


class TestFind:
    """Tests for regular expression search."""

    async def test_case_insensitive_search(self, graph):
        await graph.create_element(
            "Glossary", {"qualifiedName": "Glossary:1", "displayName": "Sales Glossary"}
        )
        await graph.create_element(
            "Glossary", {"qualifiedName": "Glossary:2", "description": "Finance terms"}
        )
        assert len(await graph.find("sales")) == 1
        assert len(await graph.find("glossary:\\d")) == 2

    async def test_search_properties_of_type(self, graph):
        await graph.create_element(
            "Comment", {"qualifiedName": "Comment:about-sales", "text": "Looks fine"}
        )
        # Comments only search their text
        assert await graph.find("about-sales", QueryOptions(type_name="Comment")) == []
        assert len(await graph.find("fine", QueryOptions(type_name="Comment"))) == 1

    async def test_invalid_regex(self, graph):
        with pytest.raises(InvalidParameterError):
            await graph.find("(unclosed")

    async def test_paging_and_order(self, graph):
        for name in ("b", "c", "a", "d"):
            await graph.create_element(
                "Glossary", {"qualifiedName": f"Glossary:{name}", "displayName": f"Term {name}"}
            )
        options = QueryOptions(
            page_size=2,
            sequencing_order=SequencingOrder.PROPERTY_ASCENDING,
            sequencing_property="displayName",
        )
        first = await graph.find("term", options)
        second = await graph.find("term", options.next_page())
        assert [e.properties["displayName"] for e in first + second] == [
            "Term a",
            "Term b",
            "Term c",
            "Term d",
        ]

    async def test_page_size_above_maximum(self, small_page_graph):
        page_size = small_page_graph.repository.max_page_size
        with pytest.raises(InvalidParameterError):
            await small_page_graph.find("x", QueryOptions(page_size=page_size + 1))


class TestFindByConditions:
    """Tests for condition searches."""

    async def test_conditions(self, graph):
        await graph.create_element(
            "ToDo", {"qualifiedName": "ToDo:1", "name": "Fix", "priority": 1}
        )
        await graph.create_element(
            "ToDo", {"qualifiedName": "ToDo:2", "name": "Review", "priority": 5}
        )
        await graph.create_element("ToDo", {"qualifiedName": "ToDo:3", "name": "Ship"})

        urgent = await graph.find_by_conditions(
            SearchConditions(
                conditions=[
                    PropertyCondition(
                        property_name="priority", operator=ComparisonOperator.GTE, value=3
                    )
                ]
            ),
            QueryOptions(type_name="ToDo"),
        )
        assert [e.properties["name"] for e in urgent] == ["Review"]

        unprioritised = await graph.find_by_conditions(
            SearchConditions(
                conditions=[
                    PropertyCondition(property_name="priority", operator=ComparisonOperator.NOT_NULL)
                ],
                match_criteria=MatchCriteria.NONE,
            ),
            QueryOptions(type_name="ToDo"),
        )
        assert [e.properties["name"] for e in unprioritised] == ["Ship"]


class TestTraversal:
    """Tests for paged relationship traversal."""

    @pytest.mark.parametrize("edge_count", [1, 3, 9, 10])
    async def test_reads_every_page(self, small_page_graph, edge_count):
        hub = await small_page_graph.create_element("Location", {"qualifiedName": "Location:hub"})
        spokes = await create_locations(small_page_graph, hub, edge_count)
        page_size = small_page_graph.repository.max_page_size

        result = await small_page_graph.traverse(hub, "NestedLocation", HopDirection.FROM_END1)

        assert result.pages_fetched == math.ceil(edge_count / page_size)
        assert len(result.elements) == edge_count
        assert sorted(e.guid for e in result.elements) == sorted(spokes)

    async def test_explicit_paging(self, small_page_graph):
        """An explicit page size pages through the full result."""
        hub = await small_page_graph.create_element("Location", {"qualifiedName": "Location:hub"})
        spokes = await create_locations(small_page_graph, hub, 10)
        page_size = small_page_graph.repository.max_page_size

        seen = []
        options = QueryOptions(page_size=page_size)
        while True:
            page = await small_page_graph.get_related_elements(
                hub, "NestedLocation", HopDirection.FROM_END1, options=options
            )
            if not page:
                break
            assert len(page) <= page_size
            seen.extend(e.guid for e in page)
            options = options.next_page()
        assert sorted(seen) == sorted(spokes)
        assert len(seen) == len(set(seen))

    async def test_direction(self, graph):
        parent = await graph.create_element("Location", {"qualifiedName": "Location:EU"})
        child = await graph.create_element(
            "Location",
            {"qualifiedName": "Location:DE"},
            anchor=AnchorSpec.linked_to(parent, "NestedLocation"),
        )
        down = await graph.get_related_elements(parent, "NestedLocation", HopDirection.FROM_END1)
        up = await graph.get_related_elements(child, "NestedLocation", HopDirection.FROM_END2)
        wrong_way = await graph.get_related_elements(
            parent, "NestedLocation", HopDirection.FROM_END2
        )
        assert [e.guid for e in down] == [child]
        assert [e.guid for e in up] == [parent]
        assert wrong_way == []

    async def test_deduplicates(self, graph):
        a = await graph.create_element("GlossaryTerm", {"qualifiedName": "Term:a"})
        b = await graph.create_element("GlossaryTerm", {"qualifiedName": "Term:b"})
        await graph.link_elements("Synonym", a, b)
        await graph.link_elements("RelatedTerm", b, a)
        related = await graph.get_related_elements(a)
        assert [e.guid for e in related] == [b]

    async def test_multiple_hops(self, graph):
        root = await graph.create_element("Location", {"qualifiedName": "Location:root"})
        [middle] = await create_locations(graph, root, 1)
        leaves = await create_locations(graph, middle, 2)

        one_hop = await graph.get_related_elements(root, "NestedLocation", HopDirection.FROM_END1)
        two_hops = await graph.get_related_elements(
            root, "NestedLocation", HopDirection.FROM_END1, hops=2
        )
        assert [e.guid for e in one_hop] == [middle]
        assert {e.guid for e in two_hops} == {middle, *leaves}

    async def test_result_type_filter(self, graph):
        term = await graph.create_element("GlossaryTerm", {"qualifiedName": "Term:a"})
        dataset = await graph.create_element("DataSet", {"qualifiedName": "Data:1"})
        glossary = await graph.create_element("Glossary", {"qualifiedName": "Glossary:A"})
        await graph.link_elements("SemanticAssignment", dataset, term)
        await graph.link_elements("SemanticAssignment", glossary, term)

        assets = await graph.get_related_elements(term, result_type="Asset")
        assert [e.guid for e in assets] == [dataset]

    async def test_unreadable_endpoints_skipped(self, graph):
        hub = await graph.create_element("Location", {"qualifiedName": "Location:hub"})
        expired = await graph.create_element(
            "Location",
            {"qualifiedName": "Location:old"},
            effective_to=datetime.now(timezone.utc) - timedelta(days=1),
        )
        current = await graph.create_element("Location", {"qualifiedName": "Location:new"})
        await graph.link_elements("NestedLocation", hub, expired)
        await graph.link_elements("NestedLocation", hub, current)

        result = await graph.traverse(
            hub,
            "NestedLocation",
            HopDirection.FROM_END1,
            options=QueryOptions(effective_time=datetime.now(timezone.utc)),
        )
        assert [e.guid for e in result.elements] == [current]
        assert result.skipped_guids == [expired]

    async def test_missing_start(self, graph):
        with pytest.raises(InvalidParameterError):
            await graph.get_related_elements("no-such-guid")

    async def test_invalid_hops(self, graph):
        hub = await graph.create_element("Location", {"qualifiedName": "Location:hub"})
        with pytest.raises(InvalidParameterError):
            await graph.get_related_elements(hub, hops=0)


class TestGetRelatedElement:
    """Tests for single related element lookups."""

    async def test_none_when_unrelated(self, graph):
        hub = await graph.create_element("Location", {"qualifiedName": "Location:hub"})
        assert await graph.get_related_element(hub, "NestedLocation") is None

    async def test_warns_on_many(self, graph, caplog):
        hub = await graph.create_element("Location", {"qualifiedName": "Location:hub"})
        spokes = await create_locations(graph, hub, 2)

        with caplog.at_level(logging.WARNING, logger="metagraph.services.query_engine"):
            found = await graph.get_related_element(hub, "NestedLocation", HopDirection.FROM_END1)

        assert found.guid in spokes
        assert "Expected at most one" in caplog.text

    async def test_skips_unreadable(self, graph):
        hub = await graph.create_element("Location", {"qualifiedName": "Location:hub"})
        expired = await graph.create_element(
            "Location",
            {"qualifiedName": "Location:old"},
            effective_to=datetime.now(timezone.utc) - timedelta(days=1),
        )
        await graph.link_elements("NestedLocation", hub, expired)
        options = QueryOptions(effective_time=datetime.now(timezone.utc))
        assert await graph.get_related_element(hub, "NestedLocation", options=options) is None

    async def test_counts_every_candidate(self, small_page_graph, caplog):
        hub = await small_page_graph.create_element("Location", {"qualifiedName": "Location:hub"})
        await create_locations(small_page_graph, hub, 10)

        with caplog.at_level(logging.WARNING, logger="metagraph.services.query_engine"):
            found = await small_page_graph.get_related_element(
                hub, "NestedLocation", HopDirection.FROM_END1
            )

        assert found is not None
        assert "found 10" in caplog.text
