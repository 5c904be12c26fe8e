"""QueryEngine - name lookup, search and relationship traversal."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from metagraph.errors import InvalidParameterError
from metagraph.models.element import Element
from metagraph.models.options import (
    ComparisonOperator,
    HopDirection,
    MatchCriteria,
    PropertyCondition,
    QueryOptions,
    SearchConditions,
)
from metagraph.models.results import TraversalResult
from metagraph.services.properties import (
    compile_pattern,
    matches_conditions,
    precompile_conditions,
    sort_elements,
)

if TYPE_CHECKING:
    from metagraph.db.repository import MetadataRepository
    from metagraph.services.type_registry import TypeRegistry

logger = logging.getLogger(__name__)

ROOT_TYPE = "OpenMetadataRoot"


class QueryEngine:
    """Read-side operations over the metadata graph."""

    def __init__(self, repository: MetadataRepository, types: TypeRegistry):
        self.repository = repository
        self.types = types

    def _scope(self, type_name: str | None) -> set[str] | None:
        """Return the type names a query is narrowed to, or None for every type."""
        if not type_name:
            return None
        self.types.require_entity_def(type_name, parameter_name="options.type_name")
        return self.types.subtypes_of(type_name)

    def _default_type(self, options: QueryOptions) -> str:
        if options.type_name:
            return options.type_name
        if self.types.get_entity_def(ROOT_TYPE) is not None:
            return ROOT_TYPE
        return ""

    async def find_by_conditions(
        self,
        conditions: SearchConditions,
        options: QueryOptions | None = None,
    ) -> list[Element]:
        """Return one page of elements matching a set of property conditions."""
        options = options or QueryOptions()
        search = precompile_conditions(conditions)
        page = await self.repository.find_elements(
            self._scope(options.type_name),
            predicate=lambda e: matches_conditions(e, search),
            start_from=options.start_from,
            page_size=options.page_size,
            statuses=options.limit_results_by_status or None,
            include_deleted=options.for_lineage,
            effective_time=options.effective_time,
            order=options.sequencing_order,
            sequencing_property=options.sequencing_property,
        )
        return page.items

    async def get_by_name(
        self,
        name: str,
        property_names: list[str] | None = None,
        options: QueryOptions | None = None,
    ) -> list[Element]:
        """Return elements whose name properties exactly equal ``name``.

        The candidate properties default to the name properties of the
        narrowing type.
        """
        if not name:
            raise InvalidParameterError("No name supplied", parameter_name="name")
        options = options or QueryOptions()
        candidates = property_names or self.types.name_properties(self._default_type(options))
        conditions = SearchConditions(
            conditions=[
                PropertyCondition(property_name=p, operator=ComparisonOperator.EQ, value=name)
                for p in candidates
            ],
            match_criteria=MatchCriteria.ANY,
        )
        return await self.find_by_conditions(conditions, options)

    async def find(
        self,
        search_string: str,
        options: QueryOptions | None = None,
        property_names: list[str] | None = None,
    ) -> list[Element]:
        """Return elements where any search property matches a regular expression.

        Matching is a case-insensitive search, so a plain word matches any
        value containing it.
        """
        if not search_string:
            raise InvalidParameterError("No search string supplied", parameter_name="search_string")
        options = options or QueryOptions()
        pattern = compile_pattern(search_string)
        scope = self._scope(options.type_name)

        cache: dict[str, list[str]] = {}

        def candidates_for(type_name: str) -> list[str]:
            if property_names:
                return property_names
            if type_name not in cache:
                cache[type_name] = self.types.search_properties(type_name)
            return cache[type_name]

        def predicate(element: Element) -> bool:
            for property_name in candidates_for(element.type_name):
                value = element.properties.get(property_name)
                if value is None:
                    continue
                values = value if isinstance(value, list) else [value]
                if any(isinstance(v, str) and pattern.search(v) for v in values):
                    return True
            return False

        page = await self.repository.find_elements(
            scope,
            predicate=predicate,
            start_from=options.start_from,
            page_size=options.page_size,
            statuses=options.limit_results_by_status or None,
            include_deleted=options.for_lineage,
            effective_time=options.effective_time,
            order=options.sequencing_order,
            sequencing_property=options.sequencing_property,
        )
        return page.items

    # ==================== Traversal ====================

    async def _hop(
        self,
        guid: str,
        relationship_type: str | None,
        direction: HopDirection,
        options: QueryOptions,
        result: TraversalResult,
    ) -> list[str]:
        """Read every relationship of one element, page by page, and return the far ends."""
        far_ends: list[str] = []
        start_from = 0
        page_size = self.repository.max_page_size
        while True:
            page = await self.repository.get_relationships(
                guid,
                relationship_type,
                direction,
                start_from=start_from,
                page_size=page_size,
                include_deleted=options.for_lineage,
                effective_time=options.effective_time,
            )
            result.pages_fetched += 1
            for relationship in page.items:
                far_ends.append(relationship.other_end(guid))
            if not page.has_more or not page.items:
                return far_ends
            start_from += page_size

    async def traverse(
        self,
        guid: str,
        relationship_type: str | None = None,
        direction: HopDirection = HopDirection.ANY,
        result_type: str | None = None,
        options: QueryOptions | None = None,
        hops: int = 1,
    ) -> TraversalResult:
        """Collect the elements reachable from ``guid`` within ``hops`` relationships.

        Every relationship page is read before the de-duplicated result is
        returned. With the default ``page_size`` of 0 all reached elements are
        returned; an explicit page size pages through them from ``start_from``.
        Endpoints that cannot be read are skipped and reported in
        ``skipped_guids``.
        """
        options = options or QueryOptions()
        if hops < 1:
            raise InvalidParameterError("hops must be at least 1", parameter_name="hops")
        if relationship_type:
            self.types.require_relationship_def(relationship_type)
        if result_type:
            self.types.require_entity_def(result_type, parameter_name="result_type")
        if await self.repository.get_element(guid, include_deleted=options.for_lineage) is None:
            raise InvalidParameterError(
                f"Element {guid} does not exist", guid=guid, parameter_name="guid"
            )

        result = TraversalResult()
        visited = {guid}
        frontier = [guid]
        reached: list[Element] = []
        for _ in range(hops):
            next_frontier: list[str] = []
            for current in frontier:
                for far_end in await self._hop(
                    current, relationship_type, direction, options, result
                ):
                    if far_end in visited:
                        continue
                    visited.add(far_end)
                    element = await self.repository.get_element(
                        far_end,
                        include_deleted=options.for_lineage,
                        effective_time=options.effective_time,
                    )
                    if element is None:
                        logger.debug(f"Skipping unreadable endpoint {far_end} of {current}")
                        result.skipped_guids.append(far_end)
                        continue
                    reached.append(element)
                    next_frontier.append(far_end)
            frontier = next_frontier
            if not frontier:
                break

        if result_type:
            reached = [e for e in reached if self.types.is_type_of(e.type_name, result_type)]
        if options.type_name:
            reached = [e for e in reached if self.types.is_type_of(e.type_name, options.type_name)]
        if options.limit_results_by_status:
            reached = [e for e in reached if e.status in options.limit_results_by_status]
        reached = sort_elements(reached, options.sequencing_order, options.sequencing_property)

        if options.page_size == 0:
            # Unpaged traversal returns the whole accumulation
            result.elements = reached[options.start_from :]
        else:
            page_size = self.repository.resolve_page_size(options.page_size)
            result.elements = reached[options.start_from : options.start_from + page_size]
        logger.debug(
            f"Traversed {hops} hop(s) from {guid}: {len(reached)} elements in "
            f"{result.pages_fetched} relationship pages"
        )
        return result

    async def get_related_elements(
        self,
        guid: str,
        relationship_type: str | None = None,
        direction: HopDirection = HopDirection.ANY,
        result_type: str | None = None,
        options: QueryOptions | None = None,
        hops: int = 1,
    ) -> list[Element]:
        result = await self.traverse(guid, relationship_type, direction, result_type, options, hops)
        return result.elements

    async def get_related_element(
        self,
        guid: str,
        relationship_type: str | None = None,
        direction: HopDirection = HopDirection.ANY,
        result_type: str | None = None,
        options: QueryOptions | None = None,
    ) -> Element | None:
        """Return the single related element, or None.

        Unreadable endpoints are skipped. When several candidates exist the
        first is returned and a warning is logged.
        """
        options = (options or QueryOptions()).model_copy(update={"start_from": 0, "page_size": 0})
        result = await self.traverse(guid, relationship_type, direction, result_type, options)
        if not result.elements:
            return None
        if len(result.elements) > 1:
            logger.warning(
                f"Expected at most one {relationship_type or 'related'} element for {guid}, "
                f"found {len(result.elements)}; returning {result.elements[0].guid}"
            )
        return result.elements[0]
