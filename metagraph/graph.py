"""MetadataGraph - the single entry point used by domain handlers."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from metagraph.config import GraphSettings
from metagraph.db.repository import MetadataRepository
from metagraph.models import (
    AnchorSpec,
    ClassificationRequest,
    CloneResult,
    DeleteOptions,
    DeleteResult,
    Element,
    ElementStatus,
    HopDirection,
    QueryOptions,
    Relationship,
    SearchConditions,
    TraversalResult,
)
from metagraph.services.anchor_resolver import AnchorResolver
from metagraph.services.element_store import ElementStore
from metagraph.services.query_engine import QueryEngine
from metagraph.services.relationship_store import RelationshipStore
from metagraph.services.security import AccessPolicy, AllowAllPolicy
from metagraph.services.template_cloner import TemplateCloner
from metagraph.services.type_registry import TypeRegistry
from metagraph.types import default_type_registry

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "system"


class MetadataGraph:
    """Facade over the element, relationship, template and query services.

    A graph is bound to one caller identity, used for the access policy and
    for audit fields. ``for_user`` returns a graph bound to another caller
    that shares the same repository and services.
    """

    def __init__(
        self,
        repository: MetadataRepository,
        types: TypeRegistry,
        security: AccessPolicy | None = None,
        user_id: str = DEFAULT_USER_ID,
    ):
        self.repository = repository
        self.types = types
        self.security = security or AllowAllPolicy()
        self.user_id = user_id

        self.anchors = AnchorResolver(repository)
        self.elements = ElementStore(repository, types, self.anchors, self.security)
        self.relationships = RelationshipStore(repository, types, self.security)
        self.templates = TemplateCloner(
            repository, types, self.elements, self.anchors, self.security
        )
        self.queries = QueryEngine(repository, types)

    def for_user(self, user_id: str) -> MetadataGraph:
        """Return a graph acting as another caller."""
        return MetadataGraph(self.repository, self.types, self.security, user_id)

    # ==================== Elements ====================

    async def create_element(
        self,
        type_name: str,
        properties: dict[str, Any] | None = None,
        classifications: list[ClassificationRequest] | None = None,
        anchor: AnchorSpec | None = None,
        status: ElementStatus = ElementStatus.ACTIVE,
        effective_from: datetime | None = None,
        effective_to: datetime | None = None,
    ) -> str:
        return await self.elements.create(
            self.user_id,
            type_name,
            properties,
            classifications,
            anchor,
            status,
            effective_from,
            effective_to,
        )

    async def create_from_template(
        self,
        template_guid: str,
        replacement_properties: dict[str, Any] | None = None,
        placeholders: dict[str, str] | None = None,
        parent: AnchorSpec | None = None,
        allow_unresolved: bool = False,
        deep_copy: bool = True,
        type_name: str | None = None,
    ) -> CloneResult:
        return await self.templates.clone(
            self.user_id,
            template_guid,
            replacement_properties,
            placeholders,
            parent,
            allow_unresolved,
            deep_copy,
            type_name,
        )

    async def update_element(
        self,
        guid: str,
        properties: dict[str, Any] | None,
        merge: bool = True,
        type_name: str | None = None,
    ) -> bool:
        return await self.elements.update(self.user_id, guid, properties, merge, type_name)

    async def update_status(
        self, guid: str, status: ElementStatus, type_name: str | None = None
    ) -> bool:
        return await self.elements.update_status(self.user_id, guid, status, type_name)

    async def delete_element(
        self,
        guid: str,
        options: DeleteOptions | None = None,
        type_name: str | None = None,
    ) -> DeleteResult:
        return await self.elements.delete(self.user_id, guid, options, type_name)

    async def classify(
        self, guid: str, classification_name: str, properties: dict[str, Any] | None = None
    ) -> None:
        await self.elements.classify(self.user_id, guid, classification_name, properties)

    async def declassify(self, guid: str, classification_name: str) -> bool:
        return await self.elements.declassify(self.user_id, guid, classification_name)

    async def reclassify(
        self,
        guid: str,
        classification_name: str,
        properties: dict[str, Any] | None,
        merge: bool = True,
    ) -> bool:
        return await self.elements.reclassify(
            self.user_id, guid, classification_name, properties, merge
        )

    async def get_by_guid(self, guid: str, options: QueryOptions | None = None) -> Element | None:
        return await self.elements.get_by_guid(guid, options)

    async def get_anchor(self, guid: str) -> Element | None:
        return await self.anchors.get_anchor(guid)

    async def get_root_anchor(self, guid: str) -> Element:
        return await self.anchors.get_root_anchor(guid)

    # ==================== Relationships ====================

    async def link_elements(
        self,
        relationship_type: str,
        end1_guid: str,
        end2_guid: str,
        properties: dict[str, Any] | None = None,
        effective_from: datetime | None = None,
        effective_to: datetime | None = None,
    ) -> str:
        return await self.relationships.link(
            self.user_id,
            relationship_type,
            end1_guid,
            end2_guid,
            properties,
            effective_from,
            effective_to,
        )

    async def detach_elements(
        self,
        relationship_type: str,
        end1_guid: str,
        end2_guid: str,
        options: QueryOptions | None = None,
    ) -> int:
        return await self.relationships.detach(
            self.user_id, relationship_type, end1_guid, end2_guid, options
        )

    async def update_relationship(
        self, relationship_guid: str, properties: dict[str, Any] | None, merge: bool = True
    ) -> bool:
        return await self.relationships.update(self.user_id, relationship_guid, properties, merge)

    async def get_relationship(
        self, relationship_guid: str, options: QueryOptions | None = None
    ) -> Relationship | None:
        return await self.relationships.get_relationship(relationship_guid, options)

    async def delete_relationship(self, relationship_guid: str) -> bool:
        return await self.relationships.delete_relationship(self.user_id, relationship_guid)

    async def get_relationships_between(
        self,
        guid: str,
        other_guid: str,
        relationship_type: str | None = None,
        options: QueryOptions | None = None,
    ) -> list[Relationship]:
        return await self.relationships.get_relationships_between(
            guid, other_guid, relationship_type, options
        )

    # ==================== Queries ====================

    async def get_by_name(
        self,
        name: str,
        property_names: list[str] | None = None,
        options: QueryOptions | None = None,
    ) -> list[Element]:
        return await self.queries.get_by_name(name, property_names, options)

    async def find(
        self,
        search_string: str,
        options: QueryOptions | None = None,
        property_names: list[str] | None = None,
    ) -> list[Element]:
        return await self.queries.find(search_string, options, property_names)

    async def find_by_conditions(
        self, conditions: SearchConditions, options: QueryOptions | None = None
    ) -> list[Element]:
        return await self.queries.find_by_conditions(conditions, options)

    async def get_related_elements(
        self,
        guid: str,
        relationship_type: str | None = None,
        direction: HopDirection = HopDirection.ANY,
        result_type: str | None = None,
        options: QueryOptions | None = None,
        hops: int = 1,
    ) -> list[Element]:
        return await self.queries.get_related_elements(
            guid, relationship_type, direction, result_type, options, hops
        )

    async def traverse(
        self,
        guid: str,
        relationship_type: str | None = None,
        direction: HopDirection = HopDirection.ANY,
        result_type: str | None = None,
        options: QueryOptions | None = None,
        hops: int = 1,
    ) -> TraversalResult:
        return await self.queries.traverse(
            guid, relationship_type, direction, result_type, options, hops
        )

    async def get_related_element(
        self,
        guid: str,
        relationship_type: str | None = None,
        direction: HopDirection = HopDirection.ANY,
        result_type: str | None = None,
        options: QueryOptions | None = None,
    ) -> Element | None:
        return await self.queries.get_related_element(
            guid, relationship_type, direction, result_type, options
        )


@asynccontextmanager
async def open_graph(
    settings: GraphSettings | None = None,
    types: TypeRegistry | None = None,
    security: AccessPolicy | None = None,
    user_id: str = DEFAULT_USER_ID,
) -> AsyncIterator[MetadataGraph]:
    """Open the repository described by ``settings`` and yield a graph over it."""
    settings = settings or GraphSettings.from_env()
    if types is None:
        types = default_type_registry()
        if settings.type_definitions_path:
            types.load_json(settings.type_definitions_path)

    repository = await MetadataRepository.open(settings.database_path, settings.max_page_size)
    try:
        yield MetadataGraph(repository, types, security, user_id)
    finally:
        await repository.close()
        logger.info(f"Closed metadata repository at {settings.database_path}")
