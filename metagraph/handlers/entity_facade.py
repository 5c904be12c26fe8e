"""Typed entity facade - one generic handler configured per element type.

Domain handlers for glossaries, locations, to-dos and the like differ only in
their type name and in how a new element hangs off its parent. A descriptor
captures those differences and the facade supplies the shared operations.

Example usage:
    terms = TypedEntityFacade(graph, GLOSSARY_TERM)
    term_guid = await terms.create({"qualifiedName": "Term:Revenue"}, parent_guid=glossary_guid)
    glossary = await terms.get_owner(term_guid)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from metagraph.errors import InvalidParameterError
from metagraph.models import (
    AnchorSpec,
    ClassificationRequest,
    DeleteOptions,
    DeleteResult,
    Element,
    ElementStatus,
    HopDirection,
    QueryOptions,
    SearchConditions,
)

if TYPE_CHECKING:
    from metagraph.graph import MetadataGraph

logger = logging.getLogger(__name__)


class EntityDescriptor(BaseModel):
    """Per-type configuration for a TypedEntityFacade."""

    type_name: str
    description: str = ""
    # Relationship that attaches a new element to its parent, if any
    parent_type_name: str | None = None
    parent_relationship_type: str | None = None
    parent_at_end1: bool = True
    anchored_to_parent: bool = True
    parent_required: bool = False
    # Overrides the type's name properties for get_by_name
    name_properties: list[str] = Field(default_factory=list)


class TypedEntityFacade:
    """Create, read, update, delete and link elements of one type."""

    def __init__(self, graph: MetadataGraph, descriptor: EntityDescriptor):
        self.graph = graph
        self.descriptor = descriptor
        graph.types.require_entity_def(descriptor.type_name)
        if descriptor.parent_relationship_type:
            graph.types.require_relationship_def(descriptor.parent_relationship_type)

    @property
    def type_name(self) -> str:
        return self.descriptor.type_name

    def _options(self, options: QueryOptions | None) -> QueryOptions:
        """Narrow query options to this facade's type."""
        options = options or QueryOptions()
        if options.type_name and self.graph.types.is_type_of(options.type_name, self.type_name):
            return options
        return options.model_copy(update={"type_name": self.type_name})

    def _anchor_for(
        self,
        parent_guid: str | None,
        relationship_properties: dict[str, Any] | None = None,
    ) -> AnchorSpec:
        descriptor = self.descriptor
        if parent_guid is None:
            if descriptor.parent_required:
                raise InvalidParameterError(
                    f"A {descriptor.parent_type_name} parent is required for {self.type_name}",
                    parameter_name="parent_guid",
                )
            return AnchorSpec.own_anchor()
        if not descriptor.parent_relationship_type:
            raise InvalidParameterError(
                f"{self.type_name} elements do not have a parent", parameter_name="parent_guid"
            )

        if descriptor.anchored_to_parent:
            anchor = AnchorSpec.anchored_to(
                parent_guid, descriptor.parent_relationship_type, descriptor.parent_at_end1
            )
        else:
            anchor = AnchorSpec.linked_to(
                parent_guid, descriptor.parent_relationship_type, descriptor.parent_at_end1
            )
        if relationship_properties:
            anchor.parent_relationship_properties = dict(relationship_properties)
        return anchor

    def _owner_direction(self) -> HopDirection:
        # The element sits at the opposite end to its parent
        if self.descriptor.parent_at_end1:
            return HopDirection.FROM_END2
        return HopDirection.FROM_END1

    async def _check_parent(self, parent_guid: str | None) -> None:
        if parent_guid is None or not self.descriptor.parent_type_name:
            return
        parent = await self.graph.get_by_guid(
            parent_guid, QueryOptions(type_name=self.descriptor.parent_type_name)
        )
        if parent is None:
            raise InvalidParameterError(
                f"Parent {parent_guid} is not a {self.descriptor.parent_type_name}",
                guid=parent_guid,
                parameter_name="parent_guid",
            )

    # ==================== Lifecycle ====================

    async def create(
        self,
        properties: dict[str, Any],
        parent_guid: str | None = None,
        classifications: list[ClassificationRequest] | None = None,
        parent_relationship_properties: dict[str, Any] | None = None,
        status: ElementStatus = ElementStatus.ACTIVE,
    ) -> str:
        await self._check_parent(parent_guid)
        return await self.graph.create_element(
            self.type_name,
            properties,
            classifications,
            self._anchor_for(parent_guid, parent_relationship_properties),
            status,
        )

    async def create_from_template(
        self,
        template_guid: str,
        placeholders: dict[str, str] | None = None,
        replacement_properties: dict[str, Any] | None = None,
        parent_guid: str | None = None,
        deep_copy: bool = True,
    ) -> str:
        """Clone a template of this type, returning the new element's GUID."""
        await self._check_parent(parent_guid)
        result = await self.graph.create_from_template(
            template_guid,
            replacement_properties=replacement_properties,
            placeholders=placeholders,
            parent=self._anchor_for(parent_guid),
            deep_copy=deep_copy,
            type_name=self.type_name,
        )
        return result.root_guid

    async def update(self, guid: str, properties: dict[str, Any], merge: bool = True) -> bool:
        return await self.graph.update_element(guid, properties, merge, self.type_name)

    async def set_status(self, guid: str, status: ElementStatus) -> bool:
        return await self.graph.update_status(guid, status, self.type_name)

    async def delete(self, guid: str, cascade: bool = True, soft_delete: bool = False) -> DeleteResult:
        return await self.graph.delete_element(
            guid,
            DeleteOptions(cascaded_delete=cascade, soft_delete=soft_delete),
            self.type_name,
        )

    # ==================== Reads ====================

    async def get(self, guid: str, options: QueryOptions | None = None) -> Element | None:
        return await self.graph.get_by_guid(guid, self._options(options))

    async def get_by_name(self, name: str, options: QueryOptions | None = None) -> list[Element]:
        return await self.graph.get_by_name(
            name, self.descriptor.name_properties or None, self._options(options)
        )

    async def find(self, search_string: str, options: QueryOptions | None = None) -> list[Element]:
        return await self.graph.find(search_string, self._options(options))

    async def list_all(self, options: QueryOptions | None = None) -> list[Element]:
        """Return one page of every element of this type."""
        return await self.graph.find_by_conditions(SearchConditions(), self._options(options))

    async def get_owner(self, guid: str) -> Element | None:
        """Return the parent this element is attached to, if any."""
        if not self.descriptor.parent_relationship_type:
            return await self.graph.get_anchor(guid)
        return await self.graph.get_related_element(
            guid,
            self.descriptor.parent_relationship_type,
            self._owner_direction(),
            self.descriptor.parent_type_name,
        )

    async def get_related(
        self,
        guid: str,
        relationship_type: str | None = None,
        direction: HopDirection = HopDirection.ANY,
        result_type: str | None = None,
        options: QueryOptions | None = None,
    ) -> list[Element]:
        return await self.graph.get_related_elements(
            guid, relationship_type, direction, result_type, options
        )

    # ==================== Relationships ====================

    async def link(
        self,
        relationship_type: str,
        guid: str,
        other_guid: str,
        properties: dict[str, Any] | None = None,
        at_end1: bool = True,
    ) -> str:
        """Link an element of this type to another element."""
        if at_end1:
            return await self.graph.link_elements(relationship_type, guid, other_guid, properties)
        return await self.graph.link_elements(relationship_type, other_guid, guid, properties)

    async def detach(
        self,
        relationship_type: str,
        guid: str,
        other_guid: str,
        at_end1: bool = True,
    ) -> int:
        if at_end1:
            return await self.graph.detach_elements(relationship_type, guid, other_guid)
        return await self.graph.detach_elements(relationship_type, other_guid, guid)

    async def reassign(
        self,
        relationship_type: str,
        guid: str,
        new_other_guid: str,
        properties: dict[str, Any] | None = None,
        at_end1: bool = False,
    ) -> str:
        """Replace every relationship of a type on this element with one to a new element.

        Used where a relationship is meant to be single-valued, such as the
        role a to-do is assigned to.
        """
        direction = HopDirection.FROM_END1 if at_end1 else HopDirection.FROM_END2
        current = await self.graph.get_related_elements(guid, relationship_type, direction)
        for other in current:
            await self.detach(relationship_type, guid, other.guid, at_end1)
        logger.info(
            f"Reassigning {relationship_type} of {self.type_name} {guid} "
            f"from {len(current)} element(s) to {new_other_guid}"
        )
        return await self.link(relationship_type, guid, new_other_guid, properties, at_end1)
