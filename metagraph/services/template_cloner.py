"""TemplateCloner - create new elements by copying a template sub-graph.

A clone copies the template element and, for a deep copy, everything
anchored to it. Relationships inside the sub-graph are recreated between the
copies. Relationships to elements outside the sub-graph are recreated
against the same outside elements, which are shared rather than copied.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from metagraph.db.repository import UniqueKey, generate_guid, utc_now
from metagraph.errors import InvalidParameterError, PropertyServerError
from metagraph.models.element import AnchorSpec, Element, ElementStatus
from metagraph.models.options import HopDirection
from metagraph.models.relationship import Relationship
from metagraph.models.results import CloneResult
from metagraph.services.properties import merge_properties, substitute_placeholders
from metagraph.services.security import AccessPolicy, AllowAllPolicy, Operation

if TYPE_CHECKING:
    from metagraph.db.repository import MetadataRepository
    from metagraph.services.anchor_resolver import AnchorResolver
    from metagraph.services.element_store import ElementStore
    from metagraph.services.type_registry import TypeRegistry

logger = logging.getLogger(__name__)

TEMPLATE_CLASSIFICATION = "Template"
TEMPLATE_SUBSTITUTE_CLASSIFICATION = "TemplateSubstitute"
SOURCED_FROM_RELATIONSHIP = "SourcedFrom"

# Classifications that mark an element as a template and are not copied
TEMPLATE_MARKERS = {TEMPLATE_CLASSIFICATION, TEMPLATE_SUBSTITUTE_CLASSIFICATION}


class TemplateCloner:
    """Copies template sub-graphs into new elements."""

    def __init__(
        self,
        repository: MetadataRepository,
        types: TypeRegistry,
        elements: ElementStore,
        anchors: AnchorResolver,
        security: AccessPolicy | None = None,
    ):
        self.repository = repository
        self.types = types
        self.elements = elements
        self.anchors = anchors
        self.security = security or AllowAllPolicy()

    # ==================== Reading the template ====================

    async def resolve_template(self, template_guid: str) -> Element:
        """Return the template element, following a substitute to its source."""
        template = await self.repository.get_element(template_guid)
        if template is None:
            raise InvalidParameterError(
                f"Template {template_guid} does not exist",
                guid=template_guid,
                parameter_name="template_guid",
            )
        if not template.has_classification(TEMPLATE_SUBSTITUTE_CLASSIFICATION):
            return template

        page = await self.repository.get_relationships(
            template_guid,
            SOURCED_FROM_RELATIONSHIP,
            HopDirection.FROM_END1,
            page_size=1,
        )
        if not page.items:
            return template
        source = await self.repository.get_element(page.items[0].end2_guid)
        if source is None:
            logger.warning(
                f"Template substitute {template_guid} points at missing source "
                f"{page.items[0].end2_guid}"
            )
            return template
        logger.debug(f"Template substitute {template_guid} resolved to {source.guid}")
        return source

    async def _all_relationships(self, guid: str) -> list[Relationship]:
        relationships: list[Relationship] = []
        start_from = 0
        while True:
            page = await self.repository.get_relationships(
                guid, start_from=start_from, page_size=self.repository.max_page_size
            )
            relationships.extend(page.items)
            if not page.has_more or not page.items:
                return relationships
            start_from += len(page.items)

    async def _read_subgraph(
        self, template: Element, deep_copy: bool
    ) -> tuple[list[Element], list[Relationship], set[str]]:
        """Read the template's members and every relationship touching them.

        Also returns the GUIDs of everything anchored to the template, copied
        or not.
        """
        owned_guids = await self.anchors.anchored_subgraph(template.guid)
        member_guids = owned_guids if deep_copy else [template.guid]

        members = [template]
        for guid in member_guids[1:]:
            element = await self.repository.get_element(guid, include_deleted=True)
            if element is None:
                raise PropertyServerError(
                    f"Template member {guid} was removed while the template was read",
                    guid=template.guid,
                )
            if element.status != ElementStatus.DELETED:
                members.append(element)

        seen: set[str] = set()
        relationships: list[Relationship] = []
        for member in members:
            for relationship in await self._all_relationships(member.guid):
                if relationship.guid not in seen:
                    seen.add(relationship.guid)
                    relationships.append(relationship)

        # Any change to a member after it was read makes the copy inconsistent
        for member in members:
            current = await self.repository.get_element(member.guid)
            if current is None or current.version != member.version:
                raise PropertyServerError(
                    f"Template member {member.guid} changed while the template was read",
                    guid=template.guid,
                )
        return members, relationships, set(owned_guids)

    # ==================== Cloning ====================

    async def clone(
        self,
        user_id: str,
        template_guid: str,
        replacement_properties: dict[str, Any] | None = None,
        placeholders: dict[str, str] | None = None,
        parent: AnchorSpec | None = None,
        allow_unresolved: bool = False,
        deep_copy: bool = True,
        type_name: str | None = None,
    ) -> CloneResult:
        """Copy a template and return the GUIDs of the new elements.

        Placeholders of the form ``{{name}}`` are substituted in every string
        property of the copied elements, classifications and relationships.
        Replacement properties are then applied to the new root only. The new
        root is attached to ``parent`` the same way ``create`` attaches a new
        element. Nothing is written unless the whole copy is valid.
        """
        placeholders = placeholders or {}
        template = await self.resolve_template(template_guid)
        if type_name and not self.types.is_type_of(template.type_name, type_name):
            raise InvalidParameterError(
                f"Template {template.guid} is a {template.type_name}, not a {type_name}",
                guid=template.guid,
                parameter_name="template_guid",
            )
        self.security.check(user_id, Operation.CREATE, template.type_name)

        members, relationships, owned = await self._read_subgraph(template, deep_copy)
        guid_map = {member.guid: generate_guid() for member in members}
        root_guid = guid_map[template.guid]
        now = utc_now()

        # Root properties: substitution first, then the caller's replacements verbatim
        root_properties = merge_properties(
            substitute_placeholders(template.properties, placeholders, allow_unresolved),
            replacement_properties,
            merge=True,
        )
        root_properties = self.elements.validate_element_properties(
            template.type_name, root_properties
        )
        root_qualified_name = root_properties.get("qualifiedName") or root_guid

        root_anchor_guid, parent_relationship = await self.elements.resolve_anchor(
            parent, template.type_name, root_guid, user_id, now
        )

        name_counts: dict[str, int] = {}
        new_elements: list[Element] = []
        for member in members:
            is_root = member.guid == template.guid
            if is_root:
                properties = root_properties
                anchor_guid = root_anchor_guid
            else:
                properties = self._nested_properties(
                    member, placeholders, allow_unresolved, root_qualified_name, name_counts
                )
                anchor_guid = guid_map.get(member.anchor_guid, root_guid)

            classifications = [
                c.model_copy(
                    update={
                        "properties": substitute_placeholders(
                            c.properties, placeholders, allow_unresolved
                        ),
                        "version": 1,
                        "created_by": user_id,
                        "created_at": now,
                        "updated_by": user_id,
                        "updated_at": now,
                    }
                )
                for c in member.classifications
                if c.name not in TEMPLATE_MARKERS
            ]
            for classification in classifications:
                self.types.validate_properties(
                    self.types.classification_properties(classification.name),
                    classification.properties,
                    classification.name,
                )

            new_elements.append(
                Element(
                    guid=guid_map[member.guid],
                    type_name=member.type_name,
                    properties=properties,
                    classifications=classifications,
                    anchor_guid=anchor_guid,
                    status=member.status,
                    effective_from=member.effective_from,
                    effective_to=member.effective_to,
                    created_by=user_id,
                    created_at=now,
                    updated_by=user_id,
                    updated_at=now,
                )
            )

        unique_keys = await self._check_unique(new_elements)

        new_relationships: list[Relationship] = []
        linked_external: list[str] = []
        for relationship in relationships:
            if self._skip_relationship(relationship, template):
                continue
            end1_guid = guid_map.get(relationship.end1_guid, relationship.end1_guid)
            end2_guid = guid_map.get(relationship.end2_guid, relationship.end2_guid)
            # A shallow copy does not link to the template's own anchored elements
            if (end1_guid in owned and end1_guid not in guid_map) or (
                end2_guid in owned and end2_guid not in guid_map
            ):
                continue
            for original_end, new_end in (
                (relationship.end1_guid, end1_guid),
                (relationship.end2_guid, end2_guid),
            ):
                if original_end == new_end and new_end not in linked_external:
                    linked_external.append(new_end)

            properties = substitute_placeholders(
                relationship.properties, placeholders, allow_unresolved
            )
            new_relationships.append(
                Relationship(
                    guid=generate_guid(),
                    type_name=relationship.type_name,
                    end1_guid=end1_guid,
                    end2_guid=end2_guid,
                    properties=self.types.validate_properties(
                        self.types.relationship_properties(relationship.type_name),
                        properties,
                        relationship.type_name,
                    ),
                    effective_from=relationship.effective_from,
                    effective_to=relationship.effective_to,
                    created_by=user_id,
                    created_at=now,
                    updated_by=user_id,
                    updated_at=now,
                )
            )

        if parent_relationship is not None:
            new_relationships.append(parent_relationship)

        sourced_from = self._sourced_from(template, root_guid, user_id, now)
        if sourced_from is not None:
            new_relationships.append(sourced_from)

        await self.repository.insert_graph(new_elements, new_relationships, unique_keys)
        logger.info(
            f"Cloned template {template.guid} into {root_guid} "
            f"({len(new_elements)} elements, {len(new_relationships)} relationships)"
        )
        return CloneResult(
            root_guid=root_guid,
            template_guid=template.guid,
            guid_map=guid_map,
            relationship_guids=[r.guid for r in new_relationships],
            linked_external_guids=linked_external,
        )

    def _nested_properties(
        self,
        member: Element,
        placeholders: dict[str, str],
        allow_unresolved: bool,
        root_qualified_name: str,
        name_counts: dict[str, int],
    ) -> dict[str, Any]:
        """Substitute a nested member's properties and derive fresh unique values.

        A unique property that substitution left unchanged would collide with
        the template, so it becomes ``<root qualifiedName>::<TypeName>`` with
        ``_1``, ``_2``... appended for repeats.
        """
        properties = substitute_placeholders(member.properties, placeholders, allow_unresolved)
        for prop in self.types.entity_properties(member.type_name).values():
            if not prop.unique:
                continue
            if properties.get(prop.name) != member.properties.get(prop.name):
                continue
            base = f"{root_qualified_name}::{member.type_name}"
            count = name_counts.get(base, 0)
            name_counts[base] = count + 1
            properties[prop.name] = f"{base}_{count}" if count else base
        return self.elements.validate_element_properties(member.type_name, properties)

    async def _check_unique(self, new_elements: list[Element]) -> list[UniqueKey]:
        """Check unique values against the repository and within the copy.

        Returns every key checked so the insert can repeat the check under
        the repository's write lock.
        """
        unique_keys: list[UniqueKey] = []
        claimed: dict[tuple[str, str, Any], str] = {}
        for element in new_elements:
            unique_keys.extend(
                await self.elements.check_unique(element.type_name, element.properties)
            )
            for prop in self.types.entity_properties(element.type_name).values():
                value = element.properties.get(prop.name)
                if not prop.unique or value is None:
                    continue
                key = (
                    self.types.declaring_type(element.type_name, prop.name),
                    prop.name,
                    str(value),
                )
                if key in claimed:
                    raise InvalidParameterError(
                        f"Cloned elements {claimed[key]} and {element.guid} would share "
                        f"{prop.name} {value!r}",
                        parameter_name=prop.name,
                    )
                claimed[key] = element.guid
        return unique_keys

    def _skip_relationship(self, relationship: Relationship, template: Element) -> bool:
        if not relationship.touches({template.guid}):
            return False
        other = relationship.other_end(template.guid)
        # The template root's link to its own anchor belongs to the template
        if not template.is_own_anchor and other == template.anchor_guid:
            return True
        # Lineage links on the template, in either direction, are not copied
        return relationship.type_name == SOURCED_FROM_RELATIONSHIP

    def _sourced_from(
        self, template: Element, root_guid: str, user_id: str, now: datetime
    ) -> Relationship | None:
        if not self.types.has_relationship_type(SOURCED_FROM_RELATIONSHIP):
            return None
        if not self.types.relationship_ends_valid(
            SOURCED_FROM_RELATIONSHIP, template.type_name, template.type_name
        ):
            return None
        properties = {}
        if "sourceVersionNumber" in self.types.relationship_properties(SOURCED_FROM_RELATIONSHIP):
            properties["sourceVersionNumber"] = template.version
        return Relationship(
            guid=generate_guid(),
            type_name=SOURCED_FROM_RELATIONSHIP,
            end1_guid=root_guid,
            end2_guid=template.guid,
            properties=properties,
            created_by=user_id,
            created_at=now,
            updated_by=user_id,
            updated_at=now,
        )
