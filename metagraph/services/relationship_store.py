"""RelationshipStore - link, detach and update relationships between elements."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from metagraph.db.repository import generate_guid, utc_now
from metagraph.errors import InvalidParameterError, PropertyServerError
from metagraph.models.options import QueryOptions
from metagraph.models.relationship import Relationship
from metagraph.services.properties import merge_properties
from metagraph.services.security import AccessPolicy, AllowAllPolicy, Operation

if TYPE_CHECKING:
    from metagraph.db.repository import MetadataRepository
    from metagraph.models.element import Element
    from metagraph.services.type_registry import TypeRegistry

logger = logging.getLogger(__name__)


class RelationshipStore:
    """Writes relationships. Endpoint elements are never modified."""

    def __init__(
        self,
        repository: MetadataRepository,
        types: TypeRegistry,
        security: AccessPolicy | None = None,
    ):
        self.repository = repository
        self.types = types
        self.security = security or AllowAllPolicy()

    async def _require_end(self, guid: str | None, parameter_name: str) -> Element:
        if not guid:
            raise InvalidParameterError("No GUID supplied", parameter_name=parameter_name)
        element = await self.repository.get_element(guid)
        if element is None:
            raise InvalidParameterError(
                f"Element {guid} does not exist", guid=guid, parameter_name=parameter_name
            )
        return element

    async def link(
        self,
        user_id: str,
        type_name: str,
        end1_guid: str,
        end2_guid: str,
        properties: dict[str, Any] | None = None,
        effective_from: datetime | None = None,
        effective_to: datetime | None = None,
    ) -> str:
        """Create a relationship between two existing elements, returning its GUID."""
        self.types.require_relationship_def(type_name)
        end1 = await self._require_end(end1_guid, "end1_guid")
        end2 = await self._require_end(end2_guid, "end2_guid")
        if not self.types.relationship_ends_valid(type_name, end1.type_name, end2.type_name):
            raise InvalidParameterError(
                f"Relationship {type_name} cannot link {end1.type_name} to {end2.type_name}",
                parameter_name="type_name",
            )
        self.security.check(user_id, Operation.LINK, type_name, end1_guid)

        now = utc_now()
        relationship = Relationship(
            guid=generate_guid(),
            type_name=type_name,
            end1_guid=end1_guid,
            end2_guid=end2_guid,
            properties=self.types.validate_properties(
                self.types.relationship_properties(type_name), properties, type_name
            ),
            effective_from=effective_from,
            effective_to=effective_to,
            created_by=user_id,
            created_at=now,
            updated_by=user_id,
            updated_at=now,
        )
        await self.repository.insert_graph([], [relationship])
        logger.info(f"Linked {end1_guid} -[{type_name}]-> {end2_guid} as {relationship.guid}")
        return relationship.guid

    async def detach(
        self,
        user_id: str,
        type_name: str,
        end1_guid: str,
        end2_guid: str,
        options: QueryOptions | None = None,
    ) -> int:
        """Remove every relationship of this type from end1 to end2.

        Returns the number removed. Detaching elements that are not linked is
        not an error.
        """
        options = options or QueryOptions()
        self.types.require_relationship_def(type_name)
        self.security.check(user_id, Operation.LINK, type_name, end1_guid)

        relationships = await self.repository.find_relationships(
            type_name, end1_guid, end2_guid, effective_time=options.effective_time
        )
        removed = 0
        for relationship in relationships:
            if await self.repository.delete_relationship(relationship.guid):
                removed += 1
        if removed:
            logger.info(f"Detached {removed} {type_name} from {end1_guid} to {end2_guid}")
        return removed

    async def get_relationships_between(
        self,
        guid: str,
        other_guid: str,
        type_name: str | None = None,
        options: QueryOptions | None = None,
    ) -> list[Relationship]:
        """Return the relationships linking two elements in either direction."""
        options = options or QueryOptions()
        if type_name:
            self.types.require_relationship_def(type_name)
        found = await self.repository.find_relationships(
            type_name,
            guid,
            other_guid,
            include_deleted=options.for_lineage,
            effective_time=options.effective_time,
        )
        if other_guid != guid:
            found += await self.repository.find_relationships(
                type_name,
                other_guid,
                guid,
                include_deleted=options.for_lineage,
                effective_time=options.effective_time,
            )
        return found

    async def get_relationship(
        self, guid: str, options: QueryOptions | None = None
    ) -> Relationship | None:
        options = options or QueryOptions()
        return await self.repository.get_relationship(
            guid,
            include_deleted=options.for_lineage,
            effective_time=options.effective_time,
        )

    async def update(
        self,
        user_id: str,
        relationship_guid: str,
        properties: dict[str, Any] | None,
        merge: bool = True,
    ) -> bool:
        """Update a relationship's properties. Returns False when nothing changed."""
        relationship = await self.repository.get_relationship(relationship_guid)
        if relationship is None:
            raise InvalidParameterError(
                f"Relationship {relationship_guid} does not exist",
                guid=relationship_guid,
                parameter_name="relationship_guid",
            )
        self.security.check(user_id, Operation.LINK, relationship.type_name, relationship_guid)

        new_properties = self.types.validate_properties(
            self.types.relationship_properties(relationship.type_name),
            merge_properties(relationship.properties, properties, merge),
            relationship.type_name,
        )
        if new_properties == relationship.properties:
            return False

        updated = relationship.model_copy(
            update={
                "properties": new_properties,
                "version": relationship.version + 1,
                "updated_by": user_id,
                "updated_at": utc_now(),
            }
        )
        if not await self.repository.update_relationship(updated, relationship.version):
            raise PropertyServerError(
                f"Relationship {relationship_guid} was modified concurrently",
                guid=relationship_guid,
            )
        logger.info(f"Updated {relationship.type_name} {relationship_guid}")
        return True

    async def delete_relationship(self, user_id: str, guid: str) -> bool:
        """Remove one relationship, returning False when it does not exist."""
        relationship = await self.repository.get_relationship(guid, include_deleted=True)
        if relationship is None:
            return False
        self.security.check(user_id, Operation.LINK, relationship.type_name, guid)
        removed = await self.repository.delete_relationship(guid)
        if removed:
            logger.info(f"Deleted {relationship.type_name} {guid}")
        return removed
