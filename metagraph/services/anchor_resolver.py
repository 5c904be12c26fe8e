"""AnchorResolver - ownership chains, anchored sub-graphs and cascading deletes.

An element's ``anchor_guid`` names its immediate owner. Following anchors
upward reaches the root anchor; following them downward collects every
element whose lifetime depends on the starting element.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from metagraph.errors import InvalidParameterError, PropertyServerError
from metagraph.models.element import Element, ElementStatus
from metagraph.models.options import DeleteOptions
from metagraph.models.results import DeleteResult

if TYPE_CHECKING:
    from metagraph.db.repository import MetadataRepository

logger = logging.getLogger(__name__)


class AnchorResolver:
    """Resolves anchors and deletes anchored sub-graphs."""

    def __init__(self, repository: MetadataRepository):
        self.repository = repository

    async def _require(self, guid: str) -> Element:
        element = await self.repository.get_element(guid, include_deleted=True)
        if element is None:
            raise InvalidParameterError(
                f"Element {guid} does not exist", guid=guid, parameter_name="guid"
            )
        return element

    async def get_anchor(self, guid: str) -> Element | None:
        """Return the immediate anchor of an element, or None if it is its own anchor."""
        element = await self._require(guid)
        if element.is_own_anchor:
            return None
        anchor = await self.repository.get_element(element.anchor_guid, include_deleted=True)
        if anchor is None:
            raise PropertyServerError(
                f"Anchor {element.anchor_guid} of {guid} is missing", guid=guid
            )
        return anchor

    async def get_root_anchor(self, guid: str) -> Element:
        """Walk the anchor chain to the element that anchors itself."""
        element = await self._require(guid)
        visited = {element.guid}
        while not element.is_own_anchor:
            anchor_guid = element.anchor_guid
            if anchor_guid in visited:
                raise PropertyServerError(
                    f"Anchor chain of {guid} contains a cycle at {anchor_guid}", guid=guid
                )
            visited.add(anchor_guid)
            anchor = await self.repository.get_element(anchor_guid, include_deleted=True)
            if anchor is None:
                raise PropertyServerError(
                    f"Anchor {anchor_guid} in the chain of {guid} is missing", guid=guid
                )
            element = anchor
        return element

    async def anchored_subgraph(self, guid: str) -> list[str]:
        """Return the element and everything anchored to it, breadth first.

        Each element appears after its anchor, so the reversed list is safe
        to delete in order.
        """
        ordered = [guid]
        visited = {guid}
        queue = deque([guid])
        while queue:
            current = queue.popleft()
            for child in await self.repository.get_anchored_guids(current):
                if child in visited:
                    raise PropertyServerError(
                        f"Anchored sub-graph of {guid} contains a cycle at {child}", guid=guid
                    )
                visited.add(child)
                ordered.append(child)
                queue.append(child)
        return ordered

    async def delete(
        self,
        user_id: str,
        guid: str,
        options: DeleteOptions | None = None,
    ) -> DeleteResult:
        """Delete an element, everything anchored to it, and every incident relationship.

        Relationships go first, then elements leaves-first, so an interrupted
        delete never leaves a relationship or anchor pointing at a removed
        element. Calling again after a failure finishes the job.
        """
        options = options or DeleteOptions()
        result = DeleteResult(root_guid=guid, soft_delete=options.soft_delete)

        root = await self.repository.get_element(guid, include_deleted=True)
        if root is None or (options.soft_delete and root.status == ElementStatus.DELETED):
            if options.best_effort:
                logger.info(f"Element {guid} already removed")
                result.already_removed = True
                return result
            raise InvalidParameterError(
                f"Element {guid} does not exist", guid=guid, parameter_name="guid"
            )

        try:
            members = await self.anchored_subgraph(guid)
        except PropertyServerError as e:
            e.progress = result
            raise
        result.anchored_guids = members

        if not options.cascaded_delete and len(members) > 1:
            raise InvalidParameterError(
                f"Element {guid} has {len(members) - 1} anchored elements and "
                f"cascaded delete was not requested",
                guid=guid,
                parameter_name="cascaded_delete",
            )

        try:
            if options.soft_delete:
                result.deleted_relationship_count = (
                    await self.repository.soft_delete_relationships_touching(members, user_id)
                )
            else:
                result.deleted_relationship_count = (
                    await self.repository.delete_relationships_touching(members)
                )

            for member in reversed(members):
                if options.soft_delete:
                    await self.repository.set_element_status(
                        [member], ElementStatus.DELETED, user_id
                    )
                else:
                    await self.repository.delete_element(member)
                result.deleted_element_guids.append(member)
        except PropertyServerError as e:
            logger.error(
                f"Delete of {guid} stopped after {len(result.deleted_element_guids)} of "
                f"{len(members)} elements: {e.message}"
            )
            e.guid = e.guid or guid
            e.progress = result
            raise

        logger.info(
            f"{'Soft-deleted' if options.soft_delete else 'Deleted'} {guid} with "
            f"{len(members) - 1} anchored elements and "
            f"{result.deleted_relationship_count} relationships"
        )
        return result
