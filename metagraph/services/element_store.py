"""ElementStore - create, update, classify and read single elements."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from metagraph.db.repository import UniqueKey, generate_guid, utc_now
from metagraph.errors import InvalidParameterError, PropertyServerError
from metagraph.models.element import (
    AnchorSpec,
    Classification,
    ClassificationRequest,
    Element,
    ElementStatus,
)
from metagraph.models.options import DeleteOptions, QueryOptions
from metagraph.models.relationship import Relationship
from metagraph.models.results import DeleteResult
from metagraph.services.properties import merge_properties
from metagraph.services.security import AccessPolicy, AllowAllPolicy, Operation

if TYPE_CHECKING:
    from metagraph.db.repository import MetadataRepository
    from metagraph.services.anchor_resolver import AnchorResolver
    from metagraph.services.type_registry import TypeRegistry

logger = logging.getLogger(__name__)


class ElementStore:
    """Validates and writes elements and their classifications.

    Every write goes through the type registry (known type, declared
    properties, legal classifications, unique values) and the access policy
    before reaching the repository.
    """

    def __init__(
        self,
        repository: MetadataRepository,
        types: TypeRegistry,
        anchors: AnchorResolver,
        security: AccessPolicy | None = None,
    ):
        self.repository = repository
        self.types = types
        self.anchors = anchors
        self.security = security or AllowAllPolicy()

    # ==================== Reads ====================

    async def get_by_guid(self, guid: str, options: QueryOptions | None = None) -> Element | None:
        """Return an element, or None when it is missing or filtered out by the options."""
        options = options or QueryOptions()
        element = await self.repository.get_element(
            guid,
            include_deleted=options.for_lineage,
            effective_time=options.effective_time,
        )
        if element is None:
            return None
        if options.type_name and not self.types.is_type_of(element.type_name, options.type_name):
            return None
        if options.limit_results_by_status and element.status not in options.limit_results_by_status:
            return None
        return element

    async def require_element(
        self,
        guid: str | None,
        type_name: str | None = None,
        parameter_name: str = "guid",
    ) -> Element:
        """Return an element or raise InvalidParameterError."""
        if not guid:
            raise InvalidParameterError("No GUID supplied", parameter_name=parameter_name)
        element = await self.repository.get_element(guid)
        if element is None:
            raise InvalidParameterError(
                f"Element {guid} does not exist", guid=guid, parameter_name=parameter_name
            )
        if type_name and not self.types.is_type_of(element.type_name, type_name):
            raise InvalidParameterError(
                f"Element {guid} is a {element.type_name}, not a {type_name}",
                guid=guid,
                parameter_name=parameter_name,
            )
        return element

    # ==================== Validation helpers ====================

    def validate_element_properties(
        self, type_name: str, properties: dict[str, Any] | None
    ) -> dict[str, Any]:
        return self.types.validate_properties(
            self.types.entity_properties(type_name), properties, type_name
        )

    def build_classifications(
        self,
        type_name: str,
        requests: list[ClassificationRequest] | None,
        user_id: str,
        now: datetime,
    ) -> list[Classification]:
        """Validate classification requests for a new element of the given type."""
        classifications: list[Classification] = []
        seen: set[str] = set()
        for request in requests or []:
            self.types.require_classification_def(request.name)
            if request.name in seen:
                raise InvalidParameterError(
                    f"Classification {request.name} supplied more than once",
                    parameter_name="classifications",
                )
            if not self.types.is_classification_valid(request.name, type_name):
                raise InvalidParameterError(
                    f"Classification {request.name} is not valid for {type_name}",
                    parameter_name="classifications",
                )
            seen.add(request.name)
            classifications.append(
                Classification(
                    name=request.name,
                    properties=self.types.validate_properties(
                        self.types.classification_properties(request.name),
                        request.properties,
                        request.name,
                    ),
                    created_by=user_id,
                    created_at=now,
                    updated_by=user_id,
                    updated_at=now,
                )
            )
        return classifications

    def unique_keys(
        self,
        type_name: str,
        properties: dict[str, Any],
        exclude_guid: str | None = None,
    ) -> list[UniqueKey]:
        """Build the unique property values an element of this type would claim.

        Uniqueness is scoped to the type that declares the property and all
        of its subtypes.
        """
        keys = []
        for prop in self.types.entity_properties(type_name).values():
            if not prop.unique:
                continue
            value = properties.get(prop.name)
            if value is None:
                continue
            scope = self.types.subtypes_of(self.types.declaring_type(type_name, prop.name))
            keys.append(UniqueKey(frozenset(scope), prop.name, value, exclude_guid))
        return keys

    async def check_unique(
        self,
        type_name: str,
        properties: dict[str, Any],
        exclude_guid: str | None = None,
    ) -> list[UniqueKey]:
        """Reject values of unique properties that another element already uses.

        Returns the keys checked. Writers pass them on to the repository,
        which checks them again under its write lock.
        """
        keys = self.unique_keys(type_name, properties, exclude_guid)
        for key in keys:
            page = await self.repository.find_elements(
                key.type_names,
                predicate=lambda e, key=key: (
                    e.guid != key.exclude_guid
                    and e.properties.get(key.property_name) == key.value
                ),
                page_size=1,
            )
            if page.items:
                raise InvalidParameterError(
                    f"{key.property_name} {key.value!r} is already used by "
                    f"{page.items[0].type_name} {page.items[0].guid}",
                    guid=page.items[0].guid,
                    parameter_name=key.property_name,
                )
        return keys

    async def resolve_anchor(
        self,
        anchor: AnchorSpec | None,
        type_name: str,
        guid: str,
        user_id: str,
        now: datetime,
    ) -> tuple[str | None, Relationship | None]:
        """Check an anchor spec for a new element.

        Returns the anchor GUID to store and the parent relationship to write
        alongside the element, if any.
        """
        anchor = anchor or AnchorSpec()
        anchor_guid = anchor.effective_anchor_guid
        if anchor_guid is not None:
            await self.require_element(anchor_guid, parameter_name="anchor_guid")

        if not anchor.parent_relationship_type:
            return anchor_guid, None

        parent = await self.require_element(anchor.parent_guid, parameter_name="parent_guid")
        relationship_type = anchor.parent_relationship_type
        self.types.require_relationship_def(relationship_type)
        if anchor.parent_at_end1:
            end1_guid, end1_type, end2_guid, end2_type = parent.guid, parent.type_name, guid, type_name
        else:
            end1_guid, end1_type, end2_guid, end2_type = guid, type_name, parent.guid, parent.type_name
        if not self.types.relationship_ends_valid(relationship_type, end1_type, end2_type):
            raise InvalidParameterError(
                f"Relationship {relationship_type} cannot link {end1_type} to {end2_type}",
                parameter_name="parent_relationship_type",
            )
        self.security.check(user_id, Operation.LINK, relationship_type, parent.guid)

        relationship = Relationship(
            guid=generate_guid(),
            type_name=relationship_type,
            end1_guid=end1_guid,
            end2_guid=end2_guid,
            properties=self.types.validate_properties(
                self.types.relationship_properties(relationship_type),
                anchor.parent_relationship_properties,
                relationship_type,
            ),
            created_by=user_id,
            created_at=now,
            updated_by=user_id,
            updated_at=now,
        )
        return anchor_guid, relationship

    # ==================== Writes ====================

    async def create(
        self,
        user_id: str,
        type_name: str,
        properties: dict[str, Any] | None = None,
        classifications: list[ClassificationRequest] | None = None,
        anchor: AnchorSpec | None = None,
        status: ElementStatus = ElementStatus.ACTIVE,
        effective_from: datetime | None = None,
        effective_to: datetime | None = None,
    ) -> str:
        """Create an element, returning its GUID."""
        self.types.require_entity_def(type_name)
        if status == ElementStatus.DELETED:
            raise InvalidParameterError(
                "Elements cannot be created as deleted", parameter_name="status"
            )
        self.security.check(user_id, Operation.CREATE, type_name)

        now = utc_now()
        guid = generate_guid()
        validated = self.validate_element_properties(type_name, properties)
        classification_list = self.build_classifications(type_name, classifications, user_id, now)
        unique_keys = await self.check_unique(type_name, validated)
        anchor_guid, parent_relationship = await self.resolve_anchor(
            anchor, type_name, guid, user_id, now
        )

        element = Element(
            guid=guid,
            type_name=type_name,
            properties=validated,
            classifications=classification_list,
            anchor_guid=anchor_guid,
            status=status,
            effective_from=effective_from,
            effective_to=effective_to,
            created_by=user_id,
            created_at=now,
            updated_by=user_id,
            updated_at=now,
        )
        await self.repository.insert_graph(
            [element],
            [parent_relationship] if parent_relationship else [],
            unique_keys=unique_keys,
        )
        logger.info(f"Created {type_name} {guid} (anchor {anchor_guid or 'self'})")
        return guid

    async def _write_update(
        self,
        current: Element,
        updated: Element,
        unique_keys: list[UniqueKey] | None = None,
    ) -> None:
        if not await self.repository.update_element(
            updated, expected_version=current.version, unique_keys=unique_keys or ()
        ):
            raise PropertyServerError(
                f"Element {current.guid} was modified concurrently", guid=current.guid
            )

    async def update(
        self,
        user_id: str,
        guid: str,
        properties: dict[str, Any] | None,
        merge: bool = True,
        type_name: str | None = None,
    ) -> bool:
        """Update an element's properties.

        Returns False without writing when the update changes nothing.
        """
        element = await self.require_element(guid, type_name)
        self.security.check(user_id, Operation.UPDATE, element.type_name, guid)

        new_properties = self.validate_element_properties(
            element.type_name, merge_properties(element.properties, properties, merge)
        )
        if new_properties == element.properties:
            logger.debug(f"No property changes for {element.type_name} {guid}")
            return False

        changed = {
            k: v for k, v in new_properties.items() if element.properties.get(k) != v
        }
        unique_keys = await self.check_unique(element.type_name, changed, exclude_guid=guid)

        await self._write_update(
            element,
            element.model_copy(
                update={
                    "properties": new_properties,
                    "version": element.version + 1,
                    "updated_by": user_id,
                    "updated_at": utc_now(),
                }
            ),
            unique_keys,
        )
        logger.info(f"Updated {element.type_name} {guid} to version {element.version + 1}")
        return True

    async def update_status(
        self,
        user_id: str,
        guid: str,
        status: ElementStatus,
        type_name: str | None = None,
    ) -> bool:
        """Change an element's lifecycle status. Use delete to remove it."""
        if status == ElementStatus.DELETED:
            raise InvalidParameterError(
                "Use delete to remove an element", guid=guid, parameter_name="status"
            )
        element = await self.require_element(guid, type_name)
        self.security.check(user_id, Operation.UPDATE, element.type_name, guid)
        if element.status == status:
            return False

        await self._write_update(
            element,
            element.model_copy(
                update={
                    "status": status,
                    "version": element.version + 1,
                    "updated_by": user_id,
                    "updated_at": utc_now(),
                }
            ),
        )
        logger.info(f"Status of {element.type_name} {guid} set to {status.value}")
        return True

    async def delete(
        self,
        user_id: str,
        guid: str,
        options: DeleteOptions | None = None,
        type_name: str | None = None,
    ) -> DeleteResult:
        """Delete an element and everything anchored to it."""
        element = await self.repository.get_element(guid, include_deleted=True)
        if element is not None:
            if type_name and not self.types.is_type_of(element.type_name, type_name):
                raise InvalidParameterError(
                    f"Element {guid} is a {element.type_name}, not a {type_name}",
                    guid=guid,
                    parameter_name="guid",
                )
            self.security.check(user_id, Operation.DELETE, element.type_name, guid)
        return await self.anchors.delete(user_id, guid, options)

    # ==================== Classifications ====================

    async def _require_classifiable(self, guid: str, name: str) -> Element:
        element = await self.require_element(guid)
        self.types.require_classification_def(name)
        if not self.types.is_classification_valid(name, element.type_name):
            raise InvalidParameterError(
                f"Classification {name} is not valid for {element.type_name}",
                guid=guid,
                parameter_name="classification_name",
            )
        return element

    async def classify(
        self,
        user_id: str,
        guid: str,
        name: str,
        properties: dict[str, Any] | None = None,
    ) -> None:
        """Attach a classification. Fails if the element already carries it."""
        element = await self._require_classifiable(guid, name)
        if element.has_classification(name):
            raise InvalidParameterError(
                f"Element {guid} is already classified as {name}",
                guid=guid,
                parameter_name="classification_name",
            )
        self.security.check(user_id, Operation.CLASSIFY, element.type_name, guid)

        now = utc_now()
        await self.repository.save_classification(
            guid,
            Classification(
                name=name,
                properties=self.types.validate_properties(
                    self.types.classification_properties(name), properties, name
                ),
                created_by=user_id,
                created_at=now,
                updated_by=user_id,
                updated_at=now,
            ),
        )
        logger.info(f"Classified {element.type_name} {guid} as {name}")

    async def declassify(self, user_id: str, guid: str, name: str) -> bool:
        """Remove a classification, returning False when it was not present."""
        element = await self.require_element(guid)
        self.security.check(user_id, Operation.CLASSIFY, element.type_name, guid)
        removed = await self.repository.delete_classification(guid, name)
        if removed:
            logger.info(f"Removed classification {name} from {element.type_name} {guid}")
        return removed

    async def reclassify(
        self,
        user_id: str,
        guid: str,
        name: str,
        properties: dict[str, Any] | None,
        merge: bool = True,
    ) -> bool:
        """Replace or merge the properties of an existing classification."""
        element = await self._require_classifiable(guid, name)
        existing = element.get_classification(name)
        if existing is None:
            raise InvalidParameterError(
                f"Element {guid} is not classified as {name}",
                guid=guid,
                parameter_name="classification_name",
            )
        self.security.check(user_id, Operation.CLASSIFY, element.type_name, guid)

        new_properties = self.types.validate_properties(
            self.types.classification_properties(name),
            merge_properties(existing.properties, properties, merge),
            name,
        )
        if new_properties == existing.properties:
            return False

        await self.repository.save_classification(
            guid,
            existing.model_copy(
                update={
                    "properties": new_properties,
                    "version": existing.version + 1,
                    "updated_by": user_id,
                    "updated_at": utc_now(),
                }
            ),
        )
        return True
