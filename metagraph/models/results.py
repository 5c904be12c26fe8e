"""Results of multi-step graph operations."""

from pydantic import BaseModel, Field

from metagraph.models.element import Element


class DeleteResult(BaseModel):
    """Outcome of a cascading delete.

    When a delete fails part way, this is attached to the raised error as
    ``progress`` so the caller can see which steps completed and retry.
    """

    root_guid: str
    anchored_guids: list[str] = Field(default_factory=list)
    deleted_element_guids: list[str] = Field(default_factory=list)
    deleted_relationship_count: int = 0
    already_removed: bool = False
    soft_delete: bool = False

    @property
    def complete(self) -> bool:
        return self.already_removed or set(self.anchored_guids) <= set(
            self.deleted_element_guids
        )


class CloneResult(BaseModel):
    """Outcome of a template clone."""

    root_guid: str
    template_guid: str
    guid_map: dict[str, str] = Field(default_factory=dict)  # template guid -> new guid
    relationship_guids: list[str] = Field(default_factory=list)
    linked_external_guids: list[str] = Field(default_factory=list)


class TraversalResult(BaseModel):
    """Elements reached by a relationship traversal."""

    elements: list[Element] = Field(default_factory=list)
    pages_fetched: int = 0
    skipped_guids: list[str] = Field(default_factory=list)  # Endpoints that could not be read
