"""Typed entity handlers built on the metadata graph."""

from metagraph.handlers.descriptors import STANDARD_DESCRIPTORS, facade_for
from metagraph.handlers.entity_facade import EntityDescriptor, TypedEntityFacade

__all__ = ["EntityDescriptor", "TypedEntityFacade", "STANDARD_DESCRIPTORS", "facade_for"]
