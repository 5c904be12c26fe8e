"""Built-in type definitions."""

from metagraph.types.catalogue import default_catalogue, default_type_registry

__all__ = ["default_catalogue", "default_type_registry"]
