"""metagraph - anchored metadata graph store."""

from metagraph.config import GraphSettings, configure_logging
from metagraph.errors import (
    ErrorKind,
    InvalidParameterError,
    MetadataGraphError,
    NotAuthorizedError,
    PropertyServerError,
)
from metagraph.graph import MetadataGraph, open_graph

__version__ = "0.1.0"

__all__ = [
    "GraphSettings",
    "configure_logging",
    "ErrorKind",
    "MetadataGraphError",
    "InvalidParameterError",
    "NotAuthorizedError",
    "PropertyServerError",
    "MetadataGraph",
    "open_graph",
]
