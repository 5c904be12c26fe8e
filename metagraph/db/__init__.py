"""Database module."""

from metagraph.db.database import IN_MEMORY, connect_database
from metagraph.db.repository import MetadataRepository, Page, generate_guid, utc_now

__all__ = [
    "IN_MEMORY",
    "connect_database",
    "MetadataRepository",
    "Page",
    "generate_guid",
    "utc_now",
]
