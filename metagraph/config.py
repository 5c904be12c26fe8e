"""Runtime settings and logging setup."""

import logging
import os
import sys

from pydantic import BaseModel, Field

DEFAULT_MAX_PAGE_SIZE = 1000


class GraphSettings(BaseModel):
    """Settings for opening a metadata graph."""

    database_path: str = "./data/metadata.db"
    max_page_size: int = Field(default=DEFAULT_MAX_PAGE_SIZE, gt=0)
    type_definitions_path: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "GraphSettings":
        """Build settings from environment variables."""
        return cls(
            database_path=os.getenv("METAGRAPH_DATABASE_PATH", "./data/metadata.db"),
            max_page_size=int(
                os.getenv("METAGRAPH_MAX_PAGE_SIZE", str(DEFAULT_MAX_PAGE_SIZE))
            ),
            type_definitions_path=os.getenv("METAGRAPH_TYPE_DEFINITIONS") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for a host process."""
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
