"""Pytest configuration and fixtures."""

import os
import tempfile
from typing import AsyncGenerator

import pytest

from metagraph.db.repository import MetadataRepository
from metagraph.graph import MetadataGraph
from metagraph.services.type_registry import TypeRegistry
from metagraph.types import default_type_registry

SMALL_PAGE_SIZE = 3


@pytest.fixture
def db_path():
    """Create a temporary database file for each test."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name

    yield path

    # Clean up
    if os.path.exists(path):
        os.unlink(path)


@pytest.fixture
async def repository(db_path) -> AsyncGenerator[MetadataRepository, None]:
    """Open a repository on the temporary database."""
    repo = await MetadataRepository.open(db_path)
    yield repo
    await repo.close()


@pytest.fixture
async def small_page_repository(db_path) -> AsyncGenerator[MetadataRepository, None]:
    """Open a repository with a tiny maximum page size."""
    repo = await MetadataRepository.open(db_path, max_page_size=SMALL_PAGE_SIZE)
    yield repo
    await repo.close()


@pytest.fixture
def types() -> TypeRegistry:
    return default_type_registry()


@pytest.fixture
def graph(repository, types) -> MetadataGraph:
    return MetadataGraph(repository, types, user_id="tester")


@pytest.fixture
def small_page_graph(small_page_repository, types) -> MetadataGraph:
    return MetadataGraph(small_page_repository, types, user_id="tester")
