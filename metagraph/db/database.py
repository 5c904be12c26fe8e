"""SQLite database connection and schema initialization."""

from pathlib import Path

import aiosqlite

IN_MEMORY = ":memory:"


async def connect_database(db_path: str) -> aiosqlite.Connection:
    """Open a database connection and create the schema."""
    # Ensure the data directory exists
    if db_path != IN_MEMORY:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(db_path)
    db.row_factory = aiosqlite.Row

    # Enable foreign keys
    await db.execute("PRAGMA foreign_keys = ON")

    await _create_schema(db)
    return db


async def _create_schema(db: aiosqlite.Connection) -> None:
    """Create database tables and indexes."""
    # Elements table. anchor_guid references the owning element; an element
    # cannot be removed while anything is still anchored to it.
    await db.execute("""
        CREATE TABLE IF NOT EXISTS elements (
            guid TEXT PRIMARY KEY,
            type_name TEXT NOT NULL,
            properties_json TEXT NOT NULL DEFAULT '{}',
            anchor_guid TEXT,
            status TEXT NOT NULL DEFAULT 'active',
            effective_from TEXT,
            effective_to TEXT,
            version INTEGER NOT NULL DEFAULT 1,
            created_by TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_by TEXT,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (anchor_guid) REFERENCES elements(guid)
        )
    """)

    # Classifications table
    await db.execute("""
        CREATE TABLE IF NOT EXISTS classifications (
            element_guid TEXT NOT NULL,
            name TEXT NOT NULL,
            properties_json TEXT NOT NULL DEFAULT '{}',
            version INTEGER NOT NULL DEFAULT 1,
            created_by TEXT,
            created_at TEXT,
            updated_by TEXT,
            updated_at TEXT,
            PRIMARY KEY (element_guid, name),
            FOREIGN KEY (element_guid) REFERENCES elements(guid) ON DELETE CASCADE
        )
    """)

    # Relationships table. No cascade: incident relationships must be
    # removed explicitly before either endpoint.
    await db.execute("""
        CREATE TABLE IF NOT EXISTS relationships (
            guid TEXT PRIMARY KEY,
            type_name TEXT NOT NULL,
            end1_guid TEXT NOT NULL,
            end2_guid TEXT NOT NULL,
            properties_json TEXT NOT NULL DEFAULT '{}',
            status TEXT NOT NULL DEFAULT 'active',
            effective_from TEXT,
            effective_to TEXT,
            version INTEGER NOT NULL DEFAULT 1,
            created_by TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_by TEXT,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (end1_guid) REFERENCES elements(guid),
            FOREIGN KEY (end2_guid) REFERENCES elements(guid)
        )
    """)

    # Elements indexes
    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_elements_type_status
        ON elements(type_name, status, created_at)
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_elements_anchor
        ON elements(anchor_guid)
    """)

    # Relationships indexes - for end1 lookups
    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_relationships_end1
        ON relationships(end1_guid, type_name)
    """)

    # Relationships indexes - for end2 lookups (reverse direction)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_relationships_end2
        ON relationships(end2_guid, type_name)
    """)

    await db.commit()
