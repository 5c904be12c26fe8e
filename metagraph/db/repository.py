"""MetadataRepository - storage client for elements, classifications and relationships.

Every public method is one atomic call at the repository boundary. Multi-step
behaviour (cascading deletes, cloning, paged traversal) lives in the services
that call this client.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

import aiosqlite

from metagraph.config import DEFAULT_MAX_PAGE_SIZE
from metagraph.db.database import connect_database
from metagraph.errors import InvalidParameterError, PropertyServerError
from metagraph.models.element import Classification, Element, ElementStatus
from metagraph.models.options import HopDirection, SequencingOrder
from metagraph.models.relationship import Relationship
from metagraph.services.properties import sort_elements

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLite limits the number of bound parameters per statement
_IN_CHUNK = 500

ELEMENT_COLUMNS = (
    "guid, type_name, properties_json, anchor_guid, status, effective_from, "
    "effective_to, version, created_by, created_at, updated_by, updated_at"
)

RELATIONSHIP_COLUMNS = (
    "guid, type_name, end1_guid, end2_guid, properties_json, status, effective_from, "
    "effective_to, version, created_by, created_at, updated_by, updated_at"
)

_ORDER_SQL = {
    SequencingOrder.GUID: "guid",
    SequencingOrder.CREATION_DATE_RECENT: "created_at DESC, guid",
    SequencingOrder.CREATION_DATE_OLDEST: "created_at, guid",
    SequencingOrder.LAST_UPDATE_RECENT: "updated_at DESC, guid",
    SequencingOrder.LAST_UPDATE_OLDEST: "updated_at, guid",
}


def generate_guid() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get the current time in UTC."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_text(value: datetime | None) -> str | None:
    # Fixed width so stored timestamps compare correctly as text
    if value is None:
        return None
    return _as_utc(value).isoformat(timespec="microseconds")


def _from_text(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _chunks(items: Sequence[str], size: int = _IN_CHUNK) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


@dataclass
class Page(Generic[T]):
    """One page of results and whether the repository holds more."""

    items: list[T] = field(default_factory=list)
    has_more: bool = False


@dataclass(frozen=True)
class UniqueKey:
    """A unique property value that no other live element in scope may hold."""

    type_names: frozenset[str]
    property_name: str
    value: Any
    exclude_guid: str | None = None


def _row_to_classification(row: aiosqlite.Row) -> Classification:
    return Classification(
        name=row["name"],
        properties=json.loads(row["properties_json"]),
        version=row["version"],
        created_by=row["created_by"],
        created_at=_from_text(row["created_at"]),
        updated_by=row["updated_by"],
        updated_at=_from_text(row["updated_at"]),
    )


def _row_to_element(row: aiosqlite.Row, classifications: list[Classification]) -> Element:
    return Element(
        guid=row["guid"],
        type_name=row["type_name"],
        properties=json.loads(row["properties_json"]),
        classifications=classifications,
        anchor_guid=row["anchor_guid"],
        status=ElementStatus(row["status"]),
        effective_from=_from_text(row["effective_from"]),
        effective_to=_from_text(row["effective_to"]),
        version=row["version"],
        created_by=row["created_by"],
        created_at=_from_text(row["created_at"]),
        updated_by=row["updated_by"],
        updated_at=_from_text(row["updated_at"]),
    )


def _row_to_relationship(row: aiosqlite.Row) -> Relationship:
    return Relationship(
        guid=row["guid"],
        type_name=row["type_name"],
        end1_guid=row["end1_guid"],
        end2_guid=row["end2_guid"],
        properties=json.loads(row["properties_json"]),
        status=ElementStatus(row["status"]),
        effective_from=_from_text(row["effective_from"]),
        effective_to=_from_text(row["effective_to"]),
        version=row["version"],
        created_by=row["created_by"],
        created_at=_from_text(row["created_at"]),
        updated_by=row["updated_by"],
        updated_at=_from_text(row["updated_at"]),
    )


def _visibility_sql(
    include_deleted: bool,
    effective_time: datetime | None,
    statuses: Sequence[ElementStatus] | None = None,
) -> tuple[list[str], list[Any]]:
    """Build WHERE clauses for status and effectivity filtering."""
    clauses: list[str] = []
    params: list[Any] = []
    if statuses:
        placeholders = ",".join("?" * len(statuses))
        clauses.append(f"status IN ({placeholders})")
        params.extend(s.value for s in statuses)
    elif not include_deleted:
        clauses.append("status != ?")
        params.append(ElementStatus.DELETED.value)
    if effective_time is not None:
        when = _to_text(effective_time)
        clauses.append("(effective_from IS NULL OR effective_from <= ?)")
        clauses.append("(effective_to IS NULL OR effective_to > ?)")
        params.extend([when, when])
    return clauses, params


class MetadataRepository:
    """Storage client for the metadata graph."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
    ) -> None:
        if max_page_size <= 0:
            raise ValueError("max_page_size must be positive")
        self._db = db
        self._max_page_size = max_page_size
        # Serialises write transactions on the shared connection
        self._write_lock = asyncio.Lock()

    @classmethod
    async def open(
        cls, db_path: str, max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    ) -> MetadataRepository:
        """Open a repository on the given database file."""
        try:
            db = await connect_database(db_path)
        except aiosqlite.Error as e:
            raise PropertyServerError(f"Could not open repository at {db_path}: {e}") from e
        logger.info(f"Opened metadata repository at {db_path} (max page size {max_page_size})")
        return cls(db, max_page_size)

    async def close(self) -> None:
        """Close the database connection."""
        await self._db.close()

    async def __aenter__(self) -> MetadataRepository:
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> None:
        await self.close()

    @property
    def max_page_size(self) -> int:
        return self._max_page_size

    def resolve_page_size(self, page_size: int) -> int:
        """Map a requested page size onto the server limit (0 means the maximum)."""
        if page_size < 0:
            raise InvalidParameterError(
                f"Page size {page_size} is negative", parameter_name="page_size"
            )
        if page_size == 0:
            return self._max_page_size
        if page_size > self._max_page_size:
            raise InvalidParameterError(
                f"Page size {page_size} exceeds the maximum of {self._max_page_size}",
                parameter_name="page_size",
            )
        return page_size

    # ==================== Low-level access ====================

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run a write transaction, rolling back on any failure."""
        async with self._write_lock:
            try:
                yield self._db
                await self._db.commit()
            except aiosqlite.Error as e:
                await self._db.rollback()
                raise PropertyServerError(f"Repository write failed: {e}") from e
            except BaseException:
                await self._db.rollback()
                raise

    async def _require_unique(self, db: aiosqlite.Connection, keys: Sequence[UniqueKey]) -> None:
        """Raise if another live element already holds one of the unique values.

        Called inside a write transaction so the check and the write see the
        same committed state.
        """
        for key in keys:
            type_names = sorted(key.type_names)
            placeholders = ",".join("?" * len(type_names))
            cursor = await db.execute(
                f"""
                SELECT guid, type_name, properties_json FROM elements
                WHERE type_name IN ({placeholders}) AND status != ?
                ORDER BY created_at, guid
                """,
                type_names + [ElementStatus.DELETED.value],
            )
            async for row in cursor:
                if row["guid"] == key.exclude_guid:
                    continue
                if json.loads(row["properties_json"]).get(key.property_name) == key.value:
                    raise InvalidParameterError(
                        f"{key.property_name} {key.value!r} is already used by "
                        f"{row['type_name']} {row['guid']}",
                        guid=row["guid"],
                        parameter_name=key.property_name,
                    )

    async def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[aiosqlite.Row]:
        try:
            cursor = await self._db.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise PropertyServerError(f"Repository read failed: {e}") from e

    async def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> aiosqlite.Row | None:
        try:
            cursor = await self._db.execute(sql, params)
            return await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PropertyServerError(f"Repository read failed: {e}") from e

    async def _load_classifications(self, guids: Sequence[str]) -> dict[str, list[Classification]]:
        result: dict[str, list[Classification]] = {}
        for chunk in _chunks(list(guids)):
            placeholders = ",".join("?" * len(chunk))
            rows = await self._fetchall(
                f"""
                SELECT element_guid, name, properties_json, version, created_by, created_at,
                       updated_by, updated_at
                FROM classifications WHERE element_guid IN ({placeholders})
                ORDER BY created_at, name
                """,
                list(chunk),
            )
            for row in rows:
                result.setdefault(row["element_guid"], []).append(_row_to_classification(row))
        return result

    async def _rows_to_elements(self, rows: Sequence[aiosqlite.Row]) -> list[Element]:
        classifications = await self._load_classifications([row["guid"] for row in rows])
        return [_row_to_element(row, classifications.get(row["guid"], [])) for row in rows]

    # ==================== Elements ====================

    async def get_element(
        self,
        guid: str,
        include_deleted: bool = False,
        effective_time: datetime | None = None,
    ) -> Element | None:
        """Get an element by GUID, or None when it is not visible."""
        clauses, params = _visibility_sql(include_deleted, effective_time)
        where_sql = " AND ".join(["guid = ?"] + clauses)
        row = await self._fetchone(
            f"SELECT {ELEMENT_COLUMNS} FROM elements WHERE {where_sql}",
            [guid] + params,
        )
        if row is None:
            return None
        elements = await self._rows_to_elements([row])
        return elements[0]

    async def find_elements(
        self,
        type_names: Iterable[str] | None = None,
        predicate: Callable[[Element], bool] | None = None,
        start_from: int = 0,
        page_size: int = 0,
        statuses: Sequence[ElementStatus] | None = None,
        include_deleted: bool = False,
        effective_time: datetime | None = None,
        order: SequencingOrder = SequencingOrder.ANY,
        sequencing_property: str | None = None,
    ) -> Page[Element]:
        """Return one page of elements matching the filters.

        The predicate is evaluated on elements without their classifications;
        paging applies to the elements that pass it.
        """
        limit = self.resolve_page_size(page_size)
        clauses, params = _visibility_sql(include_deleted, effective_time, statuses)
        if type_names is not None:
            names = sorted(set(type_names))
            if not names:
                return Page()
            clauses.append(f"type_name IN ({','.join('?' * len(names))})")
            params.extend(names)

        where_sql = " AND ".join(clauses) if clauses else "1 = 1"
        order_sql = _ORDER_SQL.get(order, "created_at, guid")
        sort_in_memory = order in (
            SequencingOrder.PROPERTY_ASCENDING,
            SequencingOrder.PROPERTY_DESCENDING,
        )

        matches: list[aiosqlite.Row] = []
        matched_elements: list[Element] = []
        wanted = start_from + limit + 1
        try:
            async with self._db.execute(
                f"SELECT {ELEMENT_COLUMNS} FROM elements WHERE {where_sql} ORDER BY {order_sql}",
                params,
            ) as cursor:
                async for row in cursor:
                    if predicate is not None or sort_in_memory:
                        element = _row_to_element(row, [])
                        if predicate is not None and not predicate(element):
                            continue
                        matched_elements.append(element)
                    matches.append(row)
                    if not sort_in_memory and len(matches) >= wanted:
                        break
        except aiosqlite.Error as e:
            raise PropertyServerError(f"Repository read failed: {e}") from e

        if sort_in_memory:
            ordered = sort_elements(matched_elements, order, sequencing_property)
            by_guid = {row["guid"]: row for row in matches}
            matches = [by_guid[e.guid] for e in ordered]

        page_rows = matches[start_from : start_from + limit]
        has_more = len(matches) > start_from + limit
        return Page(items=await self._rows_to_elements(page_rows), has_more=has_more)

    async def get_anchored_guids(self, anchor_guid: str) -> list[str]:
        """Return the GUIDs of elements directly anchored to an element."""
        rows = await self._fetchall(
            """
            SELECT guid FROM elements
            WHERE anchor_guid = ? AND guid != ?
            ORDER BY created_at, guid
            """,
            (anchor_guid, anchor_guid),
        )
        return [row["guid"] for row in rows]

    async def insert_graph(
        self,
        elements: Sequence[Element],
        relationships: Sequence[Relationship] = (),
        unique_keys: Sequence[UniqueKey] = (),
    ) -> None:
        """Insert elements (with classifications) and relationships atomically.

        Elements must be ordered so that anchors precede the elements
        anchored to them. ``unique_keys`` are checked under the write lock
        before anything is written.
        """
        async with self._transaction() as db:
            await self._require_unique(db, unique_keys)
            for element in elements:
                await db.execute(
                    f"""
                    INSERT INTO elements ({ELEMENT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        element.guid,
                        element.type_name,
                        json.dumps(element.properties),
                        element.anchor_guid,
                        element.status.value,
                        _to_text(element.effective_from),
                        _to_text(element.effective_to),
                        element.version,
                        element.created_by,
                        _to_text(element.created_at),
                        element.updated_by,
                        _to_text(element.updated_at),
                    ),
                )
                for classification in element.classifications:
                    await self._write_classification(db, element.guid, classification)

            for relationship in relationships:
                await db.execute(
                    f"""
                    INSERT INTO relationships ({RELATIONSHIP_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        relationship.guid,
                        relationship.type_name,
                        relationship.end1_guid,
                        relationship.end2_guid,
                        json.dumps(relationship.properties),
                        relationship.status.value,
                        _to_text(relationship.effective_from),
                        _to_text(relationship.effective_to),
                        relationship.version,
                        relationship.created_by,
                        _to_text(relationship.created_at),
                        relationship.updated_by,
                        _to_text(relationship.updated_at),
                    ),
                )

    async def update_element(
        self,
        element: Element,
        expected_version: int,
        unique_keys: Sequence[UniqueKey] = (),
    ) -> bool:
        """Write an element's header and properties if its version is unchanged."""
        async with self._transaction() as db:
            await self._require_unique(db, unique_keys)
            cursor = await db.execute(
                """
                UPDATE elements
                SET properties_json = ?, status = ?, effective_from = ?, effective_to = ?,
                    version = ?, updated_by = ?, updated_at = ?
                WHERE guid = ? AND version = ?
                """,
                (
                    json.dumps(element.properties),
                    element.status.value,
                    _to_text(element.effective_from),
                    _to_text(element.effective_to),
                    element.version,
                    element.updated_by,
                    _to_text(element.updated_at),
                    element.guid,
                    expected_version,
                ),
            )
            return cursor.rowcount > 0

    async def set_element_status(
        self, guids: Sequence[str], status: ElementStatus, user_id: str
    ) -> int:
        """Set the status of several elements, returning how many changed."""
        changed = 0
        now = _to_text(utc_now())
        async with self._transaction() as db:
            for chunk in _chunks(list(guids)):
                placeholders = ",".join("?" * len(chunk))
                cursor = await db.execute(
                    f"""
                    UPDATE elements
                    SET status = ?, version = version + 1, updated_by = ?, updated_at = ?
                    WHERE guid IN ({placeholders}) AND status != ?
                    """,
                    [status.value, user_id, now] + list(chunk) + [status.value],
                )
                changed += cursor.rowcount
        return changed

    async def delete_element(self, guid: str) -> bool:
        """Remove an element row. Fails if relationships or anchored elements remain."""
        async with self._transaction() as db:
            cursor = await db.execute("DELETE FROM elements WHERE guid = ?", (guid,))
            return cursor.rowcount > 0

    # ==================== Classifications ====================

    async def _write_classification(
        self, db: aiosqlite.Connection, element_guid: str, classification: Classification
    ) -> None:
        await db.execute(
            """
            INSERT OR REPLACE INTO classifications
                (element_guid, name, properties_json, version, created_by, created_at,
                 updated_by, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                element_guid,
                classification.name,
                json.dumps(classification.properties),
                classification.version,
                classification.created_by,
                _to_text(classification.created_at),
                classification.updated_by,
                _to_text(classification.updated_at),
            ),
        )

    async def save_classification(self, element_guid: str, classification: Classification) -> None:
        """Add or replace a classification on an element."""
        async with self._transaction() as db:
            await self._write_classification(db, element_guid, classification)

    async def delete_classification(self, element_guid: str, name: str) -> bool:
        async with self._transaction() as db:
            cursor = await db.execute(
                "DELETE FROM classifications WHERE element_guid = ? AND name = ?",
                (element_guid, name),
            )
            return cursor.rowcount > 0

    # ==================== Relationships ====================

    async def get_relationship(
        self,
        guid: str,
        include_deleted: bool = False,
        effective_time: datetime | None = None,
    ) -> Relationship | None:
        clauses, params = _visibility_sql(include_deleted, effective_time)
        where_sql = " AND ".join(["guid = ?"] + clauses)
        row = await self._fetchone(
            f"SELECT {RELATIONSHIP_COLUMNS} FROM relationships WHERE {where_sql}",
            [guid] + params,
        )
        return _row_to_relationship(row) if row else None

    async def get_relationships(
        self,
        element_guid: str,
        type_name: str | None = None,
        direction: HopDirection = HopDirection.ANY,
        start_from: int = 0,
        page_size: int = 0,
        include_deleted: bool = False,
        effective_time: datetime | None = None,
    ) -> Page[Relationship]:
        """Return one page of the relationships attached to an element."""
        limit = self.resolve_page_size(page_size)
        clauses, params = _visibility_sql(include_deleted, effective_time)
        if direction == HopDirection.FROM_END1:
            clauses.insert(0, "end1_guid = ?")
            params.insert(0, element_guid)
        elif direction == HopDirection.FROM_END2:
            clauses.insert(0, "end2_guid = ?")
            params.insert(0, element_guid)
        else:
            clauses.insert(0, "(end1_guid = ? OR end2_guid = ?)")
            params[0:0] = [element_guid, element_guid]
        if type_name:
            clauses.append("type_name = ?")
            params.append(type_name)

        where_sql = " AND ".join(clauses)
        rows = await self._fetchall(
            f"""
            SELECT {RELATIONSHIP_COLUMNS} FROM relationships
            WHERE {where_sql}
            ORDER BY created_at, guid
            LIMIT ? OFFSET ?
            """,
            params + [limit + 1, start_from],
        )
        return Page(
            items=[_row_to_relationship(row) for row in rows[:limit]],
            has_more=len(rows) > limit,
        )

    async def find_relationships(
        self,
        type_name: str | None,
        end1_guid: str,
        end2_guid: str,
        include_deleted: bool = False,
        effective_time: datetime | None = None,
    ) -> list[Relationship]:
        """Return relationships from end1 to end2 (exact direction)."""
        clauses, params = _visibility_sql(include_deleted, effective_time)
        clauses[0:0] = ["end1_guid = ?", "end2_guid = ?"]
        params[0:0] = [end1_guid, end2_guid]
        if type_name:
            clauses.append("type_name = ?")
            params.append(type_name)
        rows = await self._fetchall(
            f"""
            SELECT {RELATIONSHIP_COLUMNS} FROM relationships
            WHERE {' AND '.join(clauses)}
            ORDER BY created_at, guid
            """,
            params,
        )
        return [_row_to_relationship(row) for row in rows]

    async def update_relationship(self, relationship: Relationship, expected_version: int) -> bool:
        async with self._transaction() as db:
            cursor = await db.execute(
                """
                UPDATE relationships
                SET properties_json = ?, status = ?, effective_from = ?, effective_to = ?,
                    version = ?, updated_by = ?, updated_at = ?
                WHERE guid = ? AND version = ?
                """,
                (
                    json.dumps(relationship.properties),
                    relationship.status.value,
                    _to_text(relationship.effective_from),
                    _to_text(relationship.effective_to),
                    relationship.version,
                    relationship.updated_by,
                    _to_text(relationship.updated_at),
                    relationship.guid,
                    expected_version,
                ),
            )
            return cursor.rowcount > 0

    async def delete_relationship(self, guid: str) -> bool:
        async with self._transaction() as db:
            cursor = await db.execute("DELETE FROM relationships WHERE guid = ?", (guid,))
            return cursor.rowcount > 0

    async def delete_relationships_touching(self, guids: Sequence[str]) -> int:
        """Remove every relationship with either end in ``guids``."""
        deleted = 0
        async with self._transaction() as db:
            for chunk in _chunks(list(guids)):
                placeholders = ",".join("?" * len(chunk))
                cursor = await db.execute(
                    f"""
                    DELETE FROM relationships
                    WHERE end1_guid IN ({placeholders}) OR end2_guid IN ({placeholders})
                    """,
                    list(chunk) + list(chunk),
                )
                deleted += cursor.rowcount
        return deleted

    async def soft_delete_relationships_touching(self, guids: Sequence[str], user_id: str) -> int:
        """Mark every relationship with either end in ``guids`` as deleted."""
        changed = 0
        now = _to_text(utc_now())
        async with self._transaction() as db:
            for chunk in _chunks(list(guids)):
                placeholders = ",".join("?" * len(chunk))
                cursor = await db.execute(
                    f"""
                    UPDATE relationships
                    SET status = ?, version = version + 1, updated_by = ?, updated_at = ?
                    WHERE (end1_guid IN ({placeholders}) OR end2_guid IN ({placeholders}))
                      AND status != ?
                    """,
                    [ElementStatus.DELETED.value, user_id, now]
                    + list(chunk)
                    + list(chunk)
                    + [ElementStatus.DELETED.value],
                )
                changed += cursor.rowcount
        return changed

    async def count_relationships_touching(
        self, guids: Sequence[str], include_deleted: bool = True
    ) -> int:
        """Count relationships with either end in ``guids``."""
        total = 0
        for chunk in _chunks(list(guids)):
            placeholders = ",".join("?" * len(chunk))
            status_sql = "" if include_deleted else "AND status != 'deleted'"
            row = await self._fetchone(
                f"""
                SELECT COUNT(*) as count FROM relationships
                WHERE (end1_guid IN ({placeholders}) OR end2_guid IN ({placeholders}))
                {status_sql}
                """,
                list(chunk) + list(chunk),
            )
            total += row["count"] if row else 0
        return total
