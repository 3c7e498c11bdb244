"""SQLite database client wrapper with CRUD operations."""

import asyncio
import json
import logging
import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from timeblock.core.config import settings


logger = logging.getLogger(__name__)


class DatabaseError(RuntimeError):
    """A database operation failed."""


class RecordNotFoundError(DatabaseError, KeyError):
    """The requested record does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


def _validate_identifier(name: str, *, kind: str = "collection") -> None:
    """Validate that a collection or field name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", name):
        msg = f"Invalid {kind} name: {name}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _quote(name: str) -> str:
    """Quote a validated column name (``order`` is an SQL keyword)."""
    _validate_identifier(name, kind="field")
    return f'"{name}"'


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _convert_record_ids(record: dict[str, Any]) -> dict[str, Any]:
    """Convert the integer primary key to a string so ids stay opaque to callers."""
    converted = record.copy()
    if isinstance(converted.get("id"), int):
        converted["id"] = str(converted["id"])
    return converted


def _to_sql_value(val: Any) -> Any:
    """Convert a Python value to its SQLite storage form."""
    if isinstance(val, datetime):
        return val.isoformat()
    if isinstance(val, dict | list):
        return json.dumps(val)
    if isinstance(val, bool):
        return 1 if val else 0
    return val


def _parse_record_id(record_id: str) -> int:
    """Parse an opaque record id into the integer primary key."""
    try:
        return int(record_id)
    except (TypeError, ValueError) as e:
        msg = f"Record not found: {record_id}"
        raise RecordNotFoundError(msg) from e


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str) -> str | int | bool | None:
    """Parse a string value to the appropriate Python type for SQLite."""
    if value.isdigit():
        return int(value)
    if value.lower() == "true":
        return 1
    if value.lower() == "false":
        return 0
    return value


def _parse_single_comparison(comparison: str) -> tuple[str, str | int | None]:
    """Parse a single ``field = "value"`` comparison into a SQL condition and parameter."""
    match = re.match(r"""(\w+)\s*=\s*(['"])([^'"]*)\2$""", comparison)
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    return f"{_quote(match.group(1))} = ?", _parse_value(match.group(3))


def parse_filter(filter_query: str) -> tuple[str, list[str | int | None]]:
    """Parse ``field = "value" && other = "value"`` syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    conditions = []
    params = []
    for raw_part in filter_query.split("&&"):
        cond, value = _parse_single_comparison(raw_part.strip())
        conditions.append(cond)
        params.append(value)

    return " AND ".join(conditions), params


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_lock = asyncio.Lock()


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_running_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    # Create new connection with async lock to prevent races
    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop_id = id(asyncio.get_running_loop())
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    async with _db_lock:
        conn = _db_connections.pop(cache_key, None)
        if conn is None:
            return
        try:
            await conn.close()
            logger.info("Closed SQLite connection", extra={"db_path": str(path)})
        except Exception as e:
            logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": str(path)})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from timeblock.core import schema

    await schema.init_db(db_path=db_path)


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id."""
    if not isinstance(data, dict):
        raise DatabaseError(f"Data must be a dictionary, got {type(data)}")

    try:
        _validate_identifier(collection)
        conn = await get_connection()

        columns_str = ", ".join(_quote(key) for key in data)
        placeholders_str = ", ".join("?" for _ in data)
        values = [_to_sql_value(val) for val in data.values()]

        query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - names are validated
        cursor = await conn.execute(query, values)
        await conn.commit()

        record_id = cursor.lastrowid
        result = await get_record(collection=collection, record_id=str(record_id))

        logger.info("Created record", extra={"collection": collection, "record_id": record_id})
        return result
    except Exception as e:
        if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
            logger.error("Table not found", extra={"collection": collection})
            msg = f"Table '{collection}' does not exist. Call init_db() first."
            raise DatabaseError(msg) from e
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to create record in {collection}: {e}"
        raise DatabaseError(msg) from e


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    try:
        _validate_identifier(collection)
        conn = await get_connection()

        query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (_parse_record_id(record_id),))
        row = await cursor.fetchone()

        if row is None:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        columns = [description[0] for description in cursor.description]
        record = dict(zip(columns, row, strict=True))

        logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
        return _convert_record_ids(record)
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to get record from {collection}: {e}"
        raise DatabaseError(msg) from e


def _build_update(collection: str, record_id: str, data: dict[str, Any]) -> tuple[str, list[Any]]:
    """Build an UPDATE statement for one record."""
    set_clause = ", ".join(f"{_quote(key)} = ?" for key in data)
    values = [_to_sql_value(val) for val in data.values()]
    values.append(_parse_record_id(record_id))
    return f"UPDATE {collection} SET {set_clause} WHERE id = ?", values  # noqa: S608 - names are validated


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    if not isinstance(data, dict):
        raise DatabaseError(f"Data must be a dictionary, got {type(data)}")
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        _validate_identifier(collection)
        conn = await get_connection()

        query, values = _build_update(collection, record_id, data)
        cursor = await conn.execute(query, values)
        await conn.commit()

        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
        return await get_record(collection=collection, record_id=record_id)
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to update record in {collection}: {e}"
        raise DatabaseError(msg) from e


async def batch_update_records(*, collection: str, updates: list[tuple[str, dict[str, Any]]]) -> None:
    """Apply several record updates in a single transaction.

    Either every update is committed or none is; a missing record aborts the batch.
    """
    if not updates:
        return

    try:
        _validate_identifier(collection)
        conn = await get_connection()

        try:
            for record_id, data in updates:
                if not data:
                    continue
                query, values = _build_update(collection, record_id, data)
                cursor = await conn.execute(query, values)
                if cursor.rowcount == 0:
                    msg = f"Record not found in {collection}: {record_id}"
                    raise RecordNotFoundError(msg)
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise

        logger.info("Batch updated records", extra={"collection": collection, "count": len(updates)})
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("batch_update_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to batch update records in {collection}: {e}"
        raise DatabaseError(msg) from e


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    try:
        _validate_identifier(collection)
        conn = await get_connection()

        query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (_parse_record_id(record_id),))
        await conn.commit()

        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to delete record from {collection}: {e}"
        raise DatabaseError(msg) from e


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
) -> list[dict[str, Any]]:
    """List records in id order with optional filtering and pagination."""
    try:
        _validate_identifier(collection)
        conn = await get_connection()

        where_clause = ""
        params: list[Any] = []
        if filter_query:
            where_clause, params = parse_filter(filter_query)
            where_clause = f"WHERE {where_clause}"

        offset = (page - 1) * per_page

        query = f"SELECT * FROM {collection} {where_clause} ORDER BY id ASC LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
        params.extend([per_page, offset])

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        columns = [description[0] for description in cursor.description]
        records = [_convert_record_ids(dict(zip(columns, row, strict=True))) for row in rows]

        logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
        return records
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to list records from {collection}: {e}"
        raise DatabaseError(msg) from e
