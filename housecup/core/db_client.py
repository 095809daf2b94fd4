"""SQLite document store client with CRUD operations.

Every collection is a table of JSON documents keyed by id. Filters use the
``field = "value" && (a = "x" || b = "y")`` syntax and are evaluated against
top-level document fields through ``json_extract``.
"""

import asyncio
import json
import logging
import re
import threading
from pathlib import Path
from typing import Any
from uuid import uuid4

import aiosqlite

from housecup.core.config import Constants, settings
from housecup.core.errors import DatabaseError, RecordNotFoundError


__all__ = [
    "DatabaseError",
    "RecordNotFoundError",
    "close_connection",
    "create_record",
    "delete_record",
    "delete_records",
    "get_connection",
    "get_first_record",
    "get_record",
    "get_write_lock",
    "init_db",
    "list_records",
    "parse_filter",
    "replace_collection",
    "update_record",
    "upsert_record",
]

logger = logging.getLogger(__name__)

_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_SORT_PATTERN = re.compile(r"^(-?)([A-Za-z_][A-Za-z0-9_]*)(?:\s+(ASC|DESC))?$", re.IGNORECASE)


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not _FIELD_PATTERN.match(collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in a filter string."""
    return json.dumps(str(value))[1:-1]


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _json_field(field: str) -> str:
    # field is restricted to \w characters by the filter and sort patterns
    return f"json_extract(data, '$.{field}')"


def _parse_value(value: str, *, is_like: bool = False) -> str | int | float | bool | None:
    """Parse a string value to the appropriate Python type for SQLite."""
    if is_like:
        escaped = value.replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


def _parse_single_comparison(comparison: str) -> tuple[str, str | int | float | None]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.match(
        r"""^(\w+)\s*(!=|>=|<=|=|>|<|~)\s*(['"])([^'"]*)\3$""",
        comparison,
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    raw_value = match.group(4)

    sql_op = _get_sql_operator(op)
    is_like = sql_op == "LIKE"
    value = _parse_value(raw_value, is_like=is_like)

    if is_like:
        return f"{_json_field(field)} LIKE ? ESCAPE '\\'", value
    return f"{_json_field(field)} {sql_op} ?", value


def _parse_or_group(or_group: str) -> tuple[str, list[str | int | float | None]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]
    or_parts = [p.strip() for p in inner.split("||")]
    or_conditions = []
    or_params = []

    for part in or_parts:
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0

    for char in filter_query:
        if char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1

        current += char

        if paren_depth == 0 and current.endswith("&&"):
            parts.append(current[:-2].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def parse_filter(filter_query: str) -> tuple[str, list[str | int | float | None]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    conditions = []
    params = []

    for raw_part in _split_and_conditions(filter_query):
        part = raw_part.strip()

        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def _parse_sort(sort: str) -> str:
    """Translate ``field``, ``-field`` or ``field DESC`` into an ORDER BY clause."""
    if not sort:
        return "rowid ASC"

    match = _SORT_PATTERN.match(sort.strip())
    if not match:
        logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        return "rowid ASC"

    descending = bool(match.group(1)) or (match.group(3) or "").upper() == "DESC"
    return f"{_json_field(match.group(2))} {'DESC' if descending else 'ASC'}, rowid ASC"


def _where(filter_query: str) -> tuple[str, list[str | int | float | None]]:
    where_clause, params = parse_filter(filter_query)
    return (f"WHERE {where_clause}" if where_clause else ""), params


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_write_locks: dict[tuple[int, int, str], asyncio.Lock] = {}
_db_lock = asyncio.Lock()


def _connection_key(db_path: str | None = None) -> tuple[int, int, str]:
    return (threading.get_ident(), id(asyncio.get_running_loop()), str(get_db_path(db_path)))


def get_write_lock(*, db_path: str | None = None) -> asyncio.Lock:
    """Lock serializing writes on the cached connection of the current thread and loop.

    Statements from concurrent tasks share one connection and one transaction,
    so a multi-statement write must hold this lock until it commits.
    """
    return _write_locks.setdefault(_connection_key(db_path), asyncio.Lock())


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_running_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key in _db_connections:
        return _db_connections[cache_key]

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
        _write_locks.pop(cache_key, None)

    if conn is None:
        return

    try:
        await conn.close()
        logger.info("Closed SQLite connection", extra={"db_path": str(path)})
    except aiosqlite.Error as e:
        logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": str(path)})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from housecup.core import schema  # noqa: PLC0415

    await schema.init_db(db_path=db_path)


def _store_error(operation: str, collection: str, error: Exception) -> DatabaseError:
    if isinstance(error, aiosqlite.OperationalError) and "no such table" in str(error):
        return DatabaseError(f"Table '{collection}' does not exist. Call init_db() first.")
    return DatabaseError(f"Failed to {operation} in {collection}: {error}")


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new document and return it.

    A fresh id is assigned when the document does not carry one.
    """
    _validate_collection_name(collection)
    record = {"id": uuid4().hex, **data} if not data.get("id") else dict(data)

    try:
        conn = await get_connection()
        query = f"INSERT INTO {collection} (id, data) VALUES (?, ?)"  # noqa: S608 - collection is validated
        async with get_write_lock():
            await conn.execute(query, (record["id"], json.dumps(record)))
            await conn.commit()
    except Exception as e:
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        raise _store_error("create record", collection, e) from e

    logger.debug("Created record", extra={"collection": collection, "record_id": record["id"]})
    return record


async def upsert_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert or fully replace a document by id."""
    _validate_collection_name(collection)
    if not data.get("id"):
        msg = "Upserted documents must carry an id"
        raise ValueError(msg)

    try:
        conn = await get_connection()
        query = f"INSERT OR REPLACE INTO {collection} (id, data) VALUES (?, ?)"  # noqa: S608 - collection is validated
        async with get_write_lock():
            await conn.execute(query, (data["id"], json.dumps(data)))
            await conn.commit()
    except Exception as e:
        logger.error("upsert_record_failed", extra={"collection": collection, "error": str(e)})
        raise _store_error("upsert record", collection, e) from e

    return dict(data)


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single document by id.

    Raises:
        RecordNotFoundError: If no document has that id
        DatabaseError: For other store failures
    """
    _validate_collection_name(collection)

    try:
        conn = await get_connection()
        query = f"SELECT data FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (record_id,))
        row = await cursor.fetchone()
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _store_error("get record", collection, e) from e

    if row is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    return json.loads(row[0])


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into an existing document and return the result."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    record = await get_record(collection=collection, record_id=record_id)
    record.update(data)
    record["id"] = record_id

    try:
        conn = await get_connection()
        query = f"UPDATE {collection} SET data = ? WHERE id = ?"  # noqa: S608 - collection is validated
        async with get_write_lock():
            await conn.execute(query, (json.dumps(record), record_id))
            await conn.commit()
    except Exception as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _store_error("update record", collection, e) from e

    logger.debug("Updated record", extra={"collection": collection, "record_id": record_id})
    return record


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a document by id, raising RecordNotFoundError if it does not exist."""
    _validate_collection_name(collection)

    try:
        conn = await get_connection()
        query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        async with get_write_lock():
            cursor = await conn.execute(query, (record_id,))
            await conn.commit()
    except Exception as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _store_error("delete record", collection, e) from e

    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.debug("Deleted record", extra={"collection": collection, "record_id": record_id})


async def delete_records(*, collection: str, filter_query: str) -> int:
    """Delete every document matching a (non-empty) filter and return the count."""
    _validate_collection_name(collection)
    if not filter_query:
        msg = "delete_records requires a filter"
        raise ValueError(msg)

    where_clause, params = _where(filter_query)

    try:
        conn = await get_connection()
        query = f"DELETE FROM {collection} {where_clause}"  # noqa: S608 - collection is validated
        async with get_write_lock():
            cursor = await conn.execute(query, params)
            await conn.commit()
    except Exception as e:
        logger.error("delete_records_failed", extra={"collection": collection, "error": str(e)})
        raise _store_error("delete records", collection, e) from e

    return cursor.rowcount


async def replace_collection(*, collection: str, filter_query: str, records: list[dict[str, Any]]) -> None:
    """Replace the documents matching a filter with a new snapshot, atomically.

    Used for last-write-wins persistence of a household's tasks, templates
    and skip records.
    """
    _validate_collection_name(collection)
    if not filter_query:
        msg = "replace_collection requires a filter"
        raise ValueError(msg)

    where_clause, params = _where(filter_query)
    conn = await get_connection()

    # DELETE, INSERT and COMMIT must not interleave with another task's writes
    async with get_write_lock():
        try:
            await conn.execute(f"DELETE FROM {collection} {where_clause}", params)  # noqa: S608 - collection is validated
            await conn.executemany(
                f"INSERT OR REPLACE INTO {collection} (id, data) VALUES (?, ?)",  # noqa: S608 - collection is validated
                [(record["id"], json.dumps(record)) for record in records],
            )
            await conn.commit()
        except Exception as e:
            logger.error("replace_collection_failed", extra={"collection": collection, "error": str(e)})
            try:
                await conn.rollback()
            except aiosqlite.Error:
                logger.warning("Rollback failed", extra={"collection": collection})
            raise _store_error("replace records", collection, e) from e

    logger.debug("Replaced collection snapshot", extra={"collection": collection, "count": len(records)})


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = Constants.DEFAULT_PER_PAGE_LIMIT,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List documents with optional filtering, sorting, and pagination."""
    _validate_collection_name(collection)

    where_clause, params = _where(filter_query)
    order_by = _parse_sort(sort)
    offset = (page - 1) * per_page

    try:
        conn = await get_connection()
        query = f"SELECT data FROM {collection} {where_clause} ORDER BY {order_by} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, [*params, per_page, offset])
        rows = await cursor.fetchall()
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        raise _store_error("list records", collection, e) from e

    return [json.loads(row[0]) for row in rows]


async def get_first_record(*, collection: str, filter_query: str) -> dict[str, Any] | None:
    """Return the first document matching the filter, or None."""
    records = await list_records(collection=collection, per_page=1, filter_query=filter_query)
    return records[0] if records else None
