"""SQLite schema management (code-first approach)."""

import logging

from housecup.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    "households",
    "challenges",
    "tasks",
    "templates",
    "skip_records",
]

# Indexed document fields per collection, used by the hot filters
_INDEXED_FIELDS: dict[str, list[str]] = {
    "challenges": ["householdId", "startDayKey"],
    "tasks": ["challengeId"],
    "templates": ["householdId"],
    "skip_records": ["householdId"],
}


def _create_table_sql(collection: str) -> str:
    return f"CREATE TABLE IF NOT EXISTS {collection} (id TEXT PRIMARY KEY, data TEXT NOT NULL)"


def _create_index_sql(collection: str, field: str) -> str:
    return (
        f"CREATE INDEX IF NOT EXISTS idx_{collection}_{field} "
        f"ON {collection} (json_extract(data, '$.{field}'))"
    )


async def init_db(*, db_path: str | None = None) -> None:
    """Create every collection table and its indexes if missing."""
    conn = await db_client.get_connection(db_path=db_path)

    for collection in COLLECTIONS:
        await conn.execute(_create_table_sql(collection))
        for field in _INDEXED_FIELDS.get(collection, []):
            await conn.execute(_create_index_sql(collection, field))

    await conn.commit()
    logger.info("Database schema initialized", extra={"collections": COLLECTIONS})
