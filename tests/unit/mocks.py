"""Pure Python in-memory database for unit testing."""

import copy
import re
from typing import Any

from housecup.core.db_client import DatabaseError, RecordNotFoundError


_COMPARISON = re.compile(r"""^(\w+)\s*(!=|>=|<=|=|>|<|~)\s*(['"])([^'"]*)\3$""")


class InMemoryDBClient:
    """Pure Python in-memory database for unit testing.

    Mirrors the async interface of ``housecup.core.db_client`` without
    touching SQLite. Supports the same filter syntax: comparisons with
    =, !=, <, >, <=, >= and ~, joined by && with parenthesized || groups.
    """

    def __init__(self):
        """Initialize empty in-memory database."""
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._id_counter = 1000

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def records(self, collection: str) -> list[dict[str, Any]]:
        """All stored documents of a collection, for assertions."""
        return [copy.deepcopy(r) for r in self._collections.get(collection, {}).values()]

    async def create_record(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create a new record, keeping the document's id when it has one.

        Raises:
            DatabaseError: If data is not a dictionary
        """
        if not isinstance(data, dict):
            raise DatabaseError(f"Data must be a dictionary, got {type(data)}")

        record = dict(data)
        if not record.get("id"):
            record["id"] = str(self._id_counter)
            self._id_counter += 1

        self._collection(collection)[record["id"]] = copy.deepcopy(record)
        return copy.deepcopy(record)

    async def upsert_record(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace a document by id."""
        if not data.get("id"):
            raise ValueError("Upserted documents must carry an id")
        self._collection(collection)[data["id"]] = copy.deepcopy(data)
        return copy.deepcopy(data)

    async def get_record(self, collection: str, record_id: str) -> dict[str, Any]:
        """Get a record by ID.

        Raises:
            RecordNotFoundError: If record not found
        """
        if not isinstance(record_id, str):
            raise DatabaseError(f"Record ID must be a string, got {type(record_id)}")

        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")
        return copy.deepcopy(records[record_id])

    async def update_record(self, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Merge data into an existing record.

        Raises:
            RecordNotFoundError: If record not found
        """
        if not isinstance(data, dict):
            raise DatabaseError(f"Data must be a dictionary, got {type(data)}")

        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

        records[record_id].update(copy.deepcopy(data))
        return copy.deepcopy(records[record_id])

    async def delete_record(self, collection: str, record_id: str) -> None:
        """Delete a record.

        Raises:
            RecordNotFoundError: If record not found
        """
        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")
        del records[record_id]

    async def delete_records(self, collection: str, filter_query: str) -> int:
        """Delete every record matching the filter."""
        records = self._collection(collection)
        matching = [rid for rid, r in records.items() if self._parse_filter(filter_query, r)]
        for rid in matching:
            del records[rid]
        return len(matching)

    async def replace_collection(self, collection: str, filter_query: str, records: list[dict[str, Any]]) -> None:
        """Replace the records matching a filter with a new snapshot."""
        await self.delete_records(collection, filter_query)
        stored = self._collection(collection)
        for record in records:
            stored[record["id"]] = copy.deepcopy(record)

    async def list_records(
        self,
        collection: str,
        page: int = 1,
        per_page: int = 500,
        filter_query: str = "",
        sort: str = "",
    ) -> list[dict[str, Any]]:
        """List records with optional filtering, sorting and pagination.

        Raises:
            DatabaseError: For invalid filter syntax
        """
        records = list(self._collections.get(collection, {}).values())

        if filter_query:
            records = [r for r in records if self._parse_filter(filter_query, r)]

        if sort:
            records = self._apply_sort(records, sort)

        start_idx = (page - 1) * per_page
        return [copy.deepcopy(r) for r in records[start_idx : start_idx + per_page]]

    async def get_first_record(self, collection: str, filter_query: str) -> dict[str, Any] | None:
        """Get the first matching record or None."""
        records = await self.list_records(collection, filter_query=filter_query, per_page=1)
        return records[0] if records else None

    def _split_and(self, filter_str: str) -> list[str]:
        parts = []
        current = ""
        depth = 0
        for char in filter_str:
            depth += {"(": 1, ")": -1}.get(char, 0)
            current += char
            if depth == 0 and current.endswith("&&"):
                parts.append(current[:-2].strip())
                current = ""
        if current.strip():
            parts.append(current.strip())
        return parts

    def _parse_filter(self, filter_str: str, record: dict[str, Any]) -> bool:
        """Evaluate a filter expression against a record.

        Raises:
            DatabaseError: For invalid filter syntax
        """
        if not filter_str:
            return True

        for part in self._split_and(filter_str):
            if part.startswith("(") and part.endswith(")"):
                options = [p.strip() for p in part[1:-1].split("||")]
                if not any(self._compare(option, record) for option in options):
                    return False
            elif not self._compare(part, record):
                return False
        return True

    def _compare(self, condition: str, record: dict[str, Any]) -> bool:
        match = _COMPARISON.match(condition)
        if not match:
            raise DatabaseError(f"Invalid filter syntax: {condition}")

        field, op, _, value = match.groups()
        actual = record.get(field)

        if value.lower() in ("true", "false"):
            expected = value.lower() == "true"
            return (actual == expected) if op == "=" else (actual != expected)

        if op == "~":
            return value.lower() in str(actual or "").lower()
        if op == "=":
            return str(actual) == value if actual is not None else False
        if op == "!=":
            return actual is None or str(actual) != value
        if actual is None:
            return False

        actual_str = str(actual)
        return {
            "<": actual_str < value,
            ">": actual_str > value,
            "<=": actual_str <= value,
            ">=": actual_str >= value,
        }[op]

    def _apply_sort(self, records: list[dict], sort: str) -> list[dict]:
        """Sort records by field (prefix with - for descending)."""
        reverse = sort.startswith("-")
        field = sort[1:] if reverse else sort
        return sorted(records, key=lambda r: str(r.get(field) or ""), reverse=reverse)
