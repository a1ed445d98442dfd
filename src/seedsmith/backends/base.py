"""Persister contract and helpers shared by backends."""

from collections.abc import Collection, Iterator, Sequence
from typing import Any, Protocol, runtime_checkable

from seedsmith.models import InsertResult

DEFAULT_BATCH_SIZE = 500


@runtime_checkable
class Persister(Protocol):
    """Destination store for generated rows."""

    async def check_connection(self) -> None:
        """
        Verify the store is reachable.

        Raises:
            ConnectionUnavailableError: If it is not
        """
        ...

    async def persist(
        self,
        table_name: str,
        rows: list[dict[str, Any]],
        batch_size: int = DEFAULT_BATCH_SIZE,
        id_field: str | None = None,
        json_fields: Collection[str] = (),
    ) -> InsertResult:
        """
        Insert a table's rows in batches inside one transaction.

        Values of json_fields are stored as JSON documents, lists included.

        Rows conflicting with unique constraints are skipped and counted as
        failed. Any other error rolls the whole table back and raises
        PersistenceError.
        """
        ...


def chunk_rows(
    rows: Sequence[dict[str, Any]], batch_size: int
) -> Iterator[Sequence[dict[str, Any]]]:
    """Yield consecutive batches of at most batch_size rows."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    for i in range(0, len(rows), batch_size):
        yield rows[i : i + batch_size]


def insert_columns(rows: Sequence[dict[str, Any]]) -> list[str]:
    """Union of row keys in first-seen order."""
    columns: dict[str, None] = {}
    for row in rows:
        for key in row:
            columns.setdefault(key, None)
    return list(columns)


def harvest_ids(rows: Sequence[dict[str, Any]], id_field: str | None = None) -> list[Any]:
    """
    Identifiers of returned rows.

    Uses id_field when given, else an "id" column; returns [] when neither
    is present so callers keep the identifiers they generated.
    """
    if not rows:
        return []
    for candidate in (id_field, "id"):
        if candidate and candidate in rows[0]:
            return [row[candidate] for row in rows]
    return []


def conflict_message(failed: int) -> str:
    return f"{failed} rows skipped due to conflicts (likely duplicates)"
