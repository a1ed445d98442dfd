"""Memory backend - in-memory persister for testing without a database."""

import logging
from collections.abc import Collection, Iterable
from typing import Any

from seedsmith.backends.base import (
    DEFAULT_BATCH_SIZE,
    chunk_rows,
    conflict_message,
    harvest_ids,
)
from seedsmith.exceptions import PersistenceError
from seedsmith.models import InsertResult, TableDefinition

logger = logging.getLogger(__name__)


class MemoryPersister:
    """
    In-memory persister for testing seed runs without a database.

    Simulates database behavior:
    - Assigns sequential IDs (starting from 1) to a missing single integer id
    - Skips rows violating primary key or UNIQUE constraints (ON CONFLICT DO NOTHING)
    - Rejects unknown columns and rolls the whole table back

    Tables without a definition accept any row.
    """

    def __init__(self, tables: Iterable[TableDefinition] = ()):
        """
        Initialize memory backend with empty state.

        Args:
            tables: Table definitions used for id and constraint simulation
        """
        self.tables = {table.name: table for table in tables}
        self._data: dict[str, list[dict[str, Any]]] = {}
        self._id_sequences: dict[str, int] = {}

    async def check_connection(self) -> None:
        return None

    async def persist(
        self,
        table_name: str,
        rows: list[dict[str, Any]],
        batch_size: int = DEFAULT_BATCH_SIZE,
        id_field: str | None = None,
        json_fields: Collection[str] = (),
    ) -> InsertResult:
        """
        Store rows in memory, batch by batch, as one transaction.

        Args:
            table_name: Destination table
            rows: Rows to store
            batch_size: Rows per simulated INSERT
            id_field: Column whose values are the table's identifiers
            json_fields: Accepted for interface parity; values are stored as given

        Returns:
            InsertResult with inserted/failed counts and ids of stored rows

        Raises:
            PersistenceError: If a row has a column the table does not define
        """
        result = InsertResult(table_name=table_name)
        if not rows:
            return result

        table = self.tables.get(table_name)
        stored = self._data.setdefault(table_name, [])
        snapshot = (len(stored), self._id_sequences.get(table_name, 1))

        try:
            for batch in chunk_rows(rows, batch_size):
                inserted = []
                for row in batch:
                    complete_row = self._complete_row(table, row)
                    if self._conflicts(table, complete_row, stored):
                        continue
                    stored.append(complete_row)
                    inserted.append(complete_row)

                failed = len(batch) - len(inserted)
                batch_result = InsertResult(
                    table_name=table_name,
                    inserted=len(inserted),
                    failed=failed,
                    ids=harvest_ids(inserted, id_field),
                )
                if failed:
                    batch_result.errors.append(conflict_message(failed))
                result.merge(batch_result)
        except PersistenceError:
            # Roll back everything stored for this call
            del stored[snapshot[0] :]
            self._id_sequences[table_name] = snapshot[1]
            raise

        logger.debug(f"{table_name}: stored {result.inserted}, skipped {result.failed}")
        return result

    def _complete_row(self, table: TableDefinition | None, row: dict[str, Any]) -> dict[str, Any]:
        complete_row = row.copy()
        if table is None:
            return complete_row

        unknown = [key for key in complete_row if table.get_field(key) is None]
        if unknown:
            raise PersistenceError(
                table.name, f"column(s) {', '.join(unknown)} do not exist"
            )

        # Generate missing integer id (like database IDENTITY)
        id_fields = table.id_fields
        if len(id_fields) == 1 and complete_row.get(id_fields[0].name) is None:
            sequence = self._id_sequences.get(table.name, 1)
            complete_row[id_fields[0].name] = sequence
            self._id_sequences[table.name] = sequence + 1
        return complete_row

    def _unique_groups(self, table: TableDefinition) -> list[tuple[str, ...]]:
        groups: list[tuple[str, ...]] = []
        primary_key = table.primary_key or tuple(f.name for f in table.id_fields)
        if primary_key:
            groups.append(tuple(primary_key))
        groups.extend((f.name,) for f in table.fields if f.is_unique and not f.is_id)
        groups.extend(table.unique_constraints)
        return groups

    def _conflicts(
        self, table: TableDefinition | None, row: dict[str, Any], stored: list[dict[str, Any]]
    ) -> bool:
        if table is None:
            return False
        for group in self._unique_groups(table):
            key = tuple(row.get(name) for name in group)
            # NULLs never conflict
            if any(value is None for value in key):
                continue
            for existing in stored:
                if tuple(existing.get(name) for name in group) == key:
                    return True
        return False

    def get_data(self, table_name: str) -> list[dict[str, Any]]:
        """
        Get in-memory data for inspection.

        Args:
            table_name: Table name

        Returns:
            List of row dicts for the table
        """
        return self._data.get(table_name, [])

    def clear(self) -> None:
        """Clear all in-memory data and sequences."""
        self._data.clear()
        self._id_sequences.clear()
