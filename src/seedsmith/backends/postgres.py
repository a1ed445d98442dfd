"""PostgreSQL backend - batched INSERT ... ON CONFLICT DO NOTHING RETURNING *."""

import json
import logging
from collections.abc import Collection, Sequence
from datetime import date, datetime, time
from typing import Any
from urllib.parse import urlsplit

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from seedsmith.backends.base import (
    DEFAULT_BATCH_SIZE,
    chunk_rows,
    conflict_message,
    harvest_ids,
    insert_columns,
)
from seedsmith.exceptions import ConnectionUnavailableError, PersistenceError
from seedsmith.models import InsertResult

logger = logging.getLogger(__name__)


def normalize_value(value: Any, as_json: bool = False) -> Any:
    """
    Convert a generated value into something psycopg can bind.

    Values of JSON columns (as_json) always become JSONB, whatever their
    Python type: a list would otherwise bind as a PostgreSQL array. Outside
    JSON columns, objects (and lists of objects) become JSONB and date/time
    values ISO-8601 text. Everything else is passed through.
    """
    if value is None:
        return None
    if as_json:
        return Jsonb(value)
    if isinstance(value, dict):
        return Jsonb(value)
    if isinstance(value, list) and any(isinstance(item, dict) for item in value):
        return Jsonb(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


def mask_conninfo(conninfo: str) -> str:
    """Connection string without its password, for messages."""
    parts = urlsplit(conninfo)
    if not parts.scheme or parts.password is None:
        return conninfo
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@")
    return parts._replace(netloc=netloc).geturl()


class PostgresPersister:
    """
    Persist rows into PostgreSQL with psycopg's async API.

    One pooled connection and one transaction per table: every batch of the
    table is inserted on it and the transaction commits after the last
    batch. Rows skipped by ON CONFLICT DO NOTHING count as failed; any
    statement error rolls the table back and raises PersistenceError.
    """

    def __init__(
        self,
        conninfo: str | None = None,
        pool: AsyncConnectionPool | None = None,
        schema: str | None = None,
        max_size: int = 10,
        timeout: float = 5.0,
    ):
        """
        Initialize backend.

        Args:
            conninfo: PostgreSQL connection string (a pool is created on first use)
            pool: Existing AsyncConnectionPool to borrow connections from
            schema: Schema name for qualified table names
            max_size: Maximum pool size when the pool is owned
            timeout: Seconds to wait for a connection

        Raises:
            ValueError: If neither conninfo nor pool is given
        """
        if pool is None and not conninfo:
            raise ValueError("Either conninfo or pool is required")
        self.conninfo = conninfo
        self.schema = schema
        self.max_size = max_size
        self.timeout = timeout
        self._pool = pool
        self._owns_pool = pool is None
        self._opened = False

    @property
    def target(self) -> str:
        return mask_conninfo(self.conninfo) if self.conninfo else "<pool>"

    async def _get_pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            self._pool = AsyncConnectionPool(
                self.conninfo,
                min_size=1,
                max_size=self.max_size,
                timeout=self.timeout,
                open=False,
            )
        if self._owns_pool and not self._opened:
            await self._pool.open(wait=True, timeout=self.timeout)
            self._opened = True
        return self._pool

    async def check_connection(self) -> None:
        """
        Run a trivial query to verify the database is reachable.

        Raises:
            ConnectionUnavailableError: If no connection can be made
        """
        try:
            pool = await self._get_pool()
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")
        except psycopg.Error as e:
            raise ConnectionUnavailableError(self.target, str(e)) from e

    async def persist(
        self,
        table_name: str,
        rows: list[dict[str, Any]],
        batch_size: int = DEFAULT_BATCH_SIZE,
        id_field: str | None = None,
        json_fields: Collection[str] = (),
    ) -> InsertResult:
        """
        Insert rows in batches inside a single transaction.

        Args:
            table_name: Destination table
            rows: Rows to insert
            batch_size: Rows per INSERT statement
            id_field: Column whose returned values are the table's identifiers
            json_fields: Columns of type json/jsonb; their values are bound as JSONB

        Returns:
            InsertResult with inserted/failed counts, conflict messages and ids

        Raises:
            PersistenceError: On any database error (transaction rolled back)
        """
        result = InsertResult(table_name=table_name)
        if not rows:
            return result

        pool = await self._get_pool()
        async with pool.connection() as conn:
            try:
                async with conn.transaction():
                    for batch in chunk_rows(rows, batch_size):
                        result.merge(
                            await self._insert_batch(conn, table_name, batch, id_field, json_fields)
                        )
            except psycopg.Error as e:
                logger.debug(f"Insert into {table_name} failed, rolled back: {e}")
                raise PersistenceError(table_name, str(e)) from e

        logger.debug(f"{table_name}: inserted {result.inserted}, skipped {result.failed}")
        return result

    def build_insert_query(self, table_name: str, columns: Sequence[str], row_count: int) -> sql.Composed:
        """INSERT ... VALUES (...), ... ON CONFLICT DO NOTHING RETURNING * for row_count rows."""
        table = (
            sql.Identifier(self.schema, table_name) if self.schema else sql.Identifier(table_name)
        )
        single_placeholder = sql.SQL("({})").format(
            sql.SQL(", ").join(sql.Placeholder() * len(columns))
        )
        return sql.SQL(
            "INSERT INTO {table} ({columns}) VALUES {values} ON CONFLICT DO NOTHING RETURNING *"
        ).format(
            table=table,
            columns=sql.SQL(", ").join(map(sql.Identifier, columns)),
            values=sql.SQL(", ").join([single_placeholder] * row_count),
        )

    async def _insert_batch(
        self,
        conn: psycopg.AsyncConnection,
        table_name: str,
        batch: Sequence[dict[str, Any]],
        id_field: str | None,
        json_fields: Collection[str] = (),
    ) -> InsertResult:
        columns = insert_columns(batch)
        json_columns = [col in json_fields for col in columns]
        query = self.build_insert_query(table_name, columns, len(batch))

        # Flatten values: [row1_col1, row1_col2, row2_col1, row2_col2, ...]
        values = [
            normalize_value(row.get(col), as_json)
            for row in batch
            for col, as_json in zip(columns, json_columns)
        ]

        async with conn.cursor(row_factory=dict_row) as cur:
            try:
                await cur.execute(query, values)
            except psycopg.Error:
                logger.debug(f"Values: {json.dumps(values[:10], default=str)}...")
                raise
            returned = await cur.fetchall()

        result = InsertResult(
            table_name=table_name,
            inserted=len(returned),
            failed=len(batch) - len(returned),
            ids=harvest_ids(returned, id_field),
        )
        if result.failed > 0:
            result.errors.append(conflict_message(result.failed))
        return result

    async def close(self) -> None:
        """Close the pool if this persister created it."""
        if self._owns_pool and self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._opened = False

    async def __aenter__(self) -> "PostgresPersister":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
