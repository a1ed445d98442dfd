"""PostgreSQL schema introspection with caching."""

import logging

from psycopg import AsyncConnection

from seedsmith.exceptions import SchemaNotFoundError, UnknownTableError
from seedsmith.models import (
    EnumDefinition,
    FieldDefinition,
    FieldType,
    ParsedSchema,
    RelationInfo,
    RelationKind,
    TableDefinition,
)

logger = logging.getLogger(__name__)

# information_schema.columns.data_type -> FieldType
DATA_TYPES: dict[str, FieldType] = {
    "text": FieldType.TEXT,
    "character varying": FieldType.TEXT,
    "character": FieldType.TEXT,
    "citext": FieldType.TEXT,
    "smallint": FieldType.INTEGER,
    "integer": FieldType.INTEGER,
    "bigint": FieldType.BIG_INTEGER,
    "real": FieldType.FLOAT,
    "double precision": FieldType.FLOAT,
    "numeric": FieldType.DECIMAL,
    "money": FieldType.DECIMAL,
    "boolean": FieldType.BOOLEAN,
    "timestamp without time zone": FieldType.TIMESTAMP,
    "timestamp with time zone": FieldType.TIMESTAMP,
    "date": FieldType.DATE,
    "time without time zone": FieldType.TIME,
    "time with time zone": FieldType.TIME,
    "json": FieldType.JSON,
    "jsonb": FieldType.JSON,
    "bytea": FieldType.BINARY,
    "uuid": FieldType.UUID,
}

# pg_type names of array elements (udt_name without the leading underscore)
UDT_TYPES: dict[str, FieldType] = {
    "text": FieldType.TEXT,
    "varchar": FieldType.TEXT,
    "bpchar": FieldType.TEXT,
    "int2": FieldType.INTEGER,
    "int4": FieldType.INTEGER,
    "int8": FieldType.BIG_INTEGER,
    "float4": FieldType.FLOAT,
    "float8": FieldType.FLOAT,
    "numeric": FieldType.DECIMAL,
    "bool": FieldType.BOOLEAN,
    "timestamp": FieldType.TIMESTAMP,
    "timestamptz": FieldType.TIMESTAMP,
    "date": FieldType.DATE,
    "time": FieldType.TIME,
    "json": FieldType.JSON,
    "jsonb": FieldType.JSON,
    "bytea": FieldType.BINARY,
    "uuid": FieldType.UUID,
}


def map_column_type(
    data_type: str, udt_name: str, enum_names: set[str]
) -> tuple[FieldType, bool, str | None]:
    """
    Map a PostgreSQL column type to a FieldType.

    Args:
        data_type: information_schema data_type
        udt_name: Underlying pg_type name
        enum_names: Enum types defined in the schema

    Returns:
        (field type, is_array, enum name)
    """
    is_array = data_type == "ARRAY"
    if is_array:
        udt_name = udt_name.lstrip("_")

    if udt_name in enum_names:
        return FieldType.ENUM, is_array, udt_name
    if is_array:
        return UDT_TYPES.get(udt_name, FieldType.TEXT), True, None
    if data_type in DATA_TYPES:
        return DATA_TYPES[data_type], False, None
    return UDT_TYPES.get(udt_name, FieldType.TEXT), False, None


class SchemaIntrospector:
    """Introspect a PostgreSQL schema into table definitions (cached)."""

    def __init__(self, conn: AsyncConnection, schema: str = "public"):
        self.conn = conn
        self.schema = schema
        self._table_cache: dict[str, TableDefinition] = {}
        self._enum_cache: list[EnumDefinition] | None = None
        self._validated = False

    async def _validate_schema(self) -> None:
        """Validate that schema exists in database."""
        if self._validated:
            return
        async with self.conn.cursor() as cur:
            await cur.execute(
                "SELECT EXISTS(SELECT 1 FROM information_schema.schemata WHERE schema_name = %s)",
                (self.schema,),
            )
            row = await cur.fetchone()
        if not row or not row[0]:
            raise SchemaNotFoundError(self.schema)
        self._validated = True

    async def get_table_names(self) -> list[str]:
        await self._validate_schema()
        async with self.conn.cursor() as cur:
            await cur.execute(
                """
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = %s
                  AND table_type = 'BASE TABLE'
                ORDER BY table_name
                """,
                (self.schema,),
            )
            rows = await cur.fetchall()
        return [row[0] for row in rows]

    async def get_enums(self) -> list[EnumDefinition]:
        """Get enum types defined in the schema (cached)."""
        if self._enum_cache is not None:
            return self._enum_cache

        async with self.conn.cursor() as cur:
            await cur.execute(
                """
                SELECT t.typname, e.enumlabel
                FROM pg_type t
                JOIN pg_enum e ON e.enumtypid = t.oid
                JOIN pg_namespace n ON n.oid = t.typnamespace
                WHERE n.nspname = %s
                ORDER BY t.typname, e.enumsortorder
                """,
                (self.schema,),
            )
            rows = await cur.fetchall()

        values: dict[str, list[str]] = {}
        for name, label in rows:
            values.setdefault(name, []).append(label)
        self._enum_cache = [EnumDefinition(name, tuple(labels)) for name, labels in values.items()]
        return self._enum_cache

    async def get_table(self, table_name: str) -> TableDefinition:
        """
        Get complete table definition (cached).

        Raises:
            UnknownTableError: If the table is not in the schema
        """
        if table_name in self._table_cache:
            return self._table_cache[table_name]

        names = await self.get_table_names()
        if table_name not in names:
            raise UnknownTableError(table_name, names)

        enum_names = {e.name for e in await self.get_enums()}
        columns = await self._get_columns(table_name)
        primary_key = await self._get_constraint_columns(table_name, "PRIMARY KEY")
        unique_groups = await self._get_constraint_columns(table_name, "UNIQUE")
        foreign_keys = await self._get_foreign_keys(table_name)

        pk_fields = set(primary_key[0]) if primary_key else set()
        single_unique = {group[0] for group in unique_groups if len(group) == 1}

        fields = []
        for name, data_type, udt_name, is_nullable, default in columns:
            field_type, is_array, enum_name = map_column_type(data_type, udt_name, enum_names)
            relation = None
            if name in foreign_keys:
                related_table, referenced = foreign_keys[name]
                relation = RelationInfo(
                    kind=RelationKind.ONE_TO_ONE if name in single_unique else RelationKind.MANY_TO_ONE,
                    related_table=related_table,
                    foreign_key_field=name,
                    referenced_field=referenced,
                    is_nullable=is_nullable == "YES",
                )
            fields.append(
                FieldDefinition(
                    name=name,
                    type=field_type,
                    is_array=is_array,
                    is_required=is_nullable != "YES",
                    is_unique=name in single_unique,
                    is_id=name in pk_fields,
                    default=default,
                    enum_name=enum_name,
                    relation=relation,
                )
            )

        table = TableDefinition(
            name=table_name,
            fields=fields,
            primary_key=primary_key[0] if primary_key else (),
            unique_constraints=[group for group in unique_groups if len(group) > 1],
        )
        self._table_cache[table_name] = table
        return table

    async def _get_columns(self, table_name: str) -> list[tuple]:
        async with self.conn.cursor() as cur:
            await cur.execute(
                """
                SELECT column_name, data_type, udt_name, is_nullable, column_default
                FROM information_schema.columns
                WHERE table_schema = %s
                  AND table_name = %s
                ORDER BY ordinal_position
                """,
                (self.schema, table_name),
            )
            return await cur.fetchall()

    async def _get_constraint_columns(
        self, table_name: str, constraint_type: str
    ) -> list[tuple[str, ...]]:
        """Column groups of every constraint of the given type, in key order."""
        async with self.conn.cursor() as cur:
            await cur.execute(
                """
                SELECT tc.constraint_name, kcu.column_name
                FROM information_schema.table_constraints tc
                JOIN information_schema.key_column_usage kcu
                  ON tc.constraint_name = kcu.constraint_name
                  AND tc.table_schema = kcu.table_schema
                WHERE tc.constraint_type = %s
                  AND tc.table_schema = %s
                  AND tc.table_name = %s
                ORDER BY tc.constraint_name, kcu.ordinal_position
                """,
                (constraint_type, self.schema, table_name),
            )
            rows = await cur.fetchall()

        groups: dict[str, list[str]] = {}
        for constraint_name, column_name in rows:
            groups.setdefault(constraint_name, []).append(column_name)
        return [tuple(columns) for columns in groups.values()]

    async def _get_foreign_keys(self, table_name: str) -> dict[str, tuple[str, str]]:
        """Foreign key column -> (referenced table, referenced column)."""
        async with self.conn.cursor() as cur:
            await cur.execute(
                """
                SELECT
                    kcu.column_name,
                    ccu.table_name AS foreign_table_name,
                    ccu.column_name AS foreign_column_name
                FROM information_schema.table_constraints AS tc
                JOIN information_schema.key_column_usage AS kcu
                  ON tc.constraint_name = kcu.constraint_name
                  AND tc.table_schema = kcu.table_schema
                JOIN information_schema.constraint_column_usage AS ccu
                  ON ccu.constraint_name = tc.constraint_name
                  AND ccu.table_schema = tc.table_schema
                WHERE tc.constraint_type = 'FOREIGN KEY'
                  AND tc.table_schema = %s
                  AND tc.table_name = %s
                """,
                (self.schema, table_name),
            )
            rows = await cur.fetchall()
        return {row[0]: (row[1], row[2]) for row in rows}

    async def load(self) -> ParsedSchema:
        """Introspect every base table of the schema."""
        tables = [await self.get_table(name) for name in await self.get_table_names()]
        logger.info(f"Introspected {len(tables)} tables from schema '{self.schema}'")
        return ParsedSchema(
            tables=tables,
            enums=list(await self.get_enums()),
            source=f"postgresql:{self.schema}",
        )

    def clear_cache(self) -> None:
        """Clear cached introspection data."""
        self._table_cache.clear()
        self._enum_cache = None
