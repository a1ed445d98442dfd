"""Data models and type definitions."""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any
from uuid import UUID

from seedsmith.exceptions import IdentifierMappingError, UnknownTableError


class FieldType(str, Enum):
    """Scalar type of a field, independent of the source schema language."""

    TEXT = "text"
    INTEGER = "integer"
    BIG_INTEGER = "big_integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME = "time"
    JSON = "json"
    BINARY = "binary"
    UUID = "uuid"
    ENUM = "enum"


class RelationKind(str, Enum):
    """Cardinality of a relation between two tables."""

    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"
    MANY_TO_MANY = "many-to-many"


@dataclass(frozen=True)
class RelationInfo:
    """
    Relation metadata attached to a field.

    Attributes:
        kind: Relation cardinality
        related_table: Table on the other side of the relation
        foreign_key_field: Field in this table holding the key (None on the inverse side)
        referenced_field: Field in the related table (usually its id)
        is_nullable: Whether the foreign key may be NULL
    """

    kind: RelationKind
    related_table: str
    foreign_key_field: str | None = None
    referenced_field: str = "id"
    is_nullable: bool = True


@dataclass(frozen=True)
class FieldDefinition:
    """
    Field (column) metadata.

    Attributes:
        name: Field name
        type: Scalar type
        is_array: Whether the field holds a list of values
        is_required: Whether the field is NOT NULL
        is_unique: Whether the field has a UNIQUE constraint
        is_id: Whether the field is (part of) the identifier
        default: Default marker from the schema (if any)
        enum_name: Name of the enum when type is ENUM
        relation: Relation metadata for foreign key fields
    """

    name: str
    type: FieldType
    is_array: bool = False
    is_required: bool = True
    is_unique: bool = False
    is_id: bool = False
    default: Any = None
    enum_name: str | None = None
    relation: RelationInfo | None = None


@dataclass(frozen=True)
class TableDefinition:
    """
    Table metadata.

    Attributes:
        name: Table name (unique within a schema)
        fields: Ordered field definitions
        primary_key: Names of the primary key fields
        unique_constraints: Field-name groups covered by UNIQUE constraints
    """

    name: str
    fields: tuple[FieldDefinition, ...]
    primary_key: tuple[str, ...] = ()
    unique_constraints: tuple[tuple[str, ...], ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "primary_key", tuple(self.primary_key))
        object.__setattr__(
            self,
            "unique_constraints",
            tuple(tuple(group) for group in self.unique_constraints),
        )

    @property
    def field_count(self) -> int:
        return len(self.fields)

    @property
    def id_fields(self) -> list[FieldDefinition]:
        """Fields flagged as identifiers, in declaration order."""
        return [f for f in self.fields if f.is_id]

    @property
    def foreign_key_fields(self) -> list[FieldDefinition]:
        """Fields whose relation carries a foreign key in this table."""
        return [f for f in self.fields if f.relation and f.relation.foreign_key_field]

    @property
    def relations(self) -> list[RelationInfo]:
        return [f.relation for f in self.fields if f.relation is not None]

    def get_field(self, name: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_self_referencing_fields(self) -> list[FieldDefinition]:
        """
        Get all foreign key fields that reference this same table.

        Returns:
            List of FieldDefinition objects pointing back at this table
        """
        return [
            f for f in self.foreign_key_fields if f.relation.related_table == self.name
        ]


@dataclass(frozen=True)
class EnumDefinition:
    """Named enum with its allowed values."""

    name: str
    values: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))


@dataclass
class ParsedSchema:
    """
    Tables and enums supplied by a schema provider.

    Attributes:
        tables: Table definitions
        enums: Enum catalog
        source: Where the schema was read from (file path or DSN schema)
    """

    tables: list[TableDefinition]
    enums: list[EnumDefinition] = field(default_factory=list)
    source: str | None = None

    def get_table(self, name: str) -> TableDefinition:
        for table in self.tables:
            if table.name == name:
                return table
        raise UnknownTableError(name, [t.name for t in self.tables])

    def select(self, names: Iterable[str]) -> list[TableDefinition]:
        """
        Restrict the schema to the given table names.

        Args:
            names: Table names to keep

        Returns:
            Matching tables in schema order

        Raises:
            UnknownTableError: If a requested table is not in the schema
        """
        wanted = list(names)
        for name in wanted:
            self.get_table(name)
        return [t for t in self.tables if t.name in wanted]


@dataclass
class DependencyNode:
    """
    Node of the table dependency graph.

    Attributes:
        table: Table name
        dependencies: Tables this table references (de-duplicated, insertion order)
        dependents: Tables referencing this table
    """

    table: str
    dependencies: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)


@dataclass
class TopologicalOrder:
    """
    Insert order plus any cycles detected while computing it.

    Attributes:
        order: Every table name exactly once
        cycles: Detected cycles, each a list of table names
    """

    order: list[str]
    cycles: list[list[str]] = field(default_factory=list)

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)

    def tables_in_cycles(self) -> set[str]:
        return {name for cycle in self.cycles for name in cycle}


class IdentifierMapping:
    """
    Append-only store of generated identifiers per table.

    Each table is recorded exactly once, when it completes. Generation
    contexts read an immutable snapshot so tables running in the same level
    never observe each other's writes.
    """

    def __init__(self, initial: Mapping[str, Iterable[Any]] | None = None):
        self._ids: dict[str, tuple[Any, ...]] = {}
        for table, ids in (initial or {}).items():
            self.record(table, ids)

    def record(self, table: str, ids: Iterable[Any]) -> None:
        """
        Record the identifiers produced for a table.

        Raises:
            IdentifierMappingError: If the table was already recorded
        """
        if table in self._ids:
            raise IdentifierMappingError(table)
        self._ids[table] = tuple(ids)

    def get(self, table: str) -> tuple[Any, ...]:
        return self._ids.get(table, ())

    def snapshot(self) -> Mapping[str, tuple[Any, ...]]:
        """Read-only view of the identifiers recorded so far."""
        return MappingProxyType(dict(self._ids))

    def as_dict(self) -> dict[str, list[Any]]:
        return {table: list(ids) for table, ids in self._ids.items()}

    def __contains__(self, table: object) -> bool:
        return table in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{t}={len(ids)}" for t, ids in self._ids.items())
        return f"IdentifierMapping({sizes})"


@dataclass
class GenerationContext:
    """
    Everything a row generator needs to produce rows for one table.

    Attributes:
        table_name: Table being generated
        table: Table definition
        count: Number of rows requested
        relations: Relations declared on the table's fields
        enums: Full enum catalog
        custom_prompt: Optional extra instruction for the generator
        existing_ids: Snapshot of identifiers of already completed tables
        first_id: First value of integer identifier sequences for this request
    """

    table_name: str
    table: TableDefinition
    count: int
    relations: list[RelationInfo] = field(default_factory=list)
    enums: list[EnumDefinition] = field(default_factory=list)
    custom_prompt: str | None = None
    existing_ids: Mapping[str, tuple[Any, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    first_id: int = 1

    @classmethod
    def build(
        cls,
        table: TableDefinition,
        count: int,
        enums: Iterable[EnumDefinition] = (),
        id_mapping: IdentifierMapping | None = None,
        custom_prompt: str | None = None,
    ) -> "GenerationContext":
        existing = id_mapping.snapshot() if id_mapping is not None else MappingProxyType({})
        return cls(
            table_name=table.name,
            table=table,
            count=count,
            relations=table.relations,
            enums=list(enums),
            custom_prompt=custom_prompt,
            existing_ids=existing,
        )

    def with_count(self, count: int, first_id: int | None = None) -> "GenerationContext":
        """Copy of this context asking for a different row count (and id offset)."""
        return GenerationContext(
            table_name=self.table_name,
            table=self.table,
            count=count,
            relations=self.relations,
            enums=self.enums,
            custom_prompt=self.custom_prompt,
            existing_ids=self.existing_ids,
            first_id=self.first_id if first_id is None else first_id,
        )

    def get_enum(self, name: str) -> EnumDefinition | None:
        for enum_def in self.enums:
            if enum_def.name == name:
                return enum_def
        return None


@dataclass
class GenerationResult:
    """
    Rows produced for one table.

    Attributes:
        table_name: Table name
        rows: Generated rows (field name -> value)
        ids: Identifiers extracted from the rows
        source: "primary" or "fallback", depending on which generator served the table
    """

    table_name: str
    rows: list[dict[str, Any]]
    ids: list[Any] = field(default_factory=list)
    source: str = "primary"


@dataclass
class InsertResult:
    """
    Outcome of persisting one table.

    Attributes:
        table_name: Table name
        inserted: Rows actually written
        failed: Rows skipped because of unique conflicts
        errors: Non-fatal messages collected per batch
        ids: Identifiers of the written rows
    """

    table_name: str
    inserted: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    ids: list[Any] = field(default_factory=list)

    def merge(self, other: "InsertResult") -> None:
        self.inserted += other.inserted
        self.failed += other.failed
        self.errors.extend(other.errors)
        self.ids.extend(other.ids)


@dataclass(frozen=True)
class IntegrityViolation:
    """
    A foreign key value that does not reference a known row.

    Attributes:
        row_index: Index of the offending row
        field: Foreign key field name
        value: Offending value
        related_table: Referenced table
        reason: "no_ids" when the related table has no identifiers, "missing" otherwise
    """

    row_index: int
    field: str
    value: Any
    related_table: str
    reason: str

    def __str__(self) -> str:
        if self.reason == "no_ids":
            return (
                f"Row {self.row_index}: {self.field} references {self.related_table} "
                f"but no IDs available"
            )
        return (
            f"Row {self.row_index}: {self.field}={self.value} "
            f"not found in {self.related_table} IDs"
        )


def json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@dataclass
class SeedRow:
    """
    A single row of seed data with attribute access.

    Allows accessing column values as attributes:
        row.id          # Access identifier
        row.email       # Access email column

    Attributes:
        _data: Raw column data dict
    """

    _data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        """
        Allow attribute access to column values.

        Raises:
            AttributeError: If column doesn't exist
        """
        if name.startswith("_"):
            raise AttributeError(f"No attribute '{name}'")
        if name in self._data:
            return self._data[name]
        raise AttributeError(f"No column '{name}' in seed data")

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)


class Seeds:
    """
    Container for generated seed data with attribute access.

    Allows accessing tables as attributes:
        seeds.User     # List of SeedRow objects
        seeds.Post     # List of SeedRow objects
    """

    def __init__(self):
        self._tables: dict[str, list[SeedRow]] = {}

    def add_table(self, table_name: str, rows: list[dict[str, Any]]) -> None:
        """
        Add seed data for a table.

        Args:
            table_name: Table name
            rows: List of row dicts with column data
        """
        self._tables[table_name] = [SeedRow(_data=row) for row in rows]

    def tables(self) -> list[str]:
        return list(self._tables)

    def rows(self, table_name: str) -> list[dict[str, Any]]:
        """Plain row dicts for a table (empty list when absent)."""
        return [row.to_dict() for row in self._tables.get(table_name, [])]

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {table: self.rows(table) for table in self._tables}

    def to_json(self, path: Path | str | None = None, indent: int = 2) -> str:
        """
        Serialize all tables to JSON.

        UUID, Decimal and date/time values are written as strings.

        Args:
            path: Optional file to write to
            indent: JSON indentation

        Returns:
            The JSON document
        """
        document = json.dumps(self.to_dict(), indent=indent, default=json_default)
        if path is not None:
            Path(path).write_text(document)
        return document

    @classmethod
    def from_json(
        cls, path: Path | str | None = None, json_str: str | None = None
    ) -> "Seeds":
        """
        Load seeds from a JSON file or string.

        Raises:
            ValueError: If neither or both sources are given
        """
        if (path is None) == (json_str is None):
            raise ValueError("Provide exactly one of path or json_str")
        data = json.loads(Path(path).read_text() if path is not None else json_str)
        seeds = cls()
        for table, rows in data.items():
            seeds.add_table(table, rows)
        return seeds

    def __contains__(self, table_name: object) -> bool:
        return table_name in self._tables

    def __len__(self) -> int:
        return len(self._tables)

    def __getattr__(self, name: str) -> list[SeedRow]:
        """
        Allow attribute access to tables.

        Raises:
            AttributeError: If table doesn't exist in seeds
        """
        if name.startswith("_"):
            raise AttributeError(f"No attribute '{name}'")
        if name in self._tables:
            return self._tables[name]
        raise AttributeError(f"No table '{name}' in seeds")


@dataclass
class TableOptions:
    """
    Per-table generation options.

    Attributes:
        count: Rows to generate (falls back to the run default)
        custom_prompt: Extra instruction passed to the primary generator
        skip: Exclude the table from the run
    """

    count: int | None = None
    custom_prompt: str | None = None
    skip: bool = False


@dataclass
class RunReport:
    """
    Summary of one orchestrated run.

    Attributes:
        order: Linear insert order
        levels: Level partition used for generation
        cycles: Cycles detected in the dependency graph
        seeds: Generated (and resolved) rows per table
        id_mapping: Identifiers recorded per table
        insert_results: Persistence outcome per table (empty on dry runs)
        violations: Integrity violations per table
        fallback_tables: Tables served by the fallback generator
    """

    order: list[str]
    levels: list[list[str]]
    cycles: list[list[str]]
    seeds: Seeds
    id_mapping: IdentifierMapping
    insert_results: dict[str, InsertResult] = field(default_factory=dict)
    violations: dict[str, list[IntegrityViolation]] = field(default_factory=dict)
    fallback_tables: list[str] = field(default_factory=list)

    @property
    def total_generated(self) -> int:
        return sum(len(self.seeds.rows(t)) for t in self.seeds.tables())

    @property
    def total_inserted(self) -> int:
        return sum(r.inserted for r in self.insert_results.values())
