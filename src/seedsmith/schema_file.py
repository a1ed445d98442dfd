"""
Schema files: JSON or TOML documents describing tables and enums.

Example (TOML):

    [[enums]]
    name = "Role"
    values = ["ADMIN", "MEMBER"]

    [[tables]]
    name = "Post"

    [[tables.fields]]
    name = "id"
    type = "integer"
    id = true

    [[tables.fields]]
    name = "authorId"
    type = "integer"
    relation = { table = "User" }
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from seedsmith.exceptions import SchemaLoadError
from seedsmith.models import (
    EnumDefinition,
    FieldDefinition,
    FieldType,
    ParsedSchema,
    RelationInfo,
    RelationKind,
    TableDefinition,
)


class RelationDocument(BaseModel):
    """Relation of a foreign key field."""

    model_config = ConfigDict(extra="forbid")

    table: str = Field(description="Related table")
    kind: RelationKind = Field(default=RelationKind.MANY_TO_ONE)
    field: str | None = Field(
        default=None, description="Column holding the key (defaults to the field itself)"
    )
    references: str = Field(default="id", description="Referenced column")


class FieldDocument(BaseModel):
    """A table field."""

    model_config = ConfigDict(extra="forbid")

    name: str
    type: FieldType
    array: bool = False
    required: bool = True
    unique: bool = False
    id: bool = False
    default: Any = None
    enum: str | None = None
    relation: RelationDocument | None = None

    @model_validator(mode="after")
    def _enum_needs_name(self) -> FieldDocument:
        if self.type == FieldType.ENUM and not self.enum:
            raise ValueError(f"field '{self.name}' has type enum but no 'enum' name")
        return self

    def to_definition(self) -> FieldDefinition:
        relation = None
        if self.relation is not None:
            relation = RelationInfo(
                kind=self.relation.kind,
                related_table=self.relation.table,
                foreign_key_field=self.relation.field or self.name,
                referenced_field=self.relation.references,
                is_nullable=not self.required,
            )
        return FieldDefinition(
            name=self.name,
            type=self.type,
            is_array=self.array,
            is_required=self.required,
            is_unique=self.unique,
            is_id=self.id,
            default=self.default,
            enum_name=self.enum,
            relation=relation,
        )


class TableDocument(BaseModel):
    """A table with its fields and constraints."""

    model_config = ConfigDict(extra="forbid")

    name: str
    fields: list[FieldDocument] = Field(min_length=1)
    primary_key: list[str] = Field(default_factory=list)
    unique: list[list[str]] = Field(
        default_factory=list, description="Multi-column UNIQUE constraints"
    )

    @model_validator(mode="after")
    def _constraints_reference_fields(self) -> TableDocument:
        names = [f.name for f in self.fields]
        if len(set(names)) != len(names):
            raise ValueError(f"table '{self.name}' has duplicate field names")
        for column in [*self.primary_key, *(c for group in self.unique for c in group)]:
            if column not in names:
                raise ValueError(f"table '{self.name}' has no field '{column}'")
        return self

    def to_definition(self) -> TableDefinition:
        primary_key = self.primary_key or [f.name for f in self.fields if f.id]
        return TableDefinition(
            name=self.name,
            fields=[f.to_definition() for f in self.fields],
            primary_key=primary_key,
            unique_constraints=self.unique,
        )


class EnumDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    values: list[str] = Field(min_length=1)


class SchemaDocument(BaseModel):
    """Top-level schema file document."""

    tables: list[TableDocument] = Field(min_length=1)
    enums: list[EnumDocument] = Field(default_factory=list)

    @model_validator(mode="after")
    def _names_resolve(self) -> SchemaDocument:
        table_names = [t.name for t in self.tables]
        if len(set(table_names)) != len(table_names):
            raise ValueError("duplicate table names")
        enum_names = {e.name for e in self.enums}
        for table in self.tables:
            for f in table.fields:
                if f.enum and f.enum not in enum_names:
                    raise ValueError(f"{table.name}.{f.name} uses unknown enum '{f.enum}'")
        return self

    def to_schema(self, source: str | None = None) -> ParsedSchema:
        return ParsedSchema(
            tables=[t.to_definition() for t in self.tables],
            enums=[EnumDefinition(e.name, tuple(e.values)) for e in self.enums],
            source=source,
        )


def parse_schema(data: dict[str, Any], source: str = "<dict>") -> ParsedSchema:
    """
    Validate a schema document already decoded into a dict.

    Raises:
        SchemaLoadError: If the document is invalid
    """
    try:
        document = SchemaDocument.model_validate(data)
    except ValidationError as e:
        raise SchemaLoadError(source, str(e)) from e
    return document.to_schema(source)


def load_schema(path: Path | str) -> ParsedSchema:
    """
    Load a schema file (.json or .toml).

    Args:
        path: Path to the schema file

    Returns:
        ParsedSchema with tables and enums

    Raises:
        SchemaLoadError: If the file is missing, unreadable or invalid
    """
    schema_path = Path(path)
    if not schema_path.exists():
        raise SchemaLoadError(str(schema_path), "file not found")

    try:
        if schema_path.suffix == ".toml":
            with open(schema_path, "rb") as f:
                data = tomllib.load(f)
        else:
            data = json.loads(schema_path.read_text())
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise SchemaLoadError(str(schema_path), str(e)) from e

    if not isinstance(data, dict):
        raise SchemaLoadError(str(schema_path), "top level must be an object")
    return parse_schema(data, source=str(schema_path))
