"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any

import pytest

from seedsmith.exceptions import BatchGenerationError
from seedsmith.generators.base import RowGenerator, extract_ids
from seedsmith.models import (
    EnumDefinition,
    FieldDefinition,
    FieldType,
    GenerationContext,
    GenerationResult,
    RelationInfo,
    RelationKind,
    TableDefinition,
)


def fk(name: str, related: str, required: bool = True, field_type=FieldType.INTEGER):
    """Foreign key field to `related`.id."""
    return FieldDefinition(
        name=name,
        type=field_type,
        is_required=required,
        relation=RelationInfo(
            kind=RelationKind.MANY_TO_ONE,
            related_table=related,
            foreign_key_field=name,
            is_nullable=not required,
        ),
    )


def id_field(name: str = "id", field_type=FieldType.INTEGER) -> FieldDefinition:
    return FieldDefinition(name=name, type=field_type, is_id=True)


def make_table(name: str, *fields: FieldDefinition) -> TableDefinition:
    return TableDefinition(
        name=name,
        fields=[id_field(), *fields],
        primary_key=("id",),
    )


@pytest.fixture
def role_enum() -> EnumDefinition:
    return EnumDefinition("Role", ("ADMIN", "MEMBER", "GUEST"))


@pytest.fixture
def user_table() -> TableDefinition:
    return make_table(
        "User",
        FieldDefinition(name="email", type=FieldType.TEXT, is_unique=True),
        FieldDefinition(name="name", type=FieldType.TEXT),
        FieldDefinition(name="role", type=FieldType.ENUM, enum_name="Role"),
    )


@pytest.fixture
def post_table() -> TableDefinition:
    return make_table(
        "Post",
        FieldDefinition(name="title", type=FieldType.TEXT),
        fk("authorId", "User"),
    )


@pytest.fixture
def comment_table() -> TableDefinition:
    return make_table(
        "Comment",
        FieldDefinition(name="content", type=FieldType.TEXT),
        fk("postId", "Post"),
        fk("authorId", "User"),
        fk("parentId", "Comment", required=False),
    )


@pytest.fixture
def blog_tables(user_table, post_table, comment_table) -> list[TableDefinition]:
    """Comment -> Post -> User, Comment -> User, Comment -> Comment (nullable)."""
    # Deliberately out of dependency order
    return [comment_table, post_table, user_table]


class ScriptedGenerator(RowGenerator):
    """
    Row generator for tests.

    Produces rows with sequential ids from context.first_id and foreign keys
    picked from the context's existing ids. `behavior(context, count, call)`
    may return rows, raise, or return None for the default rows.
    """

    def __init__(self, behavior: Callable[..., Any] | None = None):
        self.behavior = behavior
        self.calls: list[dict[str, Any]] = []

    async def generate(self, context: GenerationContext, count: int | None = None):
        count = context.count if count is None else count
        call = len(self.calls)
        self.calls.append(
            {
                "table": context.table_name,
                "count": count,
                "first_id": context.first_id,
                "existing": dict(context.existing_ids),
            }
        )

        rows = None
        if self.behavior is not None:
            rows = self.behavior(context, count, call)
        if rows is None:
            rows = self.default_rows(context, count)
        return GenerationResult(context.table_name, rows, extract_ids(rows, context.table))

    @staticmethod
    def default_rows(context: GenerationContext, count: int) -> list[dict[str, Any]]:
        rows = []
        for index in range(count):
            row: dict[str, Any] = {}
            for f in context.table.fields:
                if f.is_id:
                    row[f.name] = context.first_id + index
                elif f.relation and f.relation.related_table == context.table_name:
                    row[f.name] = None
                elif f.relation:
                    available = context.existing_ids.get(f.relation.related_table, ())
                    row[f.name] = available[index % len(available)] if available else None
                elif f.type == FieldType.ENUM:
                    row[f.name] = "MEMBER"
                else:
                    row[f.name] = f"{context.table_name}-{f.name}-{context.first_id + index}"
            rows.append(row)
        return rows

    def tables_called(self) -> list[str]:
        return [call["table"] for call in self.calls]


def failing(table_names: set[str] | None = None):
    """Behavior raising BatchGenerationError (for the given tables, or all)."""

    def behavior(context, count, call):
        if table_names is None or context.table_name in table_names:
            raise BatchGenerationError(context.table_name, "service unavailable")
        return None

    return behavior


@pytest.fixture
def scripted() -> type[ScriptedGenerator]:
    return ScriptedGenerator


class FakeCursor:
    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self._returned: list[dict[str, Any]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, query, params=None):
        self.connection.executed.append((query, params))
        if self.connection.errors:
            error = self.connection.errors.pop(0)
            if error is not None:
                raise error
        self._returned = self.connection.responses.pop(0) if self.connection.responses else []

    async def fetchall(self):
        return self._returned


class FakeConnection:
    """Async psycopg connection stand-in recording statements and transactions."""

    def __init__(self):
        self.executed: list[tuple[Any, Any]] = []
        self.responses: list[list[dict[str, Any]]] = []
        self.errors: list[Exception | None] = []
        self.transactions: list[str] = []
        self.cursor_row_factories: list[Any] = []

    async def execute(self, query, params=None):
        self.executed.append((query, params))

    def cursor(self, row_factory=None):
        self.cursor_row_factories.append(row_factory)
        return FakeCursor(self)

    @asynccontextmanager
    async def transaction(self):
        try:
            yield
        except BaseException:
            self.transactions.append("rollback")
            raise
        self.transactions.append("commit")


class FakePool:
    """AsyncConnectionPool stand-in handing out a single FakeConnection."""

    def __init__(self, connect_error: Exception | None = None):
        self.conn = FakeConnection()
        self.connect_error = connect_error
        self.checkouts = 0

    @asynccontextmanager
    async def connection(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.checkouts += 1
        yield self.conn


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()
