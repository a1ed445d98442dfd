"""Tests for PostgreSQL schema introspection against a scripted connection."""

import pytest

from seedsmith.exceptions import SchemaNotFoundError, UnknownTableError
from seedsmith.introspection import SchemaIntrospector, map_column_type
from seedsmith.models import FieldType, RelationKind

COLUMNS = {
    "users": [
        ("id", "integer", "int4", "NO", "nextval('users_id_seq'::regclass)"),
        ("email", "character varying", "varchar", "NO", None),
        ("role", "USER-DEFINED", "user_role", "NO", None),
        ("tags", "ARRAY", "_text", "YES", None),
        ("profile", "jsonb", "jsonb", "YES", None),
    ],
    "posts": [
        ("id", "uuid", "uuid", "NO", "gen_random_uuid()"),
        ("author_id", "integer", "int4", "NO", None),
        ("reply_to", "uuid", "uuid", "YES", None),
        ("slug", "text", "text", "NO", None),
        ("published_at", "timestamp with time zone", "timestamptz", "YES", None),
    ],
}

CONSTRAINTS = {
    ("PRIMARY KEY", "users"): [("users_pkey", "id")],
    ("PRIMARY KEY", "posts"): [("posts_pkey", "id")],
    ("UNIQUE", "users"): [("users_email_key", "email")],
    ("UNIQUE", "posts"): [("posts_author_slug_key", "author_id"), ("posts_author_slug_key", "slug")],
}

FOREIGN_KEYS = {
    "users": [],
    "posts": [("author_id", "users", "id"), ("reply_to", "posts", "id")],
}


class ScriptedCursor:
    def __init__(self, conn):
        self.conn = conn
        self._rows = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, query, params=()):
        self.conn.queries.append(query)
        if "information_schema.schemata" in query:
            self._rows = [(params[0] in self.conn.schemas,)]
        elif "information_schema.tables" in query:
            self._rows = [(name,) for name in sorted(COLUMNS)]
        elif "pg_enum" in query:
            self._rows = [("user_role", "ADMIN"), ("user_role", "MEMBER")]
        elif "information_schema.columns" in query:
            self._rows = COLUMNS[params[1]]
        elif "'FOREIGN KEY'" in query:
            self._rows = FOREIGN_KEYS[params[1]]
        else:
            self._rows = CONSTRAINTS.get((params[0], params[2]), [])

    async def fetchone(self):
        return self._rows[0] if self._rows else None

    async def fetchall(self):
        return self._rows


class ScriptedConnection:
    def __init__(self, schemas=("public",)):
        self.schemas = set(schemas)
        self.queries: list[str] = []

    def cursor(self):
        return ScriptedCursor(self)


def test_map_column_type():
    """Test PostgreSQL types map to field types."""
    assert map_column_type("integer", "int4", set()) == (FieldType.INTEGER, False, None)
    assert map_column_type("bigint", "int8", set()) == (FieldType.BIG_INTEGER, False, None)
    assert map_column_type("numeric", "numeric", set()) == (FieldType.DECIMAL, False, None)
    assert map_column_type("ARRAY", "_int4", set()) == (FieldType.INTEGER, True, None)
    assert map_column_type("USER-DEFINED", "mood", {"mood"}) == (FieldType.ENUM, False, "mood")
    assert map_column_type("ARRAY", "_mood", {"mood"}) == (FieldType.ENUM, True, "mood")
    assert map_column_type("USER-DEFINED", "geometry", set()) == (FieldType.TEXT, False, None)


@pytest.mark.asyncio
async def test_load_schema():
    """Test every table, enum and constraint is introspected."""
    introspector = SchemaIntrospector(ScriptedConnection(), "public")

    schema = await introspector.load()

    assert [t.name for t in schema.tables] == ["posts", "users"]
    assert schema.enums[0].name == "user_role"
    assert schema.enums[0].values == ("ADMIN", "MEMBER")
    assert schema.source == "postgresql:public"


@pytest.mark.asyncio
async def test_users_table_fields():
    """Test columns become field definitions."""
    users = await SchemaIntrospector(ScriptedConnection()).get_table("users")

    assert users.primary_key == ("id",)
    assert users.get_field("id").is_id
    assert users.get_field("email").is_unique
    assert users.get_field("role").type == FieldType.ENUM
    assert users.get_field("role").enum_name == "user_role"
    assert users.get_field("tags").is_array
    assert not users.get_field("tags").is_required
    assert users.get_field("profile").type == FieldType.JSON


@pytest.mark.asyncio
async def test_posts_relations_and_composite_unique():
    """Test foreign keys become relations and composite UNIQUE constraints survive."""
    posts = await SchemaIntrospector(ScriptedConnection()).get_table("posts")

    author = posts.get_field("author_id")
    assert author.relation.related_table == "users"
    assert author.relation.kind == RelationKind.MANY_TO_ONE
    assert author.relation.is_nullable is False
    assert not author.is_unique

    assert [f.name for f in posts.get_self_referencing_fields()] == ["reply_to"]
    assert posts.unique_constraints == (("author_id", "slug"),)
    assert posts.get_field("published_at").type == FieldType.TIMESTAMP


@pytest.mark.asyncio
async def test_table_cache():
    """Test repeated lookups do not query again."""
    conn = ScriptedConnection()
    introspector = SchemaIntrospector(conn)

    first = await introspector.get_table("users")
    queries = len(conn.queries)
    second = await introspector.get_table("users")

    assert first is second
    assert len(conn.queries) == queries


@pytest.mark.asyncio
async def test_missing_schema():
    """Test a missing schema raises with suggestions."""
    introspector = SchemaIntrospector(ScriptedConnection(schemas=()), "seed")

    with pytest.raises(SchemaNotFoundError, match="CREATE SCHEMA seed"):
        await introspector.get_table_names()


@pytest.mark.asyncio
async def test_unknown_table():
    """Test unknown tables raise UnknownTableError."""
    with pytest.raises(UnknownTableError):
        await SchemaIntrospector(ScriptedConnection()).get_table("orders")
