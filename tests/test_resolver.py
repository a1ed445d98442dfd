"""Tests for foreign key resolution and referential integrity validation."""

import random

from seedsmith.generators.base import extract_ids
from seedsmith.resolver import (
    parse_placeholder,
    resolve_foreign_keys,
    resolve_self_references,
    validate_referential_integrity,
)


class TestParsePlaceholder:
    """Tests for placeholder parsing."""

    def test_underscore_form(self):
        assert parse_placeholder("{{User_3}}") == ("User", 2)

    def test_dot_form(self):
        assert parse_placeholder("{{Post.1}}") == ("Post", 0)

    def test_table_name_with_underscore(self):
        assert parse_placeholder("{{blog_post_2}}") == ("blog_post", 1)

    def test_not_a_placeholder(self):
        assert parse_placeholder("User_3") is None
        assert parse_placeholder(42) is None
        assert parse_placeholder(None) is None
        assert parse_placeholder("{{nope}}") is None


class TestResolveForeignKeys:
    """Tests for resolving non-self foreign keys."""

    def test_placeholder_resolves_by_position(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": "{{User_2}}"}]

        resolved = resolve_foreign_keys(rows, post_table, {"User": (10, 20, 30)})

        assert resolved[0]["authorId"] == 20

    def test_unknown_value_replaced_by_existing_id(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": 999} for _ in range(20)]

        resolved = resolve_foreign_keys(
            rows, post_table, {"User": (10, 20, 30)}, rng=random.Random(1)
        )

        assert all(row["authorId"] in (10, 20, 30) for row in resolved)

    def test_out_of_range_placeholder_replaced(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": "{{User_9}}"}]

        resolved = resolve_foreign_keys(rows, post_table, {"User": (10, 20)})

        assert resolved[0]["authorId"] in (10, 20)

    def test_valid_value_kept(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": 30}]

        resolved = resolve_foreign_keys(rows, post_table, {"User": (10, 20, 30)})

        assert resolved[0]["authorId"] == 30

    def test_null_passes_through(self, comment_table):
        rows = [{"id": 1, "content": "x", "postId": 1, "authorId": 1, "parentId": None}]

        resolved = resolve_foreign_keys(rows, comment_table, {"Post": (1,), "User": (1,)})

        assert resolved[0]["parentId"] is None

    def test_no_ids_leaves_value_untouched(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": "{{User_1}}"}]

        resolved = resolve_foreign_keys(rows, post_table, {})

        assert resolved[0]["authorId"] == "{{User_1}}"

    def test_input_rows_not_mutated(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": "{{User_1}}"}]

        resolve_foreign_keys(rows, post_table, {"User": (5,)})

        assert rows[0]["authorId"] == "{{User_1}}"

    def test_self_reference_left_for_second_pass(self, comment_table):
        rows = [{"id": 1, "content": "x", "postId": 1, "authorId": 1, "parentId": "{{Comment_1}}"}]

        resolved = resolve_foreign_keys(rows, comment_table, {"Post": (1,), "User": (1,)})

        assert resolved[0]["parentId"] == "{{Comment_1}}"


class TestResolveSelfReferences:
    """Tests for the self-reference pass."""

    def test_placeholder_resolves_to_own_id(self, comment_table):
        rows = [
            {"id": 1, "parentId": None},
            {"id": 2, "parentId": "{{Comment_1}}"},
        ]

        resolved = resolve_self_references(rows, comment_table, [101, 102])

        assert resolved[0]["parentId"] is None
        assert resolved[1]["parentId"] == 101

    def test_existing_id_kept(self, comment_table):
        rows = [{"id": 1, "parentId": None}, {"id": 2, "parentId": 1}]

        resolved = resolve_self_references(rows, comment_table, [1, 2])

        assert resolved[1]["parentId"] == 1

    def test_unknown_value_nulled_on_nullable_field(self, comment_table):
        rows = [{"id": 1, "parentId": 77}]

        resolved = resolve_self_references(rows, comment_table, [1])

        assert resolved[0]["parentId"] is None

    def test_required_self_reference_points_at_earlier_row(self):
        from conftest import fk, make_table

        employees = make_table("Employee", fk("managerId", "Employee"))
        rows = [{"id": i, "managerId": "garbage"} for i in range(1, 6)]
        ids = [1, 2, 3, 4, 5]

        resolved = resolve_self_references(rows, employees, ids, rng=random.Random(3))

        assert resolved[0]["managerId"] == 1
        for index, row in enumerate(resolved[1:], start=1):
            assert row["managerId"] in ids[:index]

    def test_rows_without_ids_keep_alignment(self):
        from conftest import fk, make_table

        employees = make_table("Employee", fk("managerId", "Employee"))
        rows = [
            {"id": 1, "managerId": "garbage"},
            {"id": None, "managerId": "garbage"},
            {"id": 3, "managerId": "garbage"},
            {"id": 4, "managerId": "garbage"},
        ]
        ids = extract_ids(rows, employees)

        resolved = resolve_self_references(rows, employees, ids, rng=random.Random(5))

        assert ids == [1, None, 3, 4]
        assert [row["managerId"] for row in resolved[:3]] == [1, 1, 1]
        assert resolved[3]["managerId"] in (1, 3)

    def test_table_without_self_reference_unchanged(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": 3}]

        assert resolve_self_references(rows, post_table, [1]) == rows


class TestValidateReferentialIntegrity:
    """Tests for the advisory integrity check."""

    def test_all_valid(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": 10}]

        assert validate_referential_integrity(rows, post_table, {"User": (10,)}) == []

    def test_missing_value_reported(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": 10}, {"id": 2, "title": "b", "authorId": 99}]

        violations = validate_referential_integrity(rows, post_table, {"User": (10,)})

        assert len(violations) == 1
        assert violations[0].row_index == 1
        assert violations[0].reason == "missing"
        assert str(violations[0]) == "Row 1: authorId=99 not found in User IDs"

    def test_no_ids_reported(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": 10}]

        violations = validate_referential_integrity(rows, post_table, {})

        assert violations[0].reason == "no_ids"
        assert str(violations[0]) == "Row 0: authorId references User but no IDs available"

    def test_nullable_null_is_valid(self, comment_table):
        rows = [{"id": 1, "content": "x", "postId": 1, "authorId": 1, "parentId": None}]

        violations = validate_referential_integrity(
            rows, comment_table, {"Post": (1,), "User": (1,), "Comment": (1,)}
        )

        assert violations == []

    def test_required_null_is_violation(self, post_table):
        rows = [{"id": 1, "title": "a", "authorId": None}]

        violations = validate_referential_integrity(rows, post_table, {"User": (1,)})

        assert len(violations) == 1

    def test_self_reference_skipped_without_own_ids(self, comment_table):
        rows = [{"id": 1, "content": "x", "postId": 1, "authorId": 1, "parentId": 5}]

        violations = validate_referential_integrity(
            rows, comment_table, {"Post": (1,), "User": (1,)}
        )

        assert violations == []
