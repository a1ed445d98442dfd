"""Foreign key placeholder resolution and referential integrity checks."""

import logging
import random
import re
from collections.abc import Mapping, Sequence
from typing import Any

from seedsmith.models import IntegrityViolation, TableDefinition

logger = logging.getLogger(__name__)

# {{TableName_3}} or {{TableName.3}}: 1-based position in the table's ids
PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+?)[_.](\d+)\}\}")


def parse_placeholder(value: Any) -> tuple[str, int] | None:
    """
    Parse a foreign key placeholder.

    Returns:
        (table name, 0-based index) or None when value is not a placeholder
    """
    if not isinstance(value, str) or "{{" not in value:
        return None
    match = PLACEHOLDER_PATTERN.search(value)
    if not match:
        return None
    table_name, index = match.groups()
    return table_name, int(index) - 1


def _lookup(ids: Sequence[Any], index: int) -> Any:
    if 0 <= index < len(ids):
        return ids[index]
    return None


def resolve_foreign_keys(
    rows: list[dict[str, Any]],
    table: TableDefinition,
    id_mapping: Mapping[str, Sequence[Any]],
    rng: random.Random | None = None,
) -> list[dict[str, Any]]:
    """
    Replace foreign key placeholders and dangling values with known ids.

    For every non-self foreign key field: a placeholder is replaced by the
    id at its position; then any value not found among the related table's
    ids is replaced by a random one of them. NULL values pass through, and
    fields whose related table has no ids are left untouched.

    Args:
        rows: Generated rows (not modified)
        table: Table definition
        id_mapping: Table name -> known identifiers
        rng: Random source for replacement picks

    Returns:
        New row dicts with resolved foreign keys
    """
    rng = rng or random
    fk_fields = [
        f for f in table.foreign_key_fields if f.relation.related_table != table.name
    ]
    replaced = 0
    resolved_rows = []

    for row in rows:
        resolved = dict(row)
        for f in fk_fields:
            column = f.relation.foreign_key_field
            value = resolved.get(column)
            if value is None:
                continue

            placeholder = parse_placeholder(value)
            if placeholder is not None:
                placeholder_table, index = placeholder
                candidate = _lookup(id_mapping.get(placeholder_table, ()), index)
                if candidate is not None:
                    value = candidate
                    resolved[column] = value

            available = id_mapping.get(f.relation.related_table, ())
            if available and value not in available:
                resolved[column] = rng.choice(available)
                replaced += 1
        resolved_rows.append(resolved)

    if replaced:
        logger.debug(
            f"Replaced {replaced} unknown foreign key values in '{table.name}' with existing ids"
        )
    return resolved_rows


def resolve_self_references(
    rows: list[dict[str, Any]],
    table: TableDefinition,
    ids: Sequence[Any],
    rng: random.Random | None = None,
) -> list[dict[str, Any]]:
    """
    Second pass for foreign keys that point at the table itself.

    Runs once the table's own identifiers are known. Placeholders resolve by
    position; values that already are one of the ids are kept. Anything else
    becomes NULL on nullable fields, or a random id of an earlier row on
    required fields (the first row then references itself).

    Args:
        rows: Rows already resolved against other tables (not modified)
        table: Table definition
        ids: The table's own identifiers, aligned with rows (None for rows
            without one)
        rng: Random source for replacement picks

    Returns:
        New row dicts with self-references resolved
    """
    self_fields = table.get_self_referencing_fields()
    if not self_fields or not ids:
        return [dict(row) for row in rows]

    rng = rng or random
    resolved_rows = []
    for index, row in enumerate(rows):
        resolved = dict(row)
        for f in self_fields:
            column = f.relation.foreign_key_field
            value = resolved.get(column)
            if value is None and not f.is_required:
                continue

            placeholder = parse_placeholder(value)
            if placeholder is not None and placeholder[0] == table.name:
                candidate = _lookup(ids, placeholder[1])
                if candidate is not None:
                    resolved[column] = candidate
                    continue

            if value is not None and value in ids:
                continue

            if f.is_required:
                pool = [i for i in ids[:index] if i is not None] or [
                    i for i in ids[index:] if i is not None
                ][:1]
                resolved[column] = rng.choice(pool) if pool else None
            else:
                resolved[column] = None
        resolved_rows.append(resolved)

    return resolved_rows


def validate_referential_integrity(
    rows: list[dict[str, Any]],
    table: TableDefinition,
    id_mapping: Mapping[str, Sequence[Any]],
) -> list[IntegrityViolation]:
    """
    Report foreign key values that do not reference a known row.

    Advisory only: never raises. NULL values on nullable fields are skipped.
    Self-references are checked only when the table's own ids are present in
    id_mapping.

    Args:
        rows: Rows to check
        table: Table definition
        id_mapping: Table name -> known identifiers

    Returns:
        List of IntegrityViolation (empty when all keys resolve)
    """
    violations: list[IntegrityViolation] = []

    for index, row in enumerate(rows):
        for f in table.foreign_key_fields:
            column = f.relation.foreign_key_field
            related = f.relation.related_table
            value = row.get(column)

            if related == table.name and related not in id_mapping:
                continue

            if value is None and not f.is_required:
                continue

            available = id_mapping.get(related, ())
            if not available:
                violations.append(
                    IntegrityViolation(index, column, value, related, reason="no_ids")
                )
                continue

            if value not in available:
                violations.append(
                    IntegrityViolation(index, column, value, related, reason="missing")
                )

    return violations
