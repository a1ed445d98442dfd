"""Base row generator interface."""

from abc import ABC, abstractmethod
from typing import Any

from seedsmith.models import GenerationContext, GenerationResult, TableDefinition


class RowGenerator(ABC):
    """
    Base class for row generators.

    A row generator produces `count` rows for the table described by a
    GenerationContext. Implementations may be invoked many times
    concurrently with independent contexts.

    Example:
        >>> class ConstantGenerator(RowGenerator):
        ...     async def generate(self, context, count=None):
        ...         count = context.count if count is None else count
        ...         rows = [{"id": i + 1, "name": "x"} for i in range(count)]
        ...         return GenerationResult(context.table_name, rows, extract_ids(rows, context.table))
        >>>
        >>> register_generator("constant", ConstantGenerator)
    """

    #: Label stored on GenerationResult.source
    source = "primary"

    @abstractmethod
    async def generate(
        self, context: GenerationContext, count: int | None = None
    ) -> GenerationResult:
        """
        Generate rows for a table.

        Args:
            context: Generation context for the table
            count: Rows to generate (defaults to context.count)

        Returns:
            GenerationResult with rows and their identifiers

        Raises:
            BatchGenerationError: If the rows could not be produced
        """
        pass


def extract_ids(rows: list[dict[str, Any]], table: TableDefinition) -> list[Any]:
    """
    Extract identifiers from generated rows.

    - single id field: the field's values
    - composite id: one {field: value} dict per row, in id field order
    - no id field: the rows' "id" values when present, else 1..n

    Args:
        rows: Generated rows
        table: Table definition

    Returns:
        Identifier list aligned with rows (None where a row has no id)
    """
    id_fields = table.id_fields

    if not id_fields:
        if rows and "id" in rows[0]:
            return [row.get("id") for row in rows]
        return list(range(1, len(rows) + 1))

    if len(id_fields) == 1:
        name = id_fields[0].name
        return [row.get(name) for row in rows]

    return [{f.name: row.get(f.name) for f in id_fields} for row in rows]
