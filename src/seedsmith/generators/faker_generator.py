"""Faker-based fallback row generator."""

import logging
import random
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from faker import Faker

from seedsmith.generators.base import RowGenerator, extract_ids
from seedsmith.models import FieldDefinition, FieldType, GenerationContext, GenerationResult

logger = logging.getLogger(__name__)

# Maximum attempts to generate a unique value before suffixing it
MAX_UNIQUE_RETRIES = 10


class FakerRowGenerator(RowGenerator):
    """
    Generate plausible rows with the Faker library.

    Used whenever the primary generator is exhausted. Values come from, in
    order: identifier sequence, available foreign key ids, enum catalog,
    column-name patterns, then field type. Seeding makes output repeatable.
    """

    source = "fallback"

    def __init__(self, seed: int | None = None, locale: str | None = None):
        self.fake = Faker(locale) if locale else Faker()
        self.random = random.Random(seed)
        if seed is not None:
            self.fake.seed_instance(seed)

        fake = self.fake
        # Exact column name -> Faker method (text columns)
        self.column_mappings: dict[str, Callable[[], Any]] = {
            "name": fake.name,
            "fullname": fake.name,
            "full_name": fake.name,
            "first_name": fake.first_name,
            "firstname": fake.first_name,
            "last_name": fake.last_name,
            "lastname": fake.last_name,
            "username": fake.user_name,
            "user_name": fake.user_name,
            "city": fake.city,
            "state": fake.state,
            "country": fake.country,
            "title": fake.sentence,
        }
        # Column name substring -> Faker method (text columns), checked in order
        self.column_patterns: list[tuple[str, Callable[[], Any]]] = [
            ("email", fake.email),
            ("phone", fake.phone_number),
            ("address", fake.street_address),
            ("zip", fake.postcode),
            ("postal", fake.postcode),
            ("url", fake.url),
            ("website", fake.url),
            ("company", fake.company),
            ("description", lambda: fake.text(max_nb_chars=200)),
            ("bio", lambda: fake.text(max_nb_chars=300)),
            ("content", lambda: "\n\n".join(fake.paragraphs(nb=2))),
        ]
        # Type-based fallbacks
        self.type_fallbacks: dict[FieldType, Callable[[], Any]] = {
            FieldType.TEXT: fake.word,
            FieldType.INTEGER: lambda: fake.random_int(min=1, max=10000),
            FieldType.BIG_INTEGER: lambda: fake.random_int(min=1, max=1_000_000),
            FieldType.FLOAT: lambda: round(fake.pyfloat(min_value=0, max_value=1000), 2),
            FieldType.DECIMAL: lambda: Decimal(
                str(round(fake.pyfloat(min_value=0, max_value=1000), 2))
            ),
            FieldType.BOOLEAN: fake.boolean,
            FieldType.TIMESTAMP: lambda: fake.date_time_between(start_date="-30d"),
            FieldType.DATE: lambda: fake.date_between(start_date="-30d"),
            FieldType.TIME: fake.time_object,
            FieldType.JSON: lambda: {
                "key": fake.word(),
                "value": fake.sentence(),
                "count": fake.random_int(min=1, max=100),
            },
            FieldType.BINARY: lambda: fake.binary(length=32),
            FieldType.UUID: fake.uuid4,
            FieldType.ENUM: fake.word,
        }

    async def generate(
        self, context: GenerationContext, count: int | None = None
    ) -> GenerationResult:
        rows = self.generate_rows(context, count, start_id=context.first_id)
        return GenerationResult(
            table_name=context.table_name,
            rows=rows,
            ids=extract_ids(rows, context.table),
            source=self.source,
        )

    def generate_rows(
        self, context: GenerationContext, count: int | None = None, start_id: int = 1
    ) -> list[dict[str, Any]]:
        """
        Generate rows synchronously.

        Args:
            context: Generation context
            count: Rows to generate (defaults to context.count)
            start_id: First value of integer identifier sequences

        Returns:
            List of row dicts
        """
        count = context.count if count is None else count
        unique_values: dict[str, set[Any]] = {}
        rows = []

        for index in range(count):
            row: dict[str, Any] = {}
            for f in context.table.fields:
                value = self._field_value(f, context, index, start_id)
                if self._tracks_uniqueness(f) and value is not None:
                    seen = unique_values.setdefault(f.name, set())
                    value = self._make_unique(f, value, seen, context)
                row[f.name] = value
            rows.append(row)

        return rows

    @staticmethod
    def _tracks_uniqueness(f: FieldDefinition) -> bool:
        return (
            f.is_unique
            and not f.is_id
            and not f.relation
            and not f.is_array
            and f.type not in (FieldType.JSON, FieldType.BOOLEAN)
        )

    def _field_value(
        self, f: FieldDefinition, context: GenerationContext, index: int, start_id: int
    ) -> Any:
        if f.is_id and not f.relation:
            if f.type in (FieldType.UUID, FieldType.TEXT):
                return self.fake.uuid4()
            return start_id + index

        if f.relation and f.relation.foreign_key_field:
            return self._foreign_key_value(f, context, index)

        value = self._scalar_value(f, context)
        if f.is_array and value is not None:
            extra = self.random.randint(0, 2)
            return [value] + [self._scalar_value(f, context) for _ in range(extra)]
        return value

    def _foreign_key_value(self, f: FieldDefinition, context: GenerationContext, index: int) -> Any:
        relation = f.relation
        if relation.related_table == context.table_name:
            # Filled by the self-reference pass once the table's own ids exist
            if not f.is_required:
                return None
            return f"{{{{{context.table_name}_{self.random.randint(1, index + 1)}}}}}"

        available = context.existing_ids.get(relation.related_table)
        if available:
            return self.random.choice(available)
        if not f.is_required:
            return None
        return f"{{{{{relation.related_table}_{index + 1}}}}}"

    def _scalar_value(self, f: FieldDefinition, context: GenerationContext) -> Any:
        if f.enum_name:
            enum_def = context.get_enum(f.enum_name)
            if enum_def and enum_def.values:
                return self.random.choice(enum_def.values)

        lowered = f.name.lower()
        if f.type == FieldType.TEXT:
            if lowered in self.column_mappings:
                return self.column_mappings[lowered]()
            for pattern, method in self.column_patterns:
                if pattern in lowered:
                    return method()

        if f.type in (FieldType.FLOAT, FieldType.DECIMAL) and (
            "price" in lowered or "amount" in lowered
        ):
            return round(self.fake.pyfloat(min_value=1, max_value=1000), 2)

        if not f.is_required and self.random.random() < 0.5:
            return None

        return self.type_fallbacks.get(f.type, self.fake.word)()

    def _make_unique(
        self, f: FieldDefinition, value: Any, seen: set[Any], context: GenerationContext
    ) -> Any:
        retries = 0
        while (value is None or value in seen) and retries < MAX_UNIQUE_RETRIES:
            value = self._scalar_value(f, context)
            retries += 1

        if value is None:
            return None

        if value in seen:
            if isinstance(value, str):
                suffix = len(seen)
                while f"{value}-{suffix}" in seen:
                    suffix += 1
                value = f"{value}-{suffix}"
            else:
                value = max((v for v in seen if isinstance(v, int)), default=0) + 1
            logger.debug(f"Adjusted duplicate value for unique field '{f.name}'")

        seen.add(value)
        return value
