"""Seed generation orchestrator."""

import asyncio
import logging
import random
import warnings
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from seedsmith.backends.base import Persister
from seedsmith.dependency import build_graph, group_by_level, topological_sort
from seedsmith.exceptions import (
    BatchGenerationError,
    CircularDependencyWarning,
    EmptyGenerationError,
    ReferentialIntegrityError,
    TableGenerationExhaustedError,
)
from seedsmith.generators.base import RowGenerator
from seedsmith.generators.faker_generator import FakerRowGenerator
from seedsmith.models import (
    EnumDefinition,
    FieldType,
    GenerationContext,
    GenerationResult,
    IdentifierMapping,
    RunReport,
    Seeds,
    TableDefinition,
    TableOptions,
    TopologicalOrder,
)
from seedsmith.resolver import (
    resolve_foreign_keys,
    resolve_self_references,
    validate_referential_integrity,
)

logger = logging.getLogger(__name__)

# Constants for generation logic
DEFAULT_PARALLEL = 5
DEFAULT_RETRY_DELAY = 2.0  # seconds before a failed batch is retried
DEFAULT_COUNT = 50
DEFAULT_INSERT_BATCH_SIZE = 500


def batch_size_for(table: TableDefinition) -> int:
    """
    Rows per generation request, based on table complexity.

    More fields mean larger responses, so complex tables get smaller batches.
    """
    if table.field_count > 15:
        return 10
    if table.field_count > 10:
        return 20
    return 30


def split_batches(count: int, batch_size: int) -> list[int]:
    """
    Split a row count into consecutive batch sizes.

    Example:
        >>> split_batches(105, 20)
        [20, 20, 20, 20, 20, 5]
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    batches = []
    remaining = count
    while remaining > 0:
        size = min(remaining, batch_size)
        batches.append(size)
        remaining -= size
    return batches


@dataclass(frozen=True)
class FallbackEvent:
    """
    Emitted when a table is served by the fallback generator.

    Attributes:
        table_name: Table that fell back
        count: Rows requested from the fallback generator
        error: Failure of the primary path
    """

    table_name: str
    count: int
    error: BaseException


class BatchedGenerator:
    """
    Generate rows for tables through a primary generator with batching,
    retry and a table-level fallback.
    """

    def __init__(
        self,
        primary: RowGenerator,
        fallback: RowGenerator | None = None,
        parallel: int = DEFAULT_PARALLEL,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ):
        """
        Initialize the batched generator.

        Args:
            primary: Generator tried first (e.g. OpenAIRowGenerator)
            fallback: Generator used when the primary path fails
                (defaults to FakerRowGenerator)
            parallel: Maximum batches of one table requested concurrently
            retry_delay: Seconds to wait before retrying a failed batch
        """
        if parallel < 1:
            raise ValueError(f"parallel must be at least 1, got {parallel}")
        self.primary = primary
        self.fallback = fallback or FakerRowGenerator()
        self.parallel = parallel
        self.retry_delay = retry_delay
        self.fallback_events: list[FallbackEvent] = []
        self._listeners: list[Callable[[FallbackEvent], Any]] = []

    def add_listener(self, callback: Callable[[FallbackEvent], Any]) -> None:
        """Call `callback(event)` every time a table falls back."""
        self._listeners.append(callback)

    async def generate_table(self, context: GenerationContext) -> GenerationResult:
        """
        Generate all rows for one table.

        Falls back to the fallback generator for the whole count when the
        primary path raises.

        Raises:
            TableGenerationExhaustedError: If the fallback generator fails too
        """
        try:
            return await self._generate_primary(context)
        except Exception as e:
            logger.warning(f"Generation failed for {context.table_name}: {e}")
            logger.info(f"Falling back to {type(self.fallback).__name__} for {context.table_name}...")
            self._emit(FallbackEvent(context.table_name, context.count, e))

        try:
            result = await self.fallback.generate(context, context.count)
        except Exception as e:
            raise TableGenerationExhaustedError(context.table_name, e) from e
        result.source = "fallback"
        return result

    async def generate_level(
        self, contexts: Iterable[GenerationContext]
    ) -> dict[str, GenerationResult]:
        """
        Generate every table of a dependency level concurrently.

        Each table falls back independently. A table that fails even with
        the fallback generator cancels its siblings: no task of the level
        outlives the call.

        Returns:
            Table name -> GenerationResult, in context order

        Raises:
            TableGenerationExhaustedError: From the first table that failed
        """
        contexts = list(contexts)
        if not contexts:
            return {}
        total_rows = sum(ctx.count for ctx in contexts)
        logger.info(f"Generating {len(contexts)} tables in parallel ({total_rows} total rows)")

        tasks = [asyncio.create_task(self.generate_table(ctx)) for ctx in contexts]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                logger.debug(f"Cancelling {len(pending)} sibling tables")
                await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return {ctx.table_name: task.result() for ctx, task in zip(contexts, tasks)}

    async def _generate_primary(self, context: GenerationContext) -> GenerationResult:
        table_name = context.table_name
        batch_size = batch_size_for(context.table)

        if context.count <= batch_size:
            return await self._generate_batch(context, context.count)

        batches = split_batches(context.count, batch_size)
        logger.debug(
            f"Splitting {context.count} rows of {table_name} into "
            f"{len(batches)} batches of {batch_size}"
        )

        # Batch k numbers its ids after every row of batches 0..k-1
        first_ids = [context.first_id + sum(batches[:k]) for k in range(len(batches))]

        rows: list[dict[str, Any]] = []
        ids: list[Any] = []
        for start in range(0, len(batches), self.parallel):
            chunk = batches[start : start + self.parallel]
            outcomes = await asyncio.gather(
                *(
                    self._generate_batch_with_retry(
                        context, size, first_ids[start + offset], start + offset + 1, len(batches)
                    )
                    for offset, size in enumerate(chunk)
                ),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            for outcome in outcomes:
                rows.extend(outcome.rows)
                ids.extend(outcome.ids)

        return GenerationResult(table_name=table_name, rows=rows, ids=ids, source="primary")

    async def _generate_batch(
        self, context: GenerationContext, count: int, first_id: int | None = None
    ) -> GenerationResult:
        result = await self.primary.generate(context.with_count(count, first_id), count)
        if not result.rows:
            raise EmptyGenerationError(context.table_name)
        if len(result.rows) > count:
            result.rows = result.rows[:count]
            result.ids = result.ids[:count]
        return result

    async def _generate_batch_with_retry(
        self, context: GenerationContext, count: int, first_id: int, batch_num: int, total: int
    ) -> GenerationResult:
        logger.debug(f"Generating batch {batch_num}/{total} ({count} rows) for {context.table_name}")
        try:
            return await self._generate_batch(context, count, first_id)
        except Exception:
            logger.warning(f"Batch {batch_num} failed for {context.table_name}, retrying once...")

        await asyncio.sleep(self.retry_delay)
        try:
            return await self._generate_batch(context, count, first_id)
        except BatchGenerationError:
            logger.error(f"Batch {batch_num} failed after retry for {context.table_name}")
            raise
        except Exception as e:
            logger.error(f"Batch {batch_num} failed after retry for {context.table_name}")
            raise BatchGenerationError(context.table_name, str(e)) from e

    def _emit(self, event: FallbackEvent) -> None:
        self.fallback_events.append(event)
        for listener in self._listeners:
            listener(event)


class SeedOrchestrator:
    """
    Orchestrate seed data generation across multiple tables.

    Tables are generated level by level: a level starts only once every
    table of the previous level has completed and recorded its identifiers,
    so foreign keys always point at rows generated earlier.
    """

    def __init__(
        self,
        tables: Iterable[TableDefinition],
        enums: Iterable[EnumDefinition] = (),
        primary: RowGenerator | None = None,
        fallback: RowGenerator | None = None,
        persister: Persister | None = None,
        parallel: int = DEFAULT_PARALLEL,
        insert_batch_size: int = DEFAULT_INSERT_BATCH_SIZE,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        table_options: Mapping[str, TableOptions] | None = None,
        default_count: int = DEFAULT_COUNT,
        strict_integrity: bool = False,
        rng: random.Random | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            tables: Table definitions to seed
            enums: Enum catalog
            primary: Primary row generator (defaults to the fallback generator)
            fallback: Fallback row generator (defaults to FakerRowGenerator)
            persister: Destination store; required unless runs are dry
            parallel: Maximum concurrent batch requests per table
            insert_batch_size: Rows per INSERT statement
            retry_delay: Seconds before a failed batch is retried
            table_options: Per-table count, prompt and skip settings
            default_count: Rows per table when no count is configured
            strict_integrity: Raise ReferentialIntegrityError instead of logging violations
            rng: Random source for foreign key replacement picks
        """
        self.table_options = dict(table_options or {})
        self.tables = [
            t for t in tables if not self.table_options.get(t.name, TableOptions()).skip
        ]
        self.enums = list(enums)
        fallback = fallback or FakerRowGenerator()
        self.generator = BatchedGenerator(
            primary or fallback, fallback, parallel=parallel, retry_delay=retry_delay
        )
        self.persister = persister
        self.insert_batch_size = insert_batch_size
        self.default_count = default_count
        self.strict_integrity = strict_integrity
        self.rng = rng or random.Random()
        self._by_name = {t.name: t for t in self.tables}

    def plan(self) -> tuple[TopologicalOrder, list[list[str]]]:
        """
        Compute insert order and generation levels.

        Cycles are reported with a CircularDependencyWarning, not raised.

        Returns:
            (TopologicalOrder, levels)
        """
        graph = build_graph(self.tables)
        topo = topological_sort(graph)
        levels = group_by_level(self.tables, graph)

        if topo.has_cycles:
            cycles_str = "; ".join(" -> ".join(cycle) for cycle in topo.cycles)
            message = (
                f"Circular dependencies detected: {cycles_str}. "
                f"Foreign keys between these tables may not resolve."
            )
            logger.warning(message)
            warnings.warn(message, CircularDependencyWarning, stacklevel=2)

        logger.debug(f"Insert order: {' -> '.join(topo.order)}")
        return topo, levels

    def count_for(self, table_name: str, counts: Mapping[str, int] | None = None) -> int:
        if counts and table_name in counts:
            return counts[table_name]
        options = self.table_options.get(table_name)
        if options and options.count is not None:
            return options.count
        return self.default_count

    async def run(
        self, counts: Mapping[str, int] | None = None, dry_run: bool = False
    ) -> RunReport:
        """
        Generate, resolve and persist rows for every table.

        Args:
            counts: Explicit row counts per table (override table options)
            dry_run: Generate and resolve without persisting

        Returns:
            RunReport with rows, identifiers and per-table outcomes

        Raises:
            ValueError: If no persister is configured for a non-dry run
            ConnectionUnavailableError: If the destination cannot be reached
            TableGenerationExhaustedError: If a table cannot be generated at all
            PersistenceError: If a table's insert fails (its transaction is rolled back)
            ReferentialIntegrityError: In strict mode, on unresolved foreign keys
        """
        if not dry_run:
            if self.persister is None:
                raise ValueError("A persister is required unless dry_run=True")
            await self.persister.check_connection()

        topo, levels = self.plan()
        id_mapping = IdentifierMapping()
        report = RunReport(
            order=topo.order,
            levels=levels,
            cycles=topo.cycles,
            seeds=Seeds(),
            id_mapping=id_mapping,
        )
        events_before = len(self.generator.fallback_events)

        logger.info(f"Processing {len(levels)} dependency levels")
        for level_index, level in enumerate(levels, start=1):
            logger.info(f"Level {level_index}/{len(levels)}: {len(level)} tables ({', '.join(level)})")

            contexts = [
                GenerationContext.build(
                    self._by_name[name],
                    self.count_for(name, counts),
                    enums=self.enums,
                    id_mapping=id_mapping,
                    custom_prompt=self._custom_prompt(name),
                )
                for name in level
            ]
            results = await self.generator.generate_level(contexts)

            # Tables of a level complete one by one; their ids become visible
            # to the next level only, since contexts above used a snapshot.
            for name in level:
                await self._complete_table(self._by_name[name], results[name], report, dry_run)

        report.fallback_tables = [
            event.table_name for event in self.generator.fallback_events[events_before:]
        ]
        logger.info(
            f"Generated {report.total_generated} rows"
            + ("" if dry_run else f", inserted {report.total_inserted}")
        )
        return report

    async def _complete_table(
        self,
        table: TableDefinition,
        result: GenerationResult,
        report: RunReport,
        dry_run: bool,
    ) -> None:
        id_mapping = report.id_mapping
        known_ids = id_mapping.snapshot()

        rows = resolve_foreign_keys(result.rows, table, known_ids, rng=self.rng)
        rows = resolve_self_references(rows, table, result.ids, rng=self.rng)

        check_ids = dict(known_ids)
        if table.get_self_referencing_fields():
            check_ids[table.name] = tuple(i for i in result.ids if i is not None)
        violations = validate_referential_integrity(rows, table, check_ids)
        if violations:
            report.violations[table.name] = violations
            if self.strict_integrity:
                raise ReferentialIntegrityError(table.name, violations)
            logger.warning(
                f"{table.name}: {len(violations)} referential integrity violations "
                f"(first: {violations[0]})"
            )

        ids = [i for i in result.ids if i is not None]
        if not dry_run:
            id_fields = table.id_fields
            insert_result = await self.persister.persist(
                table.name,
                rows,
                batch_size=self.insert_batch_size,
                id_field=id_fields[0].name if len(id_fields) == 1 else None,
                json_fields=[
                    f.name for f in table.fields if f.type == FieldType.JSON and not f.is_array
                ],
            )
            report.insert_results[table.name] = insert_result
            if insert_result.failed:
                logger.warning(
                    f"{table.name}: inserted {insert_result.inserted}, failed {insert_result.failed}"
                )
                for error in insert_result.errors:
                    logger.debug(f"  {error}")
            if insert_result.ids:
                ids = insert_result.ids

        id_mapping.record(table.name, ids)
        report.seeds.add_table(table.name, rows)

    def _custom_prompt(self, table_name: str) -> str | None:
        options = self.table_options.get(table_name)
        return options.custom_prompt if options else None
