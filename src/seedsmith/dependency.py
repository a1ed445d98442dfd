"""Dependency graph, insert ordering and level grouping for tables."""

import logging
import math
from collections import deque
from collections.abc import Iterable

from seedsmith.models import DependencyNode, TableDefinition, TopologicalOrder

logger = logging.getLogger(__name__)


def build_graph(tables: Iterable[TableDefinition]) -> dict[str, DependencyNode]:
    """
    Build the dependency graph from foreign keys.

    An edge table -> related exists when a field of table carries a foreign
    key to related. Self-references are left out of the graph; they are
    resolved in a second pass once the table's own identifiers exist.
    Foreign keys to tables outside the input are kept as dependencies but
    never get a node, so they cannot block ordering.

    Args:
        tables: Table definitions

    Returns:
        Mapping of table name -> DependencyNode, in input order
    """
    tables = list(tables)
    graph: dict[str, DependencyNode] = {t.name: DependencyNode(table=t.name) for t in tables}

    for table in tables:
        node = graph[table.name]
        for fk_field in table.foreign_key_fields:
            related = fk_field.relation.related_table
            if related == table.name:
                continue

            if related not in node.dependencies:
                node.dependencies.append(related)

            related_node = graph.get(related)
            if related_node is not None and table.name not in related_node.dependents:
                related_node.dependents.append(table.name)

    return graph


def _known_dependencies(graph: dict[str, DependencyNode], table: str) -> list[str]:
    return [dep for dep in graph[table].dependencies if dep in graph]


def topological_sort(graph: dict[str, DependencyNode]) -> TopologicalOrder:
    """
    Sort tables in dependency order using Kahn's algorithm.

    The ready queue is FIFO and seeded in graph order, so ties keep their
    insertion order. Tables left with unresolved dependencies are part of, or
    depend on, a cycle: at least one concrete cycle is reported and the
    leftovers are appended anyway, least entangled first.

    Args:
        graph: Graph from build_graph()

    Returns:
        TopologicalOrder with every table exactly once and detected cycles
    """
    in_degree = {table: len(_known_dependencies(graph, table)) for table in graph}

    queue = deque(table for table, degree in in_degree.items() if degree == 0)
    order: list[str] = []

    while queue:
        table = queue.popleft()
        order.append(table)

        for dependent in graph[table].dependents:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    cycles: list[list[str]] = []
    remaining = [table for table in graph if in_degree[table] > 0]
    if remaining:
        cycles = detect_cycles(graph, remaining)
        remaining.sort(key=lambda table: in_degree[table])
        order.extend(remaining)
        logger.debug(f"Unresolved tables appended after sort: {remaining}")

    return TopologicalOrder(order=order, cycles=cycles)


def detect_cycles(
    graph: dict[str, DependencyNode], start_nodes: Iterable[str] | None = None
) -> list[list[str]]:
    """
    Detect circular dependencies (excluding self-references).

    Args:
        graph: Graph from build_graph()
        start_nodes: Nodes to start the search from (defaults to all nodes)

    Returns:
        List of cycles, where each cycle is a list of table names
        (the first table is not repeated at the end)
    """
    cycles: list[list[str]] = []
    seen: set[frozenset[str]] = set()
    visited: set[str] = set()
    path: list[str] = []

    def dfs(node: str) -> None:
        if node in path:
            cycle = path[path.index(node) :]
            key = frozenset(cycle)
            if key not in seen:
                seen.add(key)
                cycles.append(list(cycle))
            return

        if node in visited:
            return

        visited.add(node)
        path.append(node)

        for dep in _known_dependencies(graph, node):
            dfs(dep)

        path.pop()

    for node in start_nodes if start_nodes is not None else graph:
        if node not in visited:
            dfs(node)

    return cycles


def group_by_level(
    tables: Iterable[TableDefinition],
    graph: dict[str, DependencyNode] | None = None,
) -> list[list[str]]:
    """
    Group tables into levels that can be generated concurrently.

    Level 0 holds tables with no dependencies, level k the tables whose
    dependencies all sit in levels 0..k-1. When no table qualifies while
    some remain, the remaining tables form one final level: mutually
    dependent tables are generated side by side and cannot resolve foreign
    keys to each other from earlier levels.

    Args:
        tables: Table definitions
        graph: Prebuilt graph for the same tables (built when omitted)

    Returns:
        Ordered list of levels, each a list of table names in input order
    """
    tables = list(tables)
    if graph is None:
        graph = build_graph(tables)

    levels: list[list[str]] = []
    placed: set[str] = set()

    while len(placed) < len(tables):
        current_level = [
            table.name
            for table in tables
            if table.name not in placed
            and all(dep in placed for dep in _known_dependencies(graph, table.name))
        ]

        if not current_level:
            remaining = [t.name for t in tables if t.name not in placed]
            logger.warning(
                f"Circular dependency among {remaining}; generating them in one level"
            )
            levels.append(remaining)
            break

        levels.append(current_level)
        placed.update(current_level)

    return levels


def find_self_referencing_tables(tables: Iterable[TableDefinition]) -> list[str]:
    """Names of tables with at least one foreign key pointing at themselves."""
    return [t.name for t in tables if t.get_self_referencing_fields()]


def estimate_generation_time(
    table_count: int, rows_per_table: int, parallelism: int
) -> int:
    """
    Rough estimate of generation time in seconds.

    Assumes a batch of 20 rows takes about 2 seconds and that `parallelism`
    batches run at once.
    """
    batch_size = 20
    seconds_per_batch = 2

    batches_per_table = math.ceil(rows_per_table / batch_size)
    total_batches = table_count * batches_per_table
    parallel_batches = math.ceil(total_batches / max(parallelism, 1))

    return parallel_batches * seconds_per_batch
