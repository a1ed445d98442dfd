"""
seedsmith - Dependency-Aware Seed Data Generation

Generates referentially consistent test data for relational schemas: tables
are ordered by their foreign keys, generated level by level (AI first, Faker
as fallback), resolved against already generated identifiers and inserted
in batches.
"""

from seedsmith.backends import MemoryPersister, Persister, PostgresPersister
from seedsmith.dependency import (
    build_graph,
    detect_cycles,
    group_by_level,
    topological_sort,
)
from seedsmith.generators.base import RowGenerator
from seedsmith.generators.faker_generator import FakerRowGenerator
from seedsmith.generators.ai_generator import OpenAIRowGenerator
from seedsmith.generators.registry import (
    clear_generators,
    list_generators,
    register_generator,
)
from seedsmith.models import (
    EnumDefinition,
    FieldDefinition,
    FieldType,
    GenerationContext,
    GenerationResult,
    IdentifierMapping,
    InsertResult,
    RelationInfo,
    RelationKind,
    RunReport,
    SeedRow,
    Seeds,
    TableDefinition,
    TableOptions,
)
from seedsmith.orchestrator import BatchedGenerator, SeedOrchestrator
from seedsmith.resolver import (
    resolve_foreign_keys,
    resolve_self_references,
    validate_referential_integrity,
)
from seedsmith.schema_file import load_schema

__version__ = "0.1.0"

__all__ = [
    "SeedOrchestrator",
    "BatchedGenerator",
    "build_graph",
    "topological_sort",
    "detect_cycles",
    "group_by_level",
    "resolve_foreign_keys",
    "resolve_self_references",
    "validate_referential_integrity",
    "load_schema",
    "Persister",
    "PostgresPersister",
    "MemoryPersister",
    "RowGenerator",
    "OpenAIRowGenerator",
    "FakerRowGenerator",
    "register_generator",
    "list_generators",
    "clear_generators",
    "FieldType",
    "RelationKind",
    "RelationInfo",
    "FieldDefinition",
    "TableDefinition",
    "EnumDefinition",
    "GenerationContext",
    "GenerationResult",
    "IdentifierMapping",
    "InsertResult",
    "TableOptions",
    "RunReport",
    "Seeds",
    "SeedRow",
]
