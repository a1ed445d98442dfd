"""OpenAI-backed primary row generator."""

import asyncio
import json
import logging
import re
from typing import Any

from openai import AsyncOpenAI, RateLimitError

from seedsmith.exceptions import BatchGenerationError, ConfigError, EmptyGenerationError
from seedsmith.generators.base import RowGenerator, extract_ids
from seedsmith.models import GenerationContext, GenerationResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a data generation engine. Generate realistic, diverse data that matches "
    "the provided schema exactly. Return ONLY valid JSON, no markdown, no explanation."
)

# Prompts beyond this size slow generation down noticeably
LARGE_PROMPT_CHARS = 2000

MAX_TOKENS = 16384

# o1, o3, o4 and gpt-5 models (with optional provider prefix and -mini style suffixes)
REASONING_MODEL_PATTERN = re.compile(r"^(?:.*/)?(?:o1|o3|o4|gpt-5)(?:[-.].*)?$")


def is_reasoning_model(model: str) -> bool:
    """Whether model only accepts max_completion_tokens and the default temperature."""
    return REASONING_MODEL_PATTERN.match(model) is not None


class OpenAIRowGenerator(RowGenerator):
    """
    Generate rows by asking an OpenAI chat model for a JSON document.

    Each call makes up to `max_retries` requests, backing off exponentially
    on rate limits. Malformed or empty responses raise BatchGenerationError
    so callers can retry or fall back.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        max_retries: int = 3,
        timeout: float = 30.0,
        client: AsyncOpenAI | None = None,
        backoff_base: float = 1.0,
    ):
        """
        Initialize the generator.

        Args:
            api_key: OpenAI API key (not needed when client is given)
            model: Chat model name
            max_retries: Requests per generate() call
            timeout: Per-request timeout in seconds
            client: Preconfigured AsyncOpenAI client
            backoff_base: Base delay in seconds between attempts

        Raises:
            ConfigError: If neither api_key nor client is provided
        """
        if client is None and not api_key:
            raise ConfigError(
                "OpenAI API key not found. Set OPENAI_API_KEY or [ai] api_key in seedsmith.toml."
            )
        self.model = model
        self.max_retries = max(1, max_retries)
        self.timeout = timeout
        self.backoff_base = backoff_base
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            # Retries are handled here, not inside the SDK
            self._client = AsyncOpenAI(
                api_key=self._api_key, timeout=self.timeout, max_retries=0
            )
        return self._client

    async def generate(
        self, context: GenerationContext, count: int | None = None
    ) -> GenerationResult:
        count = context.count if count is None else count
        table_name = context.table_name

        prompt = build_prompt(context, count)
        logger.debug(f"{table_name} prompt: {len(prompt)} chars, ~{len(prompt) // 4} tokens")
        if len(prompt) > LARGE_PROMPT_CHARS:
            logger.warning(
                f"{table_name} prompt is large ({len(prompt)} chars) - this may slow down generation"
            )

        last_error: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                content = await self._complete(prompt)
                rows = parse_rows(content, table_name)
                rows = rows[:count]
                return GenerationResult(
                    table_name=table_name,
                    rows=rows,
                    ids=extract_ids(rows, context.table),
                    source=self.source,
                )
            except RateLimitError as e:
                last_error = e
                wait = self.backoff_base * (2**attempt)
                logger.debug(f"Rate limited on {table_name}, waiting {wait:.1f}s...")
                await asyncio.sleep(wait)
            except Exception as e:
                last_error = e
                logger.debug(
                    f"{table_name} attempt {attempt + 1}/{self.max_retries} failed: {e}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.backoff_base)

        if isinstance(last_error, BatchGenerationError):
            raise last_error
        raise BatchGenerationError(table_name, str(last_error)) from last_error

    async def _complete(self, prompt: str) -> str:
        params: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "response_format": {"type": "json_object"},
        }
        if is_reasoning_model(self.model):
            params["max_completion_tokens"] = MAX_TOKENS
        else:
            params["temperature"] = 0.8
            params["max_tokens"] = MAX_TOKENS

        response = await self.client.chat.completions.create(**params)
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ValueError("Empty response from AI")
        return content


def parse_rows(content: str, table_name: str) -> list[dict[str, Any]]:
    """
    Extract the row array from a model response.

    Accepts {"data": [...]}, {"rows": [...]}, {"<table>": [...]} or a bare array.

    Raises:
        BatchGenerationError: If the document is not JSON or holds no array of objects
        EmptyGenerationError: If the array is empty
    """
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        raise BatchGenerationError(table_name, f"Response is not valid JSON: {e}") from e

    rows: Any = parsed
    if isinstance(parsed, dict):
        for key in ("data", "rows", table_name):
            if key in parsed:
                rows = parsed[key]
                break

    if not isinstance(rows, list):
        raise BatchGenerationError(table_name, "Response is not an array")
    if not rows:
        raise EmptyGenerationError(table_name)
    if not all(isinstance(row, dict) for row in rows):
        raise BatchGenerationError(table_name, "Response array must contain objects")

    return rows


def build_prompt(context: GenerationContext, count: int) -> str:
    """Build the generation prompt for a table."""
    table = context.table

    schema_lines = []
    for f in table.fields:
        desc = f"  - {f.name}: {f.type.value}{'[]' if f.is_array else ''}"
        if f.is_id:
            desc += " (PRIMARY KEY, auto-generated)"
        if f.is_unique:
            desc += " (UNIQUE)"
        if f.is_required:
            desc += " (REQUIRED)"
        if f.enum_name:
            enum_def = context.get_enum(f.enum_name)
            if enum_def:
                desc += f" (ENUM: {', '.join(enum_def.values)})"
        if f.relation:
            desc += f" (FK -> {f.relation.related_table}.{f.relation.referenced_field})"
        schema_lines.append(desc)

    relationship_context = ""
    if context.relations:
        relationship_context = "\n\nRelationships:\n"
        for rel in context.relations:
            relationship_context += f"- {rel.kind.value} with {rel.related_table}\n"
            ids = context.existing_ids.get(rel.related_table)
            if ids:
                preview = ", ".join(str(i) for i in ids[:10])
                more = "..." if len(ids) > 10 else ""
                relationship_context += f"  Available {rel.related_table} IDs: [{preview}{more}]\n"

    rules = [
        'Return ONLY a JSON object with a "data" key containing an array of records',
        "Respect data types strictly (dates as ISO strings, integers as numbers, booleans as true/false)",
        "Generate diverse, realistic data (varied names, locations, dates, etc.)",
        "Ensure temporal consistency (createdAt <= updatedAt if both exist)",
        "For foreign keys, use existing IDs from the available list above, "
        'or a placeholder like "{{Table_1}}" (1-based position) when none are listed',
        f"For IDs, use sequential integers starting from {context.first_id}",
        "For UUIDs, generate valid UUID v4 format",
        "For JSON fields, create valid nested JSON objects",
    ]
    for enum_def in context.enums:
        rules.append(
            f"For {enum_def.name} enum, ONLY use these values: [{', '.join(enum_def.values)}]"
        )
    if context.custom_prompt:
        rules.append(f"Additional context: {context.custom_prompt}")

    numbered_rules = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, start=1))
    example_row = ", ".join(f'"{f.name}": <value>' for f in table.fields)

    return (
        f'Generate {count} realistic records for the "{context.table_name}" table.\n\n'
        f"Schema:\n"
        f"{chr(10).join(schema_lines)}"
        f"{relationship_context}\n\n"
        f"Rules:\n"
        f"{numbered_rules}\n\n"
        f"Return format:\n"
        f'{{\n  "data": [\n    {{ {example_row} }},\n    ...\n  ]\n}}'
    )
