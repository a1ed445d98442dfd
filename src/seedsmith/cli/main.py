"""CLI commands for seedsmith."""

import asyncio
import logging
import sys
from pathlib import Path

import click
import psycopg

from seedsmith.backends.postgres import PostgresPersister, mask_conninfo
from seedsmith.config import CONFIG_FILENAME, Config, DatabaseConfig
from seedsmith.dependency import (
    build_graph,
    estimate_generation_time,
    group_by_level,
    topological_sort,
)
from seedsmith.exceptions import ConfigError, SeedsmithError
from seedsmith.export import export_seed_file
from seedsmith.generators.faker_generator import FakerRowGenerator
from seedsmith.generators.registry import create_generator
from seedsmith.introspection import SchemaIntrospector
from seedsmith.models import ParsedSchema, RunReport
from seedsmith.orchestrator import SeedOrchestrator
from seedsmith.schema_file import load_schema


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _split_tables(tables: str | None) -> list[str] | None:
    if not tables:
        return None
    return [name.strip() for name in tables.split(",") if name.strip()]


def _load_config(config_path: str | None) -> Config:
    if config_path:
        return Config.from_toml(config_path)
    try:
        return Config.find_and_load()
    except FileNotFoundError:
        return Config()


async def _introspect(conninfo: str, schema_name: str) -> ParsedSchema:
    try:
        async with await psycopg.AsyncConnection.connect(conninfo) as conn:
            return await SchemaIntrospector(conn, schema_name).load()
    except psycopg.Error as e:
        raise SeedsmithError(f"Could not introspect {mask_conninfo(conninfo)}: {e}") from e


def _load_tables(schema: ParsedSchema, tables: list[str] | None) -> ParsedSchema:
    if tables is None:
        return schema
    return ParsedSchema(tables=schema.select(tables), enums=schema.enums, source=schema.source)


def _build_primary(config: Config, provider: str):
    if provider == "faker":
        return None
    if provider == "openai":
        try:
            return create_generator(
                "openai",
                api_key=config.ai.api_key,
                model=config.ai.model,
                max_retries=config.ai.max_retries,
                timeout=config.ai.timeout,
            )
        except ConfigError as e:
            click.echo(f"Warning: {e} Using faker for all tables.", err=True)
            return None
    return create_generator(provider)


def _print_summary(report: RunReport, dry_run: bool) -> None:
    click.echo("")
    click.echo("Summary:")
    for name in report.order:
        if name not in report.seeds:
            continue
        line = f"  {name}: {len(report.seeds.rows(name))} generated"
        insert_result = report.insert_results.get(name)
        if insert_result is not None:
            line += f", {insert_result.inserted} inserted"
            if insert_result.failed:
                line += f", {insert_result.failed} skipped"
        if name in report.fallback_tables:
            line += " (fallback)"
        if name in report.violations:
            line += f" [{len(report.violations[name])} integrity violations]"
        click.echo(line)

    total = f"Total: {report.total_generated} rows generated"
    if not dry_run:
        total += f", {report.total_inserted} inserted"
    click.echo(total)


@click.group()
@click.version_option(package_name="seedsmith")
def cli() -> None:
    """seedsmith - dependency-aware test data generation for relational schemas."""
    pass


@cli.command()
@click.option("--path", default=CONFIG_FILENAME, help=f"Config file to write (default: {CONFIG_FILENAME})")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init(path: str, force: bool) -> None:
    """Write a starter seedsmith.toml."""
    config_path = Path(path)
    if config_path.exists() and not force:
        click.echo(f"Error: {config_path} already exists (use --force to overwrite)", err=True)
        sys.exit(1)

    config = Config(
        schema_path="schema.json",
        database=DatabaseConfig(url="postgresql://localhost/myproject_dev"),
    )
    config.to_toml(config_path)
    click.echo(f"✓ Created {config_path}")


@cli.command()
@click.option("--schema", "schema_path", type=click.Path(), help="Schema file (.json or .toml)")
@click.option("--tables", help="Comma-separated tables to include")
@click.option("--count", type=int, help="Rows per table for the time estimate")
@click.option("--config", "config_path", type=click.Path(), help="Config file")
def plan(
    schema_path: str | None, tables: str | None, count: int | None, config_path: str | None
) -> None:
    """Show insert order, generation levels and cycles."""
    try:
        config = _load_config(config_path)
        schema_path = schema_path or config.schema_path
        if not schema_path:
            raise ConfigError("No schema given. Pass --schema or set schema_path in seedsmith.toml.")
        schema = _load_tables(load_schema(schema_path), _split_tables(tables))
    except (SeedsmithError, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    graph = build_graph(schema.tables)
    topo = topological_sort(graph)
    levels = group_by_level(schema.tables, graph)

    click.echo(f"Insert order ({len(topo.order)} tables):")
    for position, name in enumerate(topo.order, start=1):
        click.echo(f"  {position}. {name}")

    click.echo("")
    click.echo(f"Levels ({len(levels)}):")
    for level_index, level in enumerate(levels, start=1):
        click.echo(f"  {level_index}: {', '.join(level)}")

    if topo.has_cycles:
        click.echo("")
        click.echo("⚠ Circular dependencies:")
        for cycle in topo.cycles:
            click.echo(f"  {' -> '.join(cycle)} -> {cycle[0]}")

    rows = count if count is not None else config.defaults.count
    estimate = estimate_generation_time(len(topo.order), rows, config.defaults.parallel)
    click.echo("")
    click.echo(f"Estimated generation time: ~{estimate}s ({rows} rows per table)")


@cli.command()
@click.option("--schema", "schema_path", type=click.Path(), help="Schema file (.json or .toml)")
@click.option("--count", type=int, help="Rows per table (overrides config)")
@click.option("--tables", help="Comma-separated tables to include")
@click.option("--connection", help="PostgreSQL connection URL (overrides DATABASE_URL)")
@click.option("--dry-run", is_flag=True, help="Generate without inserting")
@click.option("--output", type=click.Path(), help="Write a JSON seed file instead of inserting")
@click.option("--provider", help="Primary generator (openai, faker or a registered name)")
@click.option("--config", "config_path", type=click.Path(), help="Config file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def generate(
    schema_path: str | None,
    count: int | None,
    tables: str | None,
    connection: str | None,
    dry_run: bool,
    output: str | None,
    provider: str | None,
    config_path: str | None,
    verbose: bool,
) -> None:
    """Generate seed data and insert it (or write it to a file)."""
    _configure_logging(verbose)
    try:
        config = _load_config(config_path)
        report = asyncio.run(
            _generate(
                config,
                schema_path=schema_path or config.schema_path,
                count=count,
                tables=_split_tables(tables),
                conninfo=connection or config.database.url,
                dry_run=dry_run or output is not None,
                output=output,
                provider=provider or config.ai.provider,
            )
        )
    except (SeedsmithError, FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    _print_summary(report, dry_run=dry_run or output is not None)
    if output:
        click.echo(f"✓ Seed file written to {output}")


async def _generate(
    config: Config,
    schema_path: str | None,
    count: int | None,
    tables: list[str] | None,
    conninfo: str | None,
    dry_run: bool,
    output: str | None,
    provider: str,
) -> RunReport:
    if schema_path:
        schema = load_schema(schema_path)
    elif conninfo:
        schema = await _introspect(conninfo, config.database.schema_name)
    else:
        raise ConfigError(
            "No schema given. Pass --schema, set schema_path in seedsmith.toml "
            "or provide a database connection to introspect."
        )
    schema = _load_tables(schema, tables)

    if not dry_run and not conninfo:
        raise ConfigError(
            "No database connection. Pass --connection, set DATABASE_URL or use --dry-run."
        )

    orchestrator_kwargs = dict(
        tables=schema.tables,
        enums=schema.enums,
        primary=_build_primary(config, provider),
        fallback=FakerRowGenerator(),
        parallel=config.defaults.parallel,
        insert_batch_size=config.database.batch_size,
        retry_delay=config.defaults.retry_delay,
        table_options=config.table_options(),
        default_count=config.defaults.count,
    )
    counts = {t.name: count for t in schema.tables} if count is not None else None

    if dry_run:
        report = await SeedOrchestrator(**orchestrator_kwargs).run(counts, dry_run=True)
    else:
        schema_name = None if config.database.schema_name == "public" else config.database.schema_name
        async with PostgresPersister(conninfo, schema=schema_name) as persister:
            orchestrator = SeedOrchestrator(persister=persister, **orchestrator_kwargs)
            report = await orchestrator.run(counts)

    if output:
        export_seed_file(
            report.seeds,
            report.order,
            output,
            metadata={"source": schema.source, "fallback_tables": report.fallback_tables},
        )
    return report


if __name__ == "__main__":
    cli()
