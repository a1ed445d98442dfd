"""Custom exceptions with helpful error messages."""


class SeedsmithError(Exception):
    """Base exception for seedsmith errors."""

    pass


class CircularDependencyWarning(UserWarning):
    """Circular dependency detected; generation continues with a best-effort order."""

    pass


class SchemaLoadError(SeedsmithError):
    """Schema document could not be read or validated."""

    def __init__(self, source: str, reason: str):
        self.source = source
        super().__init__(
            f"Could not load schema from '{source}': {reason}\n\n"
            f"Suggestions:\n"
            f"1. Check the file exists and is valid JSON or TOML\n"
            f"2. Every table needs a 'name' and a 'fields' list\n"
            f"3. Field types must be one of: text, integer, big_integer, float, "
            f"decimal, boolean, timestamp, date, time, json, binary, uuid, enum"
        )


class SchemaNotFoundError(SeedsmithError):
    """Schema does not exist in the database."""

    def __init__(self, schema: str):
        self.schema = schema
        super().__init__(
            f"Schema '{schema}' not found in database.\n\n"
            f"Suggestions:\n"
            f"1. Check the schema name (database.schema_name in seedsmith.toml)\n"
            f"2. Ensure the schema exists: CREATE SCHEMA {schema};\n"
            f"3. Pass a schema file with --schema instead"
        )


class UnknownTableError(SeedsmithError):
    """Table is not part of the schema."""

    def __init__(self, table: str, available: list[str]):
        self.table = table
        available_str = ", ".join(sorted(available)) or "(none)"
        super().__init__(
            f"Table '{table}' not found in schema.\n\n"
            f"Available tables: {available_str}"
        )


class IdentifierMappingError(SeedsmithError):
    """Identifiers for a table were recorded twice in one run."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(
            f"Identifiers for table '{table}' were already recorded in this run. "
            f"Each table completes exactly once."
        )


class BatchGenerationError(SeedsmithError):
    """A generation request failed (network, malformed response, ...)."""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(f"Generation failed for '{table}': {message}")


class EmptyGenerationError(BatchGenerationError):
    """Generator returned zero rows, handled like any other batch failure."""

    def __init__(self, table: str):
        super().__init__(table, "Generated 0 rows")


class TableGenerationExhaustedError(SeedsmithError):
    """Primary and fallback generation both failed for a table."""

    def __init__(self, table: str, cause: Exception):
        self.table = table
        super().__init__(
            f"Could not generate rows for table '{table}': "
            f"fallback generator failed with {cause!r}.\n\n"
            f"Suggestions:\n"
            f"1. Check the table's field types are supported by the fallback generator\n"
            f"2. Provide a custom generator with register_generator()\n"
            f"3. Skip the table in seedsmith.toml: [tables.{table}] skip = true"
        )


class ReferentialIntegrityError(SeedsmithError):
    """Resolved rows still reference identifiers that do not exist."""

    def __init__(self, table: str, violations: list):
        self.table = table
        self.violations = violations
        preview = "\n".join(f"  - {v}" for v in violations[:5])
        more = f"\n  ... and {len(violations) - 5} more" if len(violations) > 5 else ""
        super().__init__(
            f"Referential integrity check failed for '{table}' "
            f"({len(violations)} violations):\n{preview}{more}\n\n"
            f"Suggestions:\n"
            f"1. Ensure referenced tables are part of the run\n"
            f"2. Check for circular dependencies (seedsmith plan)\n"
            f"3. Disable strict integrity to log violations instead"
        )


class PersistenceError(SeedsmithError):
    """Database error while persisting a table; its transaction was rolled back."""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(
            f"Failed to insert rows into '{table}' (transaction rolled back): {message}"
        )


class ConnectionUnavailableError(SeedsmithError):
    """Destination database cannot be reached."""

    def __init__(self, target: str, message: str):
        super().__init__(
            f"Could not connect to database '{target}': {message}\n\n"
            f"Suggestions:\n"
            f"1. Check DATABASE_URL or the --connection flag\n"
            f"2. Ensure the database server is running\n"
            f"3. Use --dry-run to generate without a database"
        )


class ConfigError(SeedsmithError):
    """Configuration is missing a required value or is invalid."""

    pass
