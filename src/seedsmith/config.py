"""
Configuration management for seedsmith.

Loads and validates configuration from seedsmith.toml files using Pydantic.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from seedsmith.exceptions import ConfigError
from seedsmith.models import TableOptions

CONFIG_FILENAME = "seedsmith.toml"


class DatabaseConfig(BaseSettings):
    """Database connection configuration."""

    model_config = SettingsConfigDict(env_prefix="SEEDSMITH_DATABASE_")

    url: str | None = Field(default=None, description="PostgreSQL connection URL")
    schema_name: str = Field(default="public", description="Schema to introspect and insert into")
    batch_size: int = Field(default=500, ge=1, description="Rows per INSERT statement")


class AIConfig(BaseSettings):
    """Primary (AI) generator configuration."""

    model_config = SettingsConfigDict(env_prefix="SEEDSMITH_AI_")

    provider: str = Field(default="openai", description="Registered generator name")
    model: str = Field(default="gpt-4o-mini", description="Model used for generation")
    api_key: str | None = Field(default=None, description="Provider API key")
    max_retries: int = Field(default=3, ge=1, description="Attempts per generation request")
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")


class DefaultsConfig(BaseSettings):
    """Run defaults applied to every table."""

    model_config = SettingsConfigDict(env_prefix="SEEDSMITH_DEFAULTS_")

    count: int = Field(default=50, ge=0, description="Rows generated per table")
    parallel: int = Field(default=5, ge=1, description="Concurrent batch requests")
    retry_delay: float = Field(default=2.0, ge=0, description="Seconds before a batch retry")


class TableConfig(BaseSettings):
    """Per-table overrides ([tables.<name>])."""

    model_config = SettingsConfigDict(env_prefix="SEEDSMITH_TABLE_")

    count: int | None = Field(default=None, ge=0, description="Row count override")
    ai_prompt: str | None = Field(default=None, description="Extra instructions for the table")
    skip: bool = Field(default=False, description="Exclude the table from the run")

    def to_options(self) -> TableOptions:
        return TableOptions(count=self.count, custom_prompt=self.ai_prompt, skip=self.skip)


class Config(BaseSettings):
    """Main configuration for seedsmith."""

    model_config = SettingsConfigDict(env_prefix="SEEDSMITH_")

    schema_path: str | None = Field(default=None, description="Schema file (.json or .toml)")
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    tables: dict[str, TableConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _apply_environment(self) -> Config:
        if self.database.url is None and os.environ.get("DATABASE_URL"):
            self.database.url = os.environ["DATABASE_URL"]
        if self.ai.api_key is None and os.environ.get("OPENAI_API_KEY"):
            self.ai.api_key = os.environ["OPENAI_API_KEY"]
        return self

    @classmethod
    def from_toml(cls, path: Path | str) -> Config:
        """
        Load configuration from TOML file.

        Args:
            path: Path to seedsmith.toml file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigError: If config file is invalid
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            return cls(**data)
        except (tomllib.TOMLDecodeError, ValidationError) as e:
            raise ConfigError(f"Invalid config file {config_path}: {e}") from e

    @classmethod
    def find_and_load(cls, start_dir: Path | None = None) -> Config:
        """
        Find and load configuration from seedsmith.toml.

        Searches for seedsmith.toml starting from start_dir and walking up
        parent directories until found or reaching filesystem root.

        Args:
            start_dir: Directory to start search (defaults to current directory)

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If no config file found
        """
        if start_dir is None:
            start_dir = Path.cwd()

        current = Path(start_dir).resolve()

        # Walk up directory tree
        while True:
            config_path = current / CONFIG_FILENAME
            if config_path.exists():
                return cls.from_toml(config_path)

            parent = current.parent
            if parent == current:
                break
            current = parent

        raise FileNotFoundError(
            f"No {CONFIG_FILENAME} found in {start_dir} or parent directories. "
            f"Run 'seedsmith init' to create one."
        )

    def to_toml(self, path: Path | str) -> None:
        """
        Write configuration to TOML file.

        API keys are never written; set OPENAI_API_KEY instead.

        Args:
            path: Path to write seedsmith.toml
        """
        config_path = Path(path)

        lines = ["# seedsmith configuration", ""]
        if self.schema_path:
            lines += [f'schema_path = "{self.schema_path}"', ""]

        lines += ["[database]"]
        if self.database.url:
            lines.append(f'url = "{self.database.url}"')
        lines += [
            f'schema_name = "{self.database.schema_name}"',
            f"batch_size = {self.database.batch_size}",
            "",
            "[ai]",
            f'provider = "{self.ai.provider}"',
            f'model = "{self.ai.model}"',
            f"max_retries = {self.ai.max_retries}",
            f"timeout = {self.ai.timeout}",
            "",
            "[defaults]",
            f"count = {self.defaults.count}",
            f"parallel = {self.defaults.parallel}",
            f"retry_delay = {self.defaults.retry_delay}",
        ]

        for name, table in self.tables.items():
            lines += ["", f"[tables.{name}]"]
            if table.count is not None:
                lines.append(f"count = {table.count}")
            if table.ai_prompt:
                lines.append(f'ai_prompt = "{table.ai_prompt}"')
            if table.skip:
                lines.append("skip = true")

        config_path.write_text("\n".join(lines) + "\n")

    def count_for(self, table: str) -> int:
        """Row count for a table: its override, else the default."""
        table_config = self.tables.get(table)
        if table_config is not None and table_config.count is not None:
            return table_config.count
        return self.defaults.count

    def table_options(self) -> dict[str, TableOptions]:
        return {name: table.to_options() for name, table in self.tables.items()}


# Default configuration instance
DEFAULT_CONFIG = Config()
