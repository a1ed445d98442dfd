"""Tests for CLI commands."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from seedsmith.cli.main import cli

SCHEMA = {
    "enums": [{"name": "Role", "values": ["ADMIN", "MEMBER"]}],
    "tables": [
        {
            "name": "Comment",
            "fields": [
                {"name": "id", "type": "integer", "id": True},
                {"name": "content", "type": "text"},
                {"name": "postId", "type": "integer", "relation": {"table": "Post"}},
                {
                    "name": "parentId",
                    "type": "integer",
                    "required": False,
                    "relation": {"table": "Comment"},
                },
            ],
        },
        {
            "name": "Post",
            "fields": [
                {"name": "id", "type": "integer", "id": True},
                {"name": "title", "type": "text"},
                {"name": "authorId", "type": "integer", "relation": {"table": "User"}},
            ],
        },
        {
            "name": "User",
            "fields": [
                {"name": "id", "type": "integer", "id": True},
                {"name": "email", "type": "text", "unique": True},
                {"name": "role", "type": "enum", "enum": "Role"},
            ],
        },
    ],
}


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    (tmp_path / "schema.json").write_text(json.dumps(SCHEMA))
    return tmp_path


def test_version():
    """Test --version flag."""
    result = CliRunner().invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert "version" in result.output


def test_init_writes_config(workdir: Path):
    """Test init creates a loadable seedsmith.toml."""
    runner = CliRunner()

    result = runner.invoke(cli, ["init"])

    assert result.exit_code == 0
    assert (workdir / "seedsmith.toml").exists()
    assert 'schema_path = "schema.json"' in (workdir / "seedsmith.toml").read_text()


def test_init_refuses_to_overwrite(workdir: Path):
    """Test init keeps an existing config unless --force is given."""
    runner = CliRunner()
    runner.invoke(cli, ["init"])

    result = runner.invoke(cli, ["init"])
    forced = runner.invoke(cli, ["init", "--force"])

    assert result.exit_code == 1
    assert "already exists" in result.output
    assert forced.exit_code == 0


def test_plan_prints_order_and_levels(workdir: Path):
    """Test plan shows insert order, levels and estimate."""
    result = CliRunner().invoke(cli, ["plan", "--schema", "schema.json", "--count", "40"])

    assert result.exit_code == 0
    assert "Insert order (3 tables):" in result.output
    assert "1. User" in result.output
    assert "2. Post" in result.output
    assert "3. Comment" in result.output
    assert "Levels (3):" in result.output
    assert "Circular" not in result.output
    assert "Estimated generation time: ~4s (40 rows per table)" in result.output


def test_plan_table_filter(workdir: Path):
    """Test --tables restricts the plan."""
    result = CliRunner().invoke(cli, ["plan", "--schema", "schema.json", "--tables", "User,Post"])

    assert result.exit_code == 0
    assert "Insert order (2 tables):" in result.output


def test_plan_unknown_table(workdir: Path):
    """Test unknown tables exit with an error."""
    result = CliRunner().invoke(cli, ["plan", "--schema", "schema.json", "--tables", "Nope"])

    assert result.exit_code == 1
    assert "Table 'Nope' not found" in result.output


def test_generate_dry_run_with_output(workdir: Path):
    """Test generating with faker into a seed file."""
    result = CliRunner().invoke(
        cli,
        [
            "generate",
            "--schema",
            "schema.json",
            "--count",
            "4",
            "--provider",
            "faker",
            "--output",
            "seed.json",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Total: 12 rows generated" in result.output
    document = json.loads((workdir / "seed.json").read_text())
    assert document["order"] == ["User", "Post", "Comment"]
    user_ids = {row["id"] for row in document["tables"]["User"]}
    assert all(row["authorId"] in user_ids for row in document["tables"]["Post"])
    assert all(row["role"] in ("ADMIN", "MEMBER") for row in document["tables"]["User"])


def test_generate_openai_without_key_uses_faker(workdir: Path):
    """Test a missing API key degrades to faker with a warning."""
    result = CliRunner().invoke(
        cli, ["generate", "--schema", "schema.json", "--count", "2", "--dry-run"]
    )

    assert result.exit_code == 0, result.output
    assert "Warning: OpenAI API key not found" in result.output
    assert "Total: 6 rows generated" in result.output


def test_generate_uses_config_file(workdir: Path):
    """Test schema path and counts come from seedsmith.toml."""
    (workdir / "seedsmith.toml").write_text(
        'schema_path = "schema.json"\n\n[ai]\nprovider = "faker"\n\n'
        "[defaults]\ncount = 2\n\n[tables.Comment]\nskip = true\n"
    )

    result = CliRunner().invoke(cli, ["generate", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "Total: 4 rows generated" in result.output
    assert "Comment" not in result.output.split("Summary:")[1]


def test_generate_without_schema_or_connection(workdir: Path):
    """Test a helpful error when nothing describes the schema."""
    result = CliRunner().invoke(cli, ["generate", "--dry-run", "--provider", "faker"])

    assert result.exit_code == 1
    assert "No schema given" in result.output


def test_generate_requires_connection_unless_dry_run(workdir: Path):
    """Test inserting without a connection fails."""
    result = CliRunner().invoke(cli, ["generate", "--schema", "schema.json", "--provider", "faker"])

    assert result.exit_code == 1
    assert "No database connection" in result.output


def test_generate_unknown_provider(workdir: Path):
    """Test unknown generator names exit with an error."""
    result = CliRunner().invoke(
        cli, ["generate", "--schema", "schema.json", "--dry-run", "--provider", "nope"]
    )

    assert result.exit_code == 1
    assert "Unknown generator 'nope'" in result.output
