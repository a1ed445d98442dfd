"""Tests for seed data export functionality (JSON, CSV)."""

import csv
import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from uuid import UUID

import pytest

from seedsmith.export import export_csv, export_seed_file
from seedsmith.models import Seeds


@pytest.fixture
def seeds() -> Seeds:
    seeds = Seeds()
    seeds.add_table("Post", [{"id": 1, "authorId": 1, "meta": {"draft": True}}])
    seeds.add_table(
        "User",
        [
            {
                "id": 1,
                "uuid": UUID("12345678-1234-4234-8234-123456789abc"),
                "balance": Decimal("10.50"),
                "joined": datetime(2024, 5, 1, 12, 0),
            }
        ],
    )
    return seeds


def test_export_seed_file_in_insert_order(seeds: Seeds, tmp_path: Path):
    """Test the seed file lists tables in insert order."""
    output = export_seed_file(seeds, ["User", "Post"], tmp_path / "out" / "seed.json")

    document = json.loads(output.read_text())

    assert document["order"] == ["User", "Post"]
    assert list(document["tables"]) == ["User", "Post"]
    assert document["tables"]["User"][0]["uuid"] == "12345678-1234-4234-8234-123456789abc"
    assert document["tables"]["User"][0]["balance"] == "10.50"
    assert document["tables"]["User"][0]["joined"] == "2024-05-01T12:00:00"
    assert "generated_at" in document


def test_export_seed_file_appends_unordered_tables(seeds: Seeds, tmp_path: Path):
    """Test tables missing from the order still get exported."""
    output = export_seed_file(seeds, ["User"], tmp_path / "seed.json", metadata={"run": 1})

    document = json.loads(output.read_text())

    assert document["order"] == ["User", "Post"]
    assert document["metadata"] == {"run": 1}


def test_seeds_to_json_round_trip(seeds: Seeds, tmp_path: Path):
    """Test seeds written with to_json load back with from_json."""
    path = tmp_path / "seeds.json"
    seeds.to_json(path)

    loaded = Seeds.from_json(path)

    assert loaded.tables() == ["Post", "User"]
    assert loaded.Post[0].meta == {"draft": True}


def test_export_csv(seeds: Seeds, tmp_path: Path):
    """Test exporting a single table to CSV."""
    output = export_csv(seeds, "Post", tmp_path / "posts.csv")

    with output.open() as f:
        rows = list(csv.DictReader(f))

    assert rows == [{"id": "1", "authorId": "1", "meta": '{"draft": true}'}]


def test_export_csv_unknown_table(seeds: Seeds, tmp_path: Path):
    """Test exporting a table without data."""
    with pytest.raises(KeyError):
        export_csv(seeds, "Comment", tmp_path / "c.csv")
