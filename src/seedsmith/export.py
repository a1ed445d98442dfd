"""Seed file export (JSON, CSV)."""

import csv
import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from seedsmith.backends.base import insert_columns
from seedsmith.models import Seeds, json_default

logger = logging.getLogger(__name__)


def build_seed_document(
    seeds: Seeds, order: Sequence[str], metadata: dict[str, Any] | None = None
) -> dict[str, Any]:
    """
    Seed file document with tables in insert order.

    Tables present in seeds but missing from order are appended after it.
    """
    ordered = [name for name in order if name in seeds]
    ordered += [name for name in seeds.tables() if name not in ordered]
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "order": ordered,
        "metadata": metadata or {},
        "tables": {name: seeds.rows(name) for name in ordered},
    }


def export_seed_file(
    seeds: Seeds,
    order: Sequence[str],
    path: Path | str,
    metadata: dict[str, Any] | None = None,
) -> Path:
    """
    Write generated rows to a JSON seed file.

    Args:
        seeds: Generated rows per table
        order: Insert order (dependencies first)
        path: Output file (parent directories are created)
        metadata: Extra values stored under "metadata"

    Returns:
        Path of the written file
    """
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    document = build_seed_document(seeds, order, metadata)
    output.write_text(json.dumps(document, indent=2, default=json_default))
    total = sum(len(rows) for rows in document["tables"].values())
    logger.info(f"Wrote {total} rows across {len(document['order'])} tables to {output}")
    return output


def export_csv(seeds: Seeds, table_name: str, path: Path | str) -> Path:
    """
    Write one table's rows to CSV (header from the union of columns).

    Raises:
        KeyError: If the table has no seed data
    """
    if table_name not in seeds:
        raise KeyError(f"No table '{table_name}' in seeds")

    rows = seeds.rows(table_name)
    output = Path(path)
    with output.open("w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=insert_columns(rows))
        writer.writeheader()
        for row in rows:
            writer.writerow(
                {
                    key: json.dumps(value, default=json_default)
                    if isinstance(value, (dict, list))
                    else value
                    for key, value in row.items()
                }
            )
    return output
