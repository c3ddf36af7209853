"""
Seed generation script for the demo schema in ``migrations/``.

Emits deterministic pseudo-random authors (UUID ids) with nested posts
(auto-increment ids) as a JSON seed file, and exposes the matching table
registry for ``handlr seed``:

    python -m scripts.generate_seed --authors 50 --output seeds/demo.json
    handlr seed seeds/demo.json --tables scripts.generate_seed:tables --fresh
"""

from __future__ import annotations

import json
import random
import sys
import time
from pathlib import Path
from typing import Any, Dict, List

import typer

from handlr.database import CastKind, DbInterface, RecordSchema, Table

app = typer.Typer(help="Generate synthetic seed data for the demo schema.")

AUTHOR = RecordSchema(
    name="author",
    properties=("name", "email", "active"),
    casts={"active": CastKind.BOOL},
    uses_uuid=True,
)

POST = RecordSchema(
    name="post",
    properties=("author_id", "title", "views", "score"),
    casts={"views": CastKind.INT, "score": CastKind.FLOAT},
    uses_uuid=False,
    uuid_columns=("author_id",),
)

_FIRST_NAMES = ["ada", "grace", "alan", "edsger", "barbara", "ken", "dennis", "margaret"]
_TOPICS = ["indexes", "vacuum", "uuids", "pagination", "joins", "locks", "replication"]


def tables(db: DbInterface) -> Dict[str, Table]:
    """Table registry for the demo schema."""
    return {
        "authors": Table(db, "authors", AUTHOR),
        "posts": Table(db, "posts", POST),
    }


def _generate_seed(authors: int, posts_per_author: int, seed: int) -> Dict[str, List[Dict[str, Any]]]:
    rng = random.Random(seed)
    rows: List[Dict[str, Any]] = []
    for i in range(authors):
        name = f"{rng.choice(_FIRST_NAMES)}-{i}"
        posts = [
            {
                "title": f"Notes on {rng.choice(_TOPICS)} #{j}",
                "views": rng.randint(0, 10_000),
                "score": round(rng.uniform(0, 5), 2),
            }
            for j in range(posts_per_author)
        ]
        rows.append(
            {
                "name": name,
                "email": f"{name}@example.com",
                "active": rng.choice([True, False]),
                "_relations": {"posts": posts},
            }
        )
    return {"authors": rows}


@app.command()
def main(
    authors: int = typer.Option(
        10,
        "--authors",
        "-a",
        help="Number of authors to generate.",
    ),
    posts_per_author: int = typer.Option(
        3,
        "--posts-per-author",
        "-p",
        help="Number of posts nested under each author.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    output: Path = typer.Option(
        Path("seeds/demo.json"),
        "--output",
        "-o",
        help="JSON output path.",
    ),
) -> None:
    """
    Generate a JSON seed file for the demo schema.
    """
    start = time.perf_counter()
    data = _generate_seed(authors, posts_per_author, seed)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(data, indent=2), encoding="utf-8")
    duration = time.perf_counter() - start
    typer.echo(
        f"Wrote {authors} authors / {authors * posts_per_author} posts -> {output} "
        f"in {duration:.2f}s"
    )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
