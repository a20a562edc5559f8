from __future__ import annotations

import argparse
import asyncio
import csv
import logging
from pathlib import Path
from typing import Iterable

from attendbot.core.config import settings
from attendbot.core.logging import setup_logging
from attendbot.db.session import dispose_engine, init_engine, unit_of_work
from attendbot.services.catalog.service import CourseCatalog

log = logging.getLogger(__name__)


def parse_course_rows(rows: Iterable[list[str]]) -> list[tuple[int, str, str]]:
    """``ordinal,name,external_id`` rows. A header row and blank lines are skipped."""
    out: list[tuple[int, str, str]] = []
    seen: set[int] = set()
    for lineno, row in enumerate(rows, start=1):
        cells = [c.strip() for c in row]
        if not any(cells):
            continue
        if len(cells) < 3:
            raise SystemExit(f"line {lineno}: expected ordinal,name,external_id")
        ordinal, name, external_id = cells[:3]
        if not ordinal.isdigit():
            if lineno == 1:
                continue
            raise SystemExit(f"line {lineno}: ordinal must be a number, got {ordinal!r}")
        if not name or not external_id:
            raise SystemExit(f"line {lineno}: name and external_id are required")
        n = int(ordinal)
        if n in seen:
            raise SystemExit(f"line {lineno}: duplicate ordinal {n}")
        seen.add(n)
        out.append((n, name, external_id))
    return out


async def main() -> None:
    parser = argparse.ArgumentParser(description="Load the course list into the courses table")
    parser.add_argument("csv_path", type=Path, help="CSV file with ordinal,name,external_id rows")
    args = parser.parse_args()

    setup_logging()
    with args.csv_path.open(newline="", encoding="utf-8") as f:
        courses = parse_course_rows(csv.reader(f))

    init_engine(settings.database_url)
    catalog = CourseCatalog()
    try:
        async with unit_of_work() as store:
            for ordinal, name, external_id in courses:
                await catalog.upsert(store, ordinal=ordinal, name=name, external_id=external_id)
    finally:
        await dispose_engine()

    log.info("courses_populated count=%s", len(courses))
    print(f"Loaded {len(courses)} courses.")


if __name__ == "__main__":
    asyncio.run(main())
