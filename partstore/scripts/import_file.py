"""
Import parts/locations/quantities from a CSV or XLSX file.

Run locally:
  python -m partstore.scripts.import_file inventory.xlsx            # preview only
  python -m partstore.scripts.import_file inventory.xlsx --apply    # write
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from partstore.core.config import settings
from partstore.core.logging_config import configure_logging
from partstore.services import build_services


def _print_preview(result: dict) -> None:
    print("Mapping:", result["mapping"]["columns"], "(header row)" if result["mapping"]["has_header"] else "(no header)")
    for row in result["rows"]:
        extra = f" errors={row['errors']}" if row["errors"] else ""
        print(f"  row {row['row_number']}: {row['action']:<7} {row['part_number']}{extra}")
    print("Summary:", result["summary"])


def _print_report(result: dict) -> None:
    for row in result["rows"]:
        if row["status"] != "ok":
            print(f"  row {row['row_number']}: {row['status']} {row['part_number']} ({row['reason']})")
    print("Counts:", result["counts"])


async def main() -> None:
    parser = argparse.ArgumentParser(description="Import a spreadsheet into the stock ledger")
    parser.add_argument("path", type=Path)
    parser.add_argument("--apply", action="store_true", help="write the rows (default is a dry run)")
    parser.add_argument("--user", default=None, help="username recorded on quantity corrections")
    args = parser.parse_args()

    configure_logging(settings.log_level)
    services = build_services(settings)
    try:
        await services.backend.create_schema()
        result = await services.reconciler.run(
            args.path.read_bytes(), args.path.name, apply=args.apply, username=args.user
        )
    finally:
        await services.close()

    if args.apply:
        _print_report(result)
    else:
        _print_preview(result)


if __name__ == "__main__":
    asyncio.run(main())
