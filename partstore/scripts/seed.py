"""
Insert the example part (no locations, no stock) if it is not there yet.

Run locally:
  python -m partstore.scripts.seed
"""

from __future__ import annotations

import asyncio

from partstore.core.config import settings
from partstore.core.logging_config import configure_logging
from partstore.db.backend import create_backend
from partstore.db.part import Part

EXAMPLE_PART = {"part_number": "TAN-000623", "description": "Eksempel del", "min_qty": 5}


async def main() -> None:
    configure_logging(settings.log_level)
    backend = create_backend(settings.database_url, echo=settings.database_echo)
    try:
        await backend.create_schema()
        res = await backend.upsert_ignore(Part.__table__, EXAMPLE_PART, ["part_number"])
        if res.rowcount:
            print(f"Seeded part {EXAMPLE_PART['part_number']}")
        else:
            print(f"Part {EXAMPLE_PART['part_number']} already present, nothing to do")
    finally:
        await backend.dispose()


if __name__ == "__main__":
    asyncio.run(main())
