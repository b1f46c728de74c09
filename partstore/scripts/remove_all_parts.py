"""
Delete ALL parts together with their aliases, stock rows and transaction history.
Locations are kept.

Run locally:
  python -m partstore.scripts.remove_all_parts
"""

from __future__ import annotations

import asyncio

from sqlalchemy import delete

from partstore.core.config import settings
from partstore.core.logging_config import configure_logging
from partstore.db import Part, PartAlias, StockEntry, Transaction
from partstore.db.backend import create_backend


async def main() -> None:
    configure_logging(settings.log_level)
    backend = create_backend(settings.database_url, echo=settings.database_echo)
    try:
        async with backend.transaction() as uow:
            # Children first (FK)
            tx = await uow.run(delete(Transaction.__table__))
            stock = await uow.run(delete(StockEntry.__table__))
            aliases = await uow.run(delete(PartAlias.__table__))
            parts = await uow.run(delete(Part.__table__))
        print(
            f"Deleted transactions: {tx.rowcount}, stock rows: {stock.rowcount}, "
            f"aliases: {aliases.rowcount}, parts: {parts.rowcount}"
        )
    finally:
        await backend.dispose()


if __name__ == "__main__":
    asyncio.run(main())
