"""
Create the schema on the configured database (SQLite file or PostgreSQL).

Run locally:
  python -m partstore.scripts.init_db

Uses DATABASE_URL from the environment (dotenv supported by core.config).
"""

from __future__ import annotations

import asyncio

from partstore.core.config import settings
from partstore.core.logging_config import configure_logging
from partstore.db.backend import create_backend


async def main() -> None:
    configure_logging(settings.log_level)
    backend = create_backend(settings.database_url, echo=settings.database_echo)
    try:
        await backend.create_schema()
        print(f"Schema ready on {backend.engine.url.render_as_string(hide_password=True)}")
    finally:
        await backend.dispose()


if __name__ == "__main__":
    asyncio.run(main())
