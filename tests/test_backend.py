import pytest
from sqlalchemy import select

from partstore.core.errors import ConflictError, StorageError
from partstore.db import Location, Part
from partstore.db.backend import PostgresBackend, SQLiteBackend, create_backend, normalize_database_url

parts = Part.__table__
locations = Location.__table__


async def test_run_get_all_with_text_and_core_statements(backend):
    res = await backend.run(
        "INSERT INTO parts (part_number, description, min_qty) VALUES (:pn, :d, :m)",
        {"pn": "P-1", "d": "Bolt", "m": 2},
    )
    assert res.rowcount == 1

    core = await backend.run(parts.insert().values(part_number="P-2", description="Nut", min_qty=0))
    assert core.affected_id is not None

    row = await backend.get("SELECT part_number, min_qty FROM parts WHERE part_number = :pn", {"pn": "P-1"})
    assert row == {"part_number": "P-1", "min_qty": 2}
    assert await backend.get(select(parts).where(parts.c.part_number == "missing")) is None

    rows = await backend.all(select(parts.c.part_number).order_by(parts.c.part_number))
    assert [r["part_number"] for r in rows] == ["P-1", "P-2"]


async def test_transaction_rolls_back_on_error(backend):
    with pytest.raises(RuntimeError):
        async with backend.transaction() as uow:
            await uow.run(locations.insert().values(name="Shelf A", barcode="A1"))
            raise RuntimeError("boom")

    assert await backend.all(select(locations)) == []


async def test_unique_violation_becomes_conflict(backend):
    await backend.run(locations.insert().values(name="Shelf A", barcode="A1"))
    with pytest.raises(ConflictError):
        await backend.run(locations.insert().values(name="Shelf B", barcode="A1"))


async def test_foreign_keys_are_enforced(backend):
    with pytest.raises(ConflictError):
        await backend.run(parts.insert().values(part_number="P-1", description="", min_qty=0, fixed_location_id=999))


async def test_broken_sql_becomes_storage_error(backend):
    with pytest.raises(StorageError):
        await backend.all("SELECT * FROM no_such_table")


async def test_upsert_ignore_keeps_existing_row(backend):
    first = await backend.upsert_ignore(locations, {"name": "Shelf A", "barcode": "A1"}, ["barcode"])
    second = await backend.upsert_ignore(locations, {"name": "Shelf A2", "barcode": "A1"}, ["barcode"])
    assert first.rowcount == 1
    assert second.rowcount == 0

    rows = await backend.all(select(locations))
    assert len(rows) == 1
    assert rows[0]["name"] == "Shelf A"


def test_normalize_database_url_picks_async_drivers():
    assert normalize_database_url("sqlite:///./x.db").startswith("sqlite+aiosqlite://")
    assert normalize_database_url("postgresql://u:p@db/x").startswith("postgresql+asyncpg://")
    assert normalize_database_url("postgres://u:p@db/x").startswith("postgresql+asyncpg://")


async def test_create_backend_selects_implementation():
    sqlite_backend = create_backend("sqlite://")
    assert isinstance(sqlite_backend, SQLiteBackend)
    await sqlite_backend.dispose()

    pg_backend = create_backend("postgresql://u:p@localhost/partstore")
    assert isinstance(pg_backend, PostgresBackend)
    await pg_backend.dispose()

    with pytest.raises(ValueError):
        create_backend("mysql://u:p@localhost/partstore")
