import asyncio

import pytest
from sqlalchemy import select

from partstore.core.errors import InsufficientStockError, NotFoundError, PolicyViolationError, ValidationError
from partstore.db import StockEntry, Transaction
from partstore.services.ledger import Ledger


async def _stock_sum(backend, part_id):
    rows = await backend.all(select(StockEntry.__table__.c.qty).where(StockEntry.__table__.c.part_id == part_id))
    return sum(r["qty"] for r in rows)


async def _transaction_count(backend):
    return len(await backend.all(select(Transaction.__table__.c.id)))


async def test_scan_in_creates_location_and_fixes_part(directory, ledger):
    await directory.create_part("TAN-000623", min_qty=5)

    movement = await ledger.scan_in("TAN-000623", "B7", 10, username="ola")

    assert movement.action == "in"
    assert movement.location_barcode == "B7"
    assert movement.qty == 10
    assert movement.location_qty == 10
    assert (movement.total_before, movement.total_after) == (0, 10)
    assert movement.fixed_location_assigned is True
    assert movement.alert_sent is False

    part = await directory.find_part_by_number("TAN-000623")
    assert part["fixed_location_barcode"] == "B7"
    assert (await directory.find_location_by_barcode("B7"))["name"] == "B7"


async def test_scan_in_without_auto_assign_leaves_part_unfixed(backend, directory, services, clock):
    ledger = Ledger(backend, directory, services.alerts, clock=clock, auto_assign_fixed_location=False)
    await directory.create_part("P-1")

    movement = await ledger.scan_in("P-1", "B7", 2)

    assert movement.fixed_location_assigned is False
    assert (await directory.find_part_by_number("P-1"))["fixed_location_id"] is None


async def test_scan_uses_fixed_location_when_none_given(directory, ledger):
    await directory.create_part("P-1")
    await ledger.scan_in("P-1", "A1", 4)

    movement = await ledger.scan_out("P-1", None, 1)
    assert movement.location_barcode == "A1"
    assert movement.location_qty == 3

    again = await ledger.scan_in("P-1", qty=2)
    assert again.location_barcode == "A1"
    assert again.fixed_location_assigned is False


async def test_scan_without_location_for_unfixed_part(directory, ledger):
    await directory.create_part("P-1")
    with pytest.raises(ValidationError):
        await ledger.scan_in("P-1", None, 1)
    with pytest.raises(ValidationError):
        await ledger.scan_out("P-1", "  ", 1)


async def test_fixed_location_is_enforced(backend, directory, ledger):
    await directory.create_part("P-1")
    await ledger.scan_in("P-1", "A1", 5)
    await directory.create_location("Shelf B", "B1")
    before = await _transaction_count(backend)

    with pytest.raises(PolicyViolationError) as exc:
        await ledger.scan_in("P-1", "B1", 1)
    assert exc.value.fixed_location == "A1"
    assert exc.value.requested_location == "B1"

    with pytest.raises(PolicyViolationError):
        await ledger.scan_out("P-1", "B1", 1)

    assert await _transaction_count(backend) == before
    part = await directory.find_part_by_number("P-1")
    assert await ledger.total_quantity(part["id"]) == 5


async def test_scan_out_insufficient_stock_changes_nothing(backend, directory, ledger):
    await directory.create_part("P-1")
    await ledger.scan_in("P-1", "A1", 3)
    before = await _transaction_count(backend)

    with pytest.raises(InsufficientStockError) as exc:
        await ledger.scan_out("P-1", "A1", 5)

    assert exc.value.available == 3
    assert exc.value.requested == 5
    assert exc.value.to_dict()["error"] == "Not enough stock at location (available 3, requested 5)"
    assert await _transaction_count(backend) == before
    part = await directory.find_part_by_number("P-1")
    assert await ledger.total_quantity(part["id"]) == 3


async def test_scan_out_requires_existing_location(directory, ledger):
    await directory.create_part("P-1")
    with pytest.raises(NotFoundError):
        await ledger.scan_out("P-1", "NOWHERE", 1)
    assert await directory.find_location_by_barcode("NOWHERE") is None


async def test_scan_out_with_no_entry_at_location(directory, ledger):
    await directory.create_part("P-1")
    await directory.create_location("Shelf A", "A1")
    with pytest.raises(InsufficientStockError) as exc:
        await ledger.scan_out("P-1", "A1", 1)
    assert exc.value.available == 0


async def test_unknown_part(ledger):
    with pytest.raises(NotFoundError):
        await ledger.scan_in("does-not-exist", "A1", 1)


@pytest.mark.parametrize("bad", [0, -1, "abc", "1.5", 2.5, True, None])
async def test_quantity_must_be_positive_integer(directory, ledger, bad):
    await directory.create_part("P-1")
    with pytest.raises(ValidationError):
        await ledger.scan_in("P-1", "A1", bad)


async def test_integral_string_quantity_accepted(directory, ledger):
    await directory.create_part("P-1")
    movement = await ledger.scan_in("P-1", "A1", "3")
    assert movement.qty == 3


async def test_missing_part_number(ledger):
    with pytest.raises(ValidationError):
        await ledger.scan_in("", "A1", 1)


async def test_scan_dispatch(directory, ledger):
    await directory.create_part("P-1")
    assert (await ledger.scan("IN", "P-1", "A1", 2)).action == "in"
    assert (await ledger.scan("out", "P-1", "A1", 1)).action == "out"
    with pytest.raises(ValidationError):
        await ledger.scan("move", "P-1", "A1", 1)


async def test_scan_by_alias_barcode(directory, ledger):
    await directory.create_part("P-1")
    await directory.add_alias("P-1", "7020000000001")
    movement = await ledger.scan_in("7020000000001", "A1", 2)
    assert movement.part_number == "P-1"


async def test_set_quantity_records_signed_correction(backend, directory, ledger, notifier):
    await directory.create_part("P-1", min_qty=5)
    await ledger.scan_in("P-1", "A1", 10)

    down = await ledger.set_quantity("P-1", "A1", 2)
    assert down.action == "set"
    assert down.qty == -8
    assert down.location_qty == 2
    assert (down.total_before, down.total_after) == (10, 2)
    # Corrections never alert, even across the minimum.
    assert notifier.sent == []

    zero = await ledger.set_quantity("P-1", "A1", 0)
    assert zero.qty == -2
    with pytest.raises(ValidationError):
        await ledger.set_quantity("P-1", "A1", -1)


async def test_set_quantity_ignores_fixed_location_and_creates_location(directory, ledger):
    await directory.create_part("P-1")
    await ledger.scan_in("P-1", "A1", 1)

    movement = await ledger.set_quantity("P-1", "OVERFLOW", 7)

    assert movement.location_barcode == "OVERFLOW"
    assert movement.total_after == 8
    part = await directory.find_part_by_number("P-1")
    assert part["fixed_location_barcode"] == "A1"


async def test_totals_match_stock_rows_and_replayed_history(backend, directory, ledger):
    await directory.create_part("P-1")
    await ledger.scan_in("P-1", "A1", 10)
    await ledger.scan_out("P-1", "A1", 3)
    await ledger.set_quantity("P-1", "B2", 4)
    await ledger.set_quantity("P-1", "A1", 2)
    await ledger.scan_in("P-1", "A1", 1)
    with pytest.raises(InsufficientStockError):
        await ledger.scan_out("P-1", "A1", 50)

    part = await directory.find_part_by_number("P-1")
    total = await ledger.total_quantity(part["id"])
    assert total == 7
    assert await _stock_sum(backend, part["id"]) == total

    replayed = await ledger.replay(part["id"])
    assert sum(replayed.values()) == total
    stock = await ledger.stock_for_part("P-1")
    assert {row["location_id"]: row["qty"] for row in stock["locations"]} == replayed
    assert stock["total"] == total


async def test_concurrent_scan_out_never_oversells(directory, ledger):
    await directory.create_part("P-1")
    await ledger.scan_in("P-1", "A1", 5)

    results = await asyncio.gather(
        *(ledger.scan_out("P-1", "A1", 1) for _ in range(8)),
        return_exceptions=True,
    )

    ok = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(ok) == 5
    assert len(failed) == 3
    assert all(isinstance(e, InsufficientStockError) for e in failed)
    assert sorted(m.total_after for m in ok) == [0, 1, 2, 3, 4]

    part = await directory.find_part_by_number("P-1")
    assert await ledger.total_quantity(part["id"]) == 0
    assert sum((await ledger.replay(part["id"])).values()) == 0


async def test_history_is_newest_first_with_user(directory, ledger, clock):
    await directory.create_part("P-1")
    await ledger.scan_in("P-1", "A1", 3, username="kari")
    clock.advance(minutes=5)
    await ledger.scan_out("P-1", "A1", 1, username="ola")

    history = await ledger.history("P-1")

    assert [h["action"] for h in history] == ["out", "in"]
    assert [h["username"] for h in history] == ["ola", "kari"]
    assert history[0]["location_barcode"] == "A1"
    assert len(await ledger.history("P-1", limit=1)) == 1


async def test_stock_at_location(directory, ledger):
    await directory.create_part("P-1", description="Bolt")
    await directory.create_part("P-2", description="Nut")
    await ledger.scan_in("P-1", "A1", 3)
    await ledger.scan_in("P-2", "A1", 4)

    result = await ledger.stock_at_location("A1")

    assert result["location"]["barcode"] == "A1"
    assert [(p["part_number"], p["qty"]) for p in result["parts"]] == [("P-1", 3), ("P-2", 4)]


@pytest.mark.parametrize("huge", [10**20, "99999999999999999999", "1e999999999", 2**31])
async def test_oversized_quantity_is_a_validation_error(directory, ledger, huge):
    await directory.create_part("P-1")
    with pytest.raises(ValidationError) as exc:
        await ledger.scan_in("P-1", "A1", huge)
    assert "too large" in exc.value.message
    with pytest.raises(ValidationError):
        await ledger.set_quantity("P-1", "A1", huge)


async def test_scan_in_cannot_push_location_past_integer_range(backend, directory, ledger):
    await directory.create_part("P-1")
    await ledger.set_quantity("P-1", "A1", 2**31 - 1)
    before = await _transaction_count(backend)

    with pytest.raises(ValidationError):
        await ledger.scan_in("P-1", "A1", 1)

    assert await _transaction_count(backend) == before
