"""
Stock ledger: the only code that changes quantities.

- scan_in / scan_out: physical movements, each one StockEntry write plus one
  Transaction row inside a single database transaction.
- set_quantity: administrative correction to an exact value, recorded as a
  ``set`` transaction carrying the signed difference.

Mutations of the same part are serialized in-process, and the outbound
decrement is a conditional update (``qty >= :qty``) whose row count decides
success, so stock can never go negative even when requests interleave.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Hashable, List, Optional, Tuple

from sqlalchemy import func, select, update

from partstore.core.clock import Clock, SystemClock
from partstore.core.errors import InsufficientStockError, PolicyViolationError, ValidationError
from partstore.db.backend import StorageBackend
from partstore.db.inventory.movement import ACTION_IN, ACTION_OUT, ACTION_SET, Transaction, signed_delta
from partstore.db.inventory.stock import StockEntry
from partstore.db.location import Location
from partstore.db.part import Part

from .alerts import AlertEngine
from .directory import Directory
from .validation import MAX_INT, clean_code, optional_code, parse_non_negative, parse_quantity

logger = logging.getLogger(__name__)

stock_tbl = StockEntry.__table__
transactions_tbl = Transaction.__table__
locations_tbl = Location.__table__
parts_tbl = Part.__table__


@dataclass
class Movement:
    transaction_id: int
    action: str
    part_id: int
    part_number: str
    location_id: int
    location_barcode: str
    qty: int
    location_qty: int
    total_before: int
    total_after: int
    username: Optional[str]
    created_at: datetime
    fixed_location_assigned: bool = False
    alert_sent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class KeyedLocks:
    """One asyncio.Lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)


class Ledger:
    def __init__(
        self,
        backend: StorageBackend,
        directory: Directory,
        alerts: AlertEngine,
        *,
        clock: Optional[Clock] = None,
        auto_assign_fixed_location: bool = True,
    ):
        self.backend = backend
        self.directory = directory
        self.alerts = alerts
        self.clock = clock or SystemClock()
        self.auto_assign_fixed_location = auto_assign_fixed_location
        self._locks = KeyedLocks()

    # ----------------------------
    # Reads
    # ----------------------------

    async def total_quantity(self, part_id: int, *, db=None) -> int:
        ex = db if db is not None else self.backend
        row = await ex.get(
            select(func.coalesce(func.sum(stock_tbl.c.qty), 0).label("total")).where(stock_tbl.c.part_id == part_id)
        )
        return int(row["total"]) if row else 0

    async def _location_qty(self, ex, part_id: int, location_id: int) -> Optional[int]:
        row = await ex.get(
            select(stock_tbl.c.qty).where(stock_tbl.c.part_id == part_id, stock_tbl.c.location_id == location_id)
        )
        return int(row["qty"]) if row else None

    async def stock_for_part(self, code: str) -> Dict[str, Any]:
        part = await self.directory.require_part(code)
        rows = await self.backend.all(
            select(
                locations_tbl.c.id.label("location_id"),
                locations_tbl.c.name.label("location_name"),
                locations_tbl.c.barcode,
                stock_tbl.c.qty,
            )
            .select_from(stock_tbl.join(locations_tbl, stock_tbl.c.location_id == locations_tbl.c.id))
            .where(stock_tbl.c.part_id == part["id"])
            .order_by(locations_tbl.c.barcode)
        )
        total = await self.total_quantity(part["id"])
        return {"part": part, "total": total, "locations": rows}

    async def stock_at_location(self, barcode: str) -> Dict[str, Any]:
        location = await self.directory.require_location(barcode)
        rows = await self.backend.all(
            select(
                parts_tbl.c.id.label("part_id"),
                parts_tbl.c.part_number,
                parts_tbl.c.description,
                stock_tbl.c.qty,
            )
            .select_from(stock_tbl.join(parts_tbl, stock_tbl.c.part_id == parts_tbl.c.id))
            .where(stock_tbl.c.location_id == location["id"])
            .order_by(parts_tbl.c.part_number)
        )
        return {"location": location, "parts": rows}

    async def history(self, code: str, *, limit: int = 100) -> List[Dict[str, Any]]:
        part = await self.directory.require_part(code)
        return await self.backend.all(
            select(
                transactions_tbl.c.id,
                transactions_tbl.c.action,
                transactions_tbl.c.qty,
                transactions_tbl.c.username,
                transactions_tbl.c.created_at,
                locations_tbl.c.barcode.label("location_barcode"),
            )
            .select_from(transactions_tbl.join(locations_tbl, transactions_tbl.c.location_id == locations_tbl.c.id))
            .where(transactions_tbl.c.part_id == part["id"])
            .order_by(transactions_tbl.c.id.desc())
            .limit(limit)
        )

    async def replay(self, part_id: int) -> Dict[int, int]:
        """Per-location quantities rebuilt from the transaction log alone."""
        rows = await self.backend.all(
            select(transactions_tbl.c.location_id, transactions_tbl.c.action, transactions_tbl.c.qty)
            .where(transactions_tbl.c.part_id == part_id)
            .order_by(transactions_tbl.c.id)
        )
        out: Dict[int, int] = {}
        for r in rows:
            out[r["location_id"]] = out.get(r["location_id"], 0) + signed_delta(r["action"], r["qty"])
        return out

    # ----------------------------
    # Location policy
    # ----------------------------

    async def _fixed_location(self, part: Dict[str, Any], uow) -> Optional[Dict[str, Any]]:
        if part["fixed_location_id"] is None:
            return None
        return await self.directory.get_location(part["fixed_location_id"], db=uow)

    def _check_fixed(self, part: Dict[str, Any], fixed: Optional[Dict[str, Any]], code: Optional[str]) -> None:
        if fixed is not None and code is not None and code != fixed["barcode"]:
            raise PolicyViolationError(part["part_number"], fixed["barcode"], code)

    async def _inbound_location(self, part, code: Optional[str], uow) -> Tuple[Dict[str, Any], bool]:
        fixed = await self._fixed_location(part, uow)
        self._check_fixed(part, fixed, code)
        if fixed is not None:
            return fixed, False
        if code is None:
            raise ValidationError(
                f"location_barcode required: part {part['part_number']} has no fixed location",
                field="location_barcode",
            )
        location = await self.directory.get_or_create_location(code, db=uow)
        if self.auto_assign_fixed_location:
            await self.directory.assign_fixed_location(part["id"], location["id"], db=uow)
            logger.info("Assigned fixed location %s to part %s", location["barcode"], part["part_number"])
            return location, True
        return location, False

    async def _outbound_location(self, part, code: Optional[str], uow) -> Dict[str, Any]:
        fixed = await self._fixed_location(part, uow)
        self._check_fixed(part, fixed, code)
        if fixed is not None:
            return fixed
        if code is None:
            raise ValidationError(
                f"location_barcode required: part {part['part_number']} has no fixed location",
                field="location_barcode",
            )
        return await self.directory.require_location(code, db=uow)

    # ----------------------------
    # Writes
    # ----------------------------

    async def _ensure_entry(self, uow, part_id: int, location_id: int) -> None:
        await uow.upsert_ignore(
            stock_tbl,
            {"part_id": part_id, "location_id": location_id, "qty": 0},
            ["part_id", "location_id"],
        )

    async def _append(self, uow, *, part_id, location_id, qty, action, username) -> Tuple[int, datetime]:
        created_at = self.clock.now()
        res = await uow.run(
            transactions_tbl.insert().values(
                part_id=part_id,
                location_id=location_id,
                qty=qty,
                action=action,
                username=username,
                created_at=created_at,
            )
        )
        tx_id = res.affected_id
        if tx_id is None:
            row = await uow.get(
                select(func.max(transactions_tbl.c.id).label("id")).where(transactions_tbl.c.part_id == part_id)
            )
            tx_id = row["id"]
        return tx_id, created_at

    async def _resolve_part_id(self, code: str) -> int:
        part = await self.directory.require_part(code)
        return part["id"]

    async def scan_in(
        self,
        part_number: str,
        location_barcode: Optional[str] = None,
        qty: Any = 1,
        *,
        username: Optional[str] = None,
    ) -> Movement:
        part_number = clean_code(part_number, "part_number")
        code = optional_code(location_barcode)
        qty = parse_quantity(qty, "qty")
        part_id = await self._resolve_part_id(part_number)

        async with self._locks.hold(part_id):
            async with self.backend.transaction() as uow:
                part = await self.directory.get_part(part_id, db=uow)
                location, assigned = await self._inbound_location(part, code, uow)
                await self._ensure_entry(uow, part_id, location["id"])
                current = await self._location_qty(uow, part_id, location["id"]) or 0
                if current + qty > MAX_INT:
                    raise ValidationError(f"qty is too large: location would hold {current + qty}", field="qty")
                await uow.run(
                    update(stock_tbl)
                    .where(stock_tbl.c.part_id == part_id, stock_tbl.c.location_id == location["id"])
                    .values(qty=stock_tbl.c.qty + qty)
                )
                location_qty = await self._location_qty(uow, part_id, location["id"])
                total_after = await self.total_quantity(part_id, db=uow)
                tx_id, created_at = await self._append(
                    uow, part_id=part_id, location_id=location["id"], qty=qty, action=ACTION_IN, username=username
                )

        logger.info(
            "IN %s x%s at %s (total %s -> %s)",
            part["part_number"], qty, location["barcode"], total_after - qty, total_after,
        )
        return Movement(
            transaction_id=tx_id,
            action=ACTION_IN,
            part_id=part_id,
            part_number=part["part_number"],
            location_id=location["id"],
            location_barcode=location["barcode"],
            qty=qty,
            location_qty=location_qty,
            total_before=total_after - qty,
            total_after=total_after,
            username=username,
            created_at=created_at,
            fixed_location_assigned=assigned,
        )

    async def scan_out(
        self,
        part_number: str,
        location_barcode: Optional[str] = None,
        qty: Any = 1,
        *,
        username: Optional[str] = None,
    ) -> Movement:
        part_number = clean_code(part_number, "part_number")
        code = optional_code(location_barcode)
        qty = parse_quantity(qty, "qty")
        part_id = await self._resolve_part_id(part_number)

        async with self._locks.hold(part_id):
            async with self.backend.transaction() as uow:
                part = await self.directory.get_part(part_id, db=uow)
                location = await self._outbound_location(part, code, uow)
                res = await uow.run(
                    update(stock_tbl)
                    .where(
                        stock_tbl.c.part_id == part_id,
                        stock_tbl.c.location_id == location["id"],
                        stock_tbl.c.qty >= qty,
                    )
                    .values(qty=stock_tbl.c.qty - qty)
                )
                if res.rowcount != 1:
                    available = await self._location_qty(uow, part_id, location["id"]) or 0
                    raise InsufficientStockError(available, qty, location["barcode"])
                location_qty = await self._location_qty(uow, part_id, location["id"])
                total_after = await self.total_quantity(part_id, db=uow)
                total_before = total_after + qty
                tx_id, created_at = await self._append(
                    uow, part_id=part_id, location_id=location["id"], qty=qty, action=ACTION_OUT, username=username
                )

        logger.info(
            "OUT %s x%s at %s (total %s -> %s)",
            part["part_number"], qty, location["barcode"], total_before, total_after,
        )
        alert_sent = await self.alerts.on_outbound(part, total_before, total_after)
        return Movement(
            transaction_id=tx_id,
            action=ACTION_OUT,
            part_id=part_id,
            part_number=part["part_number"],
            location_id=location["id"],
            location_barcode=location["barcode"],
            qty=qty,
            location_qty=location_qty,
            total_before=total_before,
            total_after=total_after,
            username=username,
            created_at=created_at,
            alert_sent=alert_sent,
        )

    async def set_quantity(
        self,
        part_number: str,
        location_barcode: str,
        qty: Any,
        *,
        username: Optional[str] = None,
    ) -> Movement:
        """Correction, not a movement: no fixed-location check and no alert."""
        part_number = clean_code(part_number, "part_number")
        code = clean_code(location_barcode, "location_barcode")
        qty = parse_non_negative(qty, "qty")
        part_id = await self._resolve_part_id(part_number)

        async with self._locks.hold(part_id):
            async with self.backend.transaction() as uow:
                part = await self.directory.get_part(part_id, db=uow)
                location = await self.directory.get_or_create_location(code, db=uow)
                await self._ensure_entry(uow, part_id, location["id"])
                before = await self._location_qty(uow, part_id, location["id"]) or 0
                total_before = await self.total_quantity(part_id, db=uow)
                await uow.run(
                    update(stock_tbl)
                    .where(stock_tbl.c.part_id == part_id, stock_tbl.c.location_id == location["id"])
                    .values(qty=qty)
                )
                delta = qty - before
                tx_id, created_at = await self._append(
                    uow, part_id=part_id, location_id=location["id"], qty=delta, action=ACTION_SET, username=username
                )

        logger.info(
            "SET %s at %s: %s -> %s (total %s -> %s)",
            part["part_number"], location["barcode"], before, qty, total_before, total_before + delta,
        )
        return Movement(
            transaction_id=tx_id,
            action=ACTION_SET,
            part_id=part_id,
            part_number=part["part_number"],
            location_id=location["id"],
            location_barcode=location["barcode"],
            qty=delta,
            location_qty=qty,
            total_before=total_before,
            total_after=total_before + delta,
            username=username,
            created_at=created_at,
        )

    async def scan(
        self,
        action: str,
        part_number: str,
        location_barcode: Optional[str] = None,
        qty: Any = 1,
        *,
        username: Optional[str] = None,
    ) -> Movement:
        action = (action or "").strip().lower()
        if action == ACTION_IN:
            return await self.scan_in(part_number, location_barcode, qty, username=username)
        if action == ACTION_OUT:
            return await self.scan_out(part_number, location_barcode, qty, username=username)
        raise ValidationError('action must be "in" or "out"', field="action")
