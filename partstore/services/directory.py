"""
Directory: identity records for parts, locations and alias barcodes.

Resolves and creates Part/Location rows; never touches quantities. Methods
take an optional ``db`` executor so the ledger can run them inside its own
unit of work; without it they go straight to the backend.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update

from partstore.core.errors import ConflictError, NotFoundError, ValidationError
from partstore.db.backend import StorageBackend
from partstore.db.inventory.movement import Transaction
from partstore.db.inventory.stock import StockEntry
from partstore.db.location import Location
from partstore.db.part import Part, PartAlias

from .validation import clean_code, parse_non_negative

logger = logging.getLogger(__name__)

parts_tbl = Part.__table__
aliases_tbl = PartAlias.__table__
locations_tbl = Location.__table__
stock_tbl = StockEntry.__table__
transactions_tbl = Transaction.__table__

_UNSET: Any = object()


def _part_select():
    return (
        select(
            parts_tbl.c.id,
            parts_tbl.c.part_number,
            parts_tbl.c.description,
            parts_tbl.c.min_qty,
            parts_tbl.c.fixed_location_id,
            locations_tbl.c.barcode.label("fixed_location_barcode"),
            locations_tbl.c.name.label("fixed_location_name"),
        )
        .select_from(parts_tbl.outerjoin(locations_tbl, parts_tbl.c.fixed_location_id == locations_tbl.c.id))
    )


class Directory:
    def __init__(self, backend: StorageBackend, *, default_min_qty: int = 0):
        self.backend = backend
        self.default_min_qty = default_min_qty

    def _db(self, db):
        return db if db is not None else self.backend

    # ----------------------------
    # Parts
    # ----------------------------

    async def find_part_by_number(self, part_number: str, *, db=None) -> Optional[Dict[str, Any]]:
        part_number = clean_code(part_number, "part_number")
        return await self._db(db).get(_part_select().where(parts_tbl.c.part_number == part_number))

    async def get_part(self, part_id: int, *, db=None) -> Dict[str, Any]:
        part = await self._db(db).get(_part_select().where(parts_tbl.c.id == part_id))
        if not part:
            raise NotFoundError("part", part_id)
        return part

    async def resolve_alias(self, code: str, *, db=None) -> str:
        """Canonical part numbers win; the alias table is only consulted second."""
        code = clean_code(code, "code")
        ex = self._db(db)
        row = await ex.get(select(parts_tbl.c.part_number).where(parts_tbl.c.part_number == code))
        if row:
            return row["part_number"]
        row = await ex.get(
            select(parts_tbl.c.part_number)
            .select_from(aliases_tbl.join(parts_tbl, aliases_tbl.c.part_id == parts_tbl.c.id))
            .where(aliases_tbl.c.alias == code)
        )
        if row:
            return row["part_number"]
        raise NotFoundError("part", code)

    async def require_part(self, code: str, *, db=None) -> Dict[str, Any]:
        """Part by part number or alias barcode."""
        part_number = await self.resolve_alias(code, db=db)
        part = await self.find_part_by_number(part_number, db=db)
        if not part:
            raise NotFoundError("part", code)
        return part

    async def list_parts(self, *, db=None) -> List[Dict[str, Any]]:
        return await self._db(db).all(_part_select().order_by(parts_tbl.c.part_number))

    async def create_part(
        self,
        part_number: str,
        description: Optional[str] = None,
        min_qty: Optional[int] = None,
        fixed_location_barcode: Optional[str] = None,
        *,
        db=None,
    ) -> Dict[str, Any]:
        ex = self._db(db)
        part_number = clean_code(part_number, "part_number")
        min_qty = self.default_min_qty if min_qty is None else parse_non_negative(min_qty, "min_qty")
        fixed_location_id = None
        if fixed_location_barcode:
            fixed_location_id = (await self.require_location(fixed_location_barcode, db=ex))["id"]

        if await ex.get(select(parts_tbl.c.id).where(parts_tbl.c.part_number == part_number)):
            raise ConflictError(f"Part already exists: {part_number}", part_number=part_number)

        res = await ex.run(
            parts_tbl.insert().values(
                part_number=part_number,
                description=(description or "").strip(),
                min_qty=min_qty,
                fixed_location_id=fixed_location_id,
            )
        )
        logger.info("Created part %s", part_number)
        if res.affected_id is not None:
            return await self.get_part(res.affected_id, db=ex)
        return await self.find_part_by_number(part_number, db=ex)

    async def update_part(
        self,
        part_id: int,
        *,
        part_number: Any = _UNSET,
        description: Any = _UNSET,
        min_qty: Any = _UNSET,
        fixed_location_barcode: Any = _UNSET,
        db=None,
    ) -> Dict[str, Any]:
        """Write only the fields that were passed; ``fixed_location_barcode=None`` clears it."""
        ex = self._db(db)
        current = await self.get_part(part_id, db=ex)

        values: Dict[str, Any] = {}
        if part_number is not _UNSET:
            part_number = clean_code(part_number, "part_number")
            if part_number != current["part_number"]:
                if await ex.get(select(parts_tbl.c.id).where(parts_tbl.c.part_number == part_number)):
                    raise ConflictError(f"Part already exists: {part_number}", part_number=part_number)
                values["part_number"] = part_number
        if description is not _UNSET:
            values["description"] = (description or "").strip()
        if min_qty is not _UNSET:
            values["min_qty"] = parse_non_negative(min_qty, "min_qty")
        if fixed_location_barcode is not _UNSET:
            if fixed_location_barcode is None or not str(fixed_location_barcode).strip():
                values["fixed_location_id"] = None
            else:
                values["fixed_location_id"] = (await self.require_location(fixed_location_barcode, db=ex))["id"]

        if not values:
            return current
        await ex.run(update(parts_tbl).where(parts_tbl.c.id == part_id).values(**values))
        return await self.get_part(part_id, db=ex)

    async def assign_fixed_location(self, part_id: int, location_id: int, *, db=None) -> None:
        # Only fills an empty slot; an existing fixed location is never replaced here.
        await self._db(db).run(
            update(parts_tbl)
            .where(parts_tbl.c.id == part_id, parts_tbl.c.fixed_location_id.is_(None))
            .values(fixed_location_id=location_id)
        )

    async def delete_part(self, part_id: int) -> None:
        """Removes the part with its aliases, stock rows and transaction history."""
        async with self.backend.transaction() as uow:
            part = await self.get_part(part_id, db=uow)
            await uow.run(delete(transactions_tbl).where(transactions_tbl.c.part_id == part_id))
            await uow.run(delete(stock_tbl).where(stock_tbl.c.part_id == part_id))
            await uow.run(delete(aliases_tbl).where(aliases_tbl.c.part_id == part_id))
            await uow.run(delete(parts_tbl).where(parts_tbl.c.id == part_id))
        logger.info("Deleted part %s", part["part_number"])

    # ----------------------------
    # Locations
    # ----------------------------

    async def find_location_by_barcode(self, barcode: str, *, db=None) -> Optional[Dict[str, Any]]:
        barcode = clean_code(barcode, "location_barcode")
        return await self._db(db).get(select(locations_tbl).where(locations_tbl.c.barcode == barcode))

    async def require_location(self, barcode: str, *, db=None) -> Dict[str, Any]:
        loc = await self.find_location_by_barcode(barcode, db=db)
        if not loc:
            raise NotFoundError("location", str(barcode).strip())
        return loc

    async def get_location(self, location_id: int, *, db=None) -> Dict[str, Any]:
        loc = await self._db(db).get(select(locations_tbl).where(locations_tbl.c.id == location_id))
        if not loc:
            raise NotFoundError("location", location_id)
        return loc

    async def list_locations(self, *, db=None) -> List[Dict[str, Any]]:
        return await self._db(db).all(select(locations_tbl).order_by(func.lower(locations_tbl.c.name)))

    async def create_location(self, name: str, barcode: str, *, db=None) -> Dict[str, Any]:
        ex = self._db(db)
        name = clean_code(name, "name")
        barcode = clean_code(barcode, "barcode")
        if await self.find_location_by_barcode(barcode, db=ex):
            raise ConflictError(f"Location barcode already exists: {barcode}", barcode=barcode)
        if await ex.get(select(locations_tbl.c.id).where(locations_tbl.c.name == name)):
            raise ConflictError(f"Location name already exists: {name}", name=name)
        res = await ex.run(locations_tbl.insert().values(name=name, barcode=barcode))
        logger.info("Created location %s (%s)", barcode, name)
        if res.affected_id is not None:
            return await self.get_location(res.affected_id, db=ex)
        return await self.require_location(barcode, db=ex)

    async def get_or_create_location(self, code: str, name: Optional[str] = None, *, db=None) -> Dict[str, Any]:
        """
        Implicit location creation used by scans and imports: an unknown code
        becomes a new location named after the code itself.
        """
        ex = self._db(db)
        code = clean_code(code, "location_barcode")
        existing = await self.find_location_by_barcode(code, db=ex)
        if existing:
            return existing
        name = (name or "").strip() or code
        # Ignore any unique conflict (a concurrent create of the same barcode).
        res = await ex.upsert_ignore(locations_tbl, {"name": name, "barcode": code}, None)
        loc = await self.find_location_by_barcode(code, db=ex)
        if not loc:
            raise ConflictError(
                f"Cannot create location {code}: name {name!r} is already used by another location",
                barcode=code,
                name=name,
            )
        if res.rowcount:
            logger.info("Created location %s implicitly", code)
        return loc

    async def update_location(
        self,
        location_id: int,
        *,
        name: Optional[str] = None,
        barcode: Optional[str] = None,
    ) -> Dict[str, Any]:
        async with self.backend.transaction() as uow:
            current = await self.get_location(location_id, db=uow)
            values: Dict[str, Any] = {}
            if name is not None:
                name = clean_code(name, "name")
                if name != current["name"]:
                    if await uow.get(select(locations_tbl.c.id).where(locations_tbl.c.name == name)):
                        raise ConflictError(f"Location name already exists: {name}", name=name)
                    values["name"] = name
            if barcode is not None:
                barcode = clean_code(barcode, "barcode")
                if barcode != current["barcode"]:
                    if await self.find_location_by_barcode(barcode, db=uow):
                        raise ConflictError(f"Location barcode already exists: {barcode}", barcode=barcode)
                    values["barcode"] = barcode
            if not values:
                return current
            await uow.run(update(locations_tbl).where(locations_tbl.c.id == location_id).values(**values))
            return await self.get_location(location_id, db=uow)

    async def delete_location(self, location_id: int) -> None:
        """Removes stock rows and transactions at the location; parts fixed to it become unfixed."""
        async with self.backend.transaction() as uow:
            loc = await self.get_location(location_id, db=uow)
            await uow.run(delete(transactions_tbl).where(transactions_tbl.c.location_id == location_id))
            await uow.run(delete(stock_tbl).where(stock_tbl.c.location_id == location_id))
            await uow.run(
                update(parts_tbl)
                .where(parts_tbl.c.fixed_location_id == location_id)
                .values(fixed_location_id=None)
            )
            await uow.run(delete(locations_tbl).where(locations_tbl.c.id == location_id))
        logger.info("Deleted location %s", loc["barcode"])

    # ----------------------------
    # Aliases
    # ----------------------------

    async def add_alias(self, part_number: str, alias: str) -> Dict[str, Any]:
        alias = clean_code(alias, "alias")
        async with self.backend.transaction() as uow:
            part = await self.find_part_by_number(part_number, db=uow)
            if not part:
                raise NotFoundError("part", part_number)
            if alias == part["part_number"]:
                raise ValidationError("alias must differ from the part number", field="alias")
            taken = await uow.get(select(aliases_tbl.c.part_id).where(aliases_tbl.c.alias == alias))
            if taken:
                raise ConflictError(f"Alias already in use: {alias}", alias=alias)
            await uow.run(aliases_tbl.insert().values(alias=alias, part_id=part["id"]))
        return {"alias": alias, "part_id": part["id"], "part_number": part["part_number"]}

    async def remove_alias(self, alias: str) -> None:
        alias = clean_code(alias, "alias")
        res = await self.backend.run(delete(aliases_tbl).where(aliases_tbl.c.alias == alias))
        if not res.rowcount:
            raise NotFoundError("alias", alias)

    async def list_aliases(self, part_number: str) -> List[str]:
        part = await self.find_part_by_number(part_number)
        if not part:
            raise NotFoundError("part", part_number)
        rows = await self.backend.all(
            select(aliases_tbl.c.alias).where(aliases_tbl.c.part_id == part["id"]).order_by(aliases_tbl.c.alias)
        )
        return [r["alias"] for r in rows]
