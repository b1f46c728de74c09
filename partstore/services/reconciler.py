"""
Bulk import of parts, locations and on-hand quantities from a spreadsheet.

Column meaning is inferred from the header row via synonym sets; without a
recognizable part-number header the first two columns are taken as part
number and description. Rows are applied one by one with partial-field
semantics: a cell that is missing or blank never overwrites stored data.
On-hand quantities go through ``Ledger.set_quantity`` (a correction), so an
import never raises low-stock alerts.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from partstore.core.errors import PartStoreError, ValidationError

from .directory import Directory
from .ledger import Ledger
from .tabular import read_table
from .validation import parse_non_negative

logger = logging.getLogger(__name__)

FIELD_SYNONYMS: Dict[str, frozenset] = {
    "part_number": frozenset({
        "partnumber", "partno", "partnum", "pn", "part", "varenummer", "varenr",
        "itemnumber", "item", "sku", "articlenumber", "article",
    }),
    "description": frozenset({
        "description", "desc", "name", "partname", "beskrivelse", "text",
    }),
    "min_qty": frozenset({
        "minqty", "min", "minimum", "minimumquantity", "minquantity", "minstock",
        "reorderlevel", "minbeholdning",
    }),
    "qty": frozenset({
        "qty", "quantity", "onhand", "stock", "count", "antall", "beholdning",
        "quantityonhand",
    }),
    "location": frozenset({
        "location", "locationcode", "loc", "bin", "shelf", "lokasjon", "plass",
        "barcode", "locationbarcode",
    }),
}
ALL_SYNONYMS = frozenset().union(*FIELD_SYNONYMS.values())
FIELDS = tuple(FIELD_SYNONYMS)


def normalize_header(name: Any) -> str:
    return re.sub(r"[^0-9a-z]", "", str(name or "").casefold())


@dataclass
class ColumnMapping:
    columns: Dict[str, Optional[int]]
    has_header: bool
    headers: List[str]

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for name, idx in self.columns.items():
            if idx is None:
                out[name] = None
            elif self.has_header:
                out[name] = self.headers[idx]
            else:
                out[name] = f"column {idx + 1}"
        return {"columns": out, "has_header": self.has_header}


def infer_mapping(rows: List[List[str]]) -> ColumnMapping:
    header = rows[0] if rows else []
    columns: Dict[str, Optional[int]] = {f: None for f in FIELDS}
    for idx, raw in enumerate(header):
        key = normalize_header(raw)
        for name in FIELDS:
            if columns[name] is None and key in FIELD_SYNONYMS[name]:
                columns[name] = idx
                break

    if columns["part_number"] is not None:
        return ColumnMapping(columns=columns, has_header=True, headers=list(header))

    # Positional fallback.
    width = max((len(r) for r in rows), default=0)
    fallback: Dict[str, Optional[int]] = {f: None for f in FIELDS}
    fallback["part_number"] = 0
    if width > 1:
        fallback["description"] = 1
    return ColumnMapping(columns=fallback, has_header=False, headers=[])


@dataclass
class ParsedRow:
    row_number: int
    part_number: str
    description: Optional[str] = None
    min_qty: Optional[int] = None
    qty: Optional[int] = None
    location: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RowResult:
    row_number: int
    part_number: str
    status: str  # "ok" | "failed" | "skipped"
    reason: Optional[str] = None
    created_part: bool = False
    quantity_set: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ImportReport:
    mapping: ColumnMapping
    rows: List[RowResult]

    @property
    def counts(self) -> Dict[str, int]:
        return {
            "total": len(self.rows),
            "succeeded": sum(1 for r in self.rows if r.status == "ok"),
            "failed": sum(1 for r in self.rows if r.status == "failed"),
            "skipped": sum(1 for r in self.rows if r.status == "skipped"),
            "created": sum(1 for r in self.rows if r.status == "ok" and r.created_part),
            "updated": sum(1 for r in self.rows if r.status == "ok" and not r.created_part),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "applied": True,
            "mapping": self.mapping.to_dict(),
            "rows": [r.to_dict() for r in self.rows],
            "counts": self.counts,
        }


def _cell(row: List[str], idx: Optional[int]) -> Optional[str]:
    if idx is None or idx >= len(row):
        return None
    v = (row[idx] or "").strip()
    return v or None


def parse_rows(rows: List[List[str]], mapping: ColumnMapping) -> List[ParsedRow]:
    start = 1 if mapping.has_header else 0
    cols = mapping.columns
    out: List[ParsedRow] = []
    for offset, row in enumerate(rows[start:], start=start + 1):
        first = _cell(row, cols["part_number"])
        if not mapping.has_header and first and normalize_header(first) in ALL_SYNONYMS:
            # A header row that was not recognized as one.
            continue
        parsed = ParsedRow(
            row_number=offset,
            part_number=first or "",
            description=_cell(row, cols["description"]),
            location=_cell(row, cols["location"]),
        )
        for name in ("min_qty", "qty"):
            raw = _cell(row, cols[name])
            if raw is None:
                continue
            try:
                setattr(parsed, name, parse_non_negative(raw, name))
            except ValidationError as exc:
                parsed.errors.append(exc.message)
        out.append(parsed)
    return out


def _no_location_reason(part_number: str) -> str:
    return f"quantity given but part {part_number} has no location"


class Reconciler:
    def __init__(self, directory: Directory, ledger: Ledger):
        self.directory = directory
        self.ledger = ledger

    def interpret(self, payload: bytes, filename: Optional[str] = None):
        rows = read_table(payload, filename)
        mapping = infer_mapping(rows)
        return mapping, parse_rows(rows, mapping)

    async def _interpret(self, payload: bytes, filename: Optional[str]):
        # pandas parsing is CPU-bound; keep it off the event loop.
        return await asyncio.to_thread(self.interpret, payload, filename)

    async def preview(self, payload: bytes, filename: Optional[str] = None) -> Dict[str, Any]:
        """Dry run: the inferred mapping and what each row would do. Writes nothing."""
        mapping, parsed = await self._interpret(payload, filename)
        rows_out: List[Dict[str, Any]] = []
        summary = {"create": 0, "update": 0, "invalid": 0, "skip": 0}
        # Parts written by earlier rows of this file: part number -> has a fixed location.
        seen: Dict[str, bool] = {}
        for row in parsed:
            errors = list(row.errors)
            if not row.part_number:
                action = "skip"
            elif errors:
                action = "invalid"
            else:
                if row.part_number in seen:
                    exists, fixed = True, seen[row.part_number]
                else:
                    part = await self.directory.find_part_by_number(row.part_number)
                    exists = part is not None
                    fixed = bool(part and part["fixed_location_barcode"])
                fixed = fixed or bool(row.location)
                # apply writes the part before it rejects the quantity, so it is seen either way.
                seen[row.part_number] = fixed
                if row.qty is not None and not fixed:
                    errors.append(_no_location_reason(row.part_number))
                    action = "invalid"
                else:
                    action = "update" if exists else "create"
            summary[action] += 1
            rows_out.append({**row.to_dict(), "errors": errors, "action": action})
        return {"applied": False, "mapping": mapping.to_dict(), "rows": rows_out, "summary": summary}

    async def apply(
        self,
        payload: bytes,
        filename: Optional[str] = None,
        *,
        username: Optional[str] = None,
    ) -> ImportReport:
        mapping, parsed = await self._interpret(payload, filename)
        results: List[RowResult] = []
        for row in parsed:
            if not row.part_number:
                results.append(RowResult(row.row_number, "", "skipped", reason="empty part number"))
                continue
            if row.errors:
                results.append(RowResult(row.row_number, row.part_number, "failed", reason="; ".join(row.errors)))
                continue
            try:
                results.append(await self._apply_row(row, username))
            except PartStoreError as exc:
                logger.warning("Import row %s (%s) failed: %s", row.row_number, row.part_number, exc.message)
                results.append(RowResult(row.row_number, row.part_number, "failed", reason=exc.message))

        report = ImportReport(mapping=mapping, rows=results)
        logger.info("Import applied: %s", report.counts)
        return report

    async def _apply_row(self, row: ParsedRow, username: Optional[str]) -> RowResult:
        location = None
        if row.location:
            location = await self.directory.get_or_create_location(row.location)

        fields: Dict[str, Any] = {}
        if row.description:
            fields["description"] = row.description
        if row.min_qty is not None:
            fields["min_qty"] = row.min_qty
        if location is not None:
            fields["fixed_location_barcode"] = location["barcode"]

        existing = await self.directory.find_part_by_number(row.part_number)
        created = existing is None
        if created:
            part = await self.directory.create_part(row.part_number, **fields)
        elif fields:
            part = await self.directory.update_part(existing["id"], **fields)
        else:
            part = existing

        quantity_set = None
        if row.qty is not None:
            target = location["barcode"] if location is not None else part["fixed_location_barcode"]
            if not target:
                raise ValidationError(_no_location_reason(row.part_number), field="location")
            movement = await self.ledger.set_quantity(row.part_number, target, row.qty, username=username)
            quantity_set = movement.location_qty

        return RowResult(row.row_number, row.part_number, "ok", created_part=created, quantity_set=quantity_set)

    async def run(
        self,
        payload: bytes,
        filename: Optional[str] = None,
        *,
        apply: bool = False,
        username: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not apply:
            return await self.preview(payload, filename)
        return (await self.apply(payload, filename, username=username)).to_dict()
