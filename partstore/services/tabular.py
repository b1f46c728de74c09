"""Decode an uploaded spreadsheet (CSV or Excel) into rows of stripped strings."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import List, Optional
from zipfile import BadZipFile

import pandas as pd

from partstore.core.errors import ValidationError

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
CSV_DELIMITERS = (",", ";", "\t")


def detect_format(payload: bytes, filename: Optional[str] = None) -> str:
    ext = Path(filename).suffix.lower() if filename else ""
    if ext in EXCEL_SUFFIXES or payload[:4] == b"PK\x03\x04":
        return "excel"
    if ext == ".xls":
        raise ValidationError("Legacy .xls files are not supported; save as .xlsx or .csv.")
    return "csv"


def _sniff_delimiter(payload: bytes) -> str:
    """Most frequent delimiter on the first non-blank line that contains any; "," otherwise."""
    for line in payload.decode("utf-8-sig", errors="replace").splitlines():
        if not line.strip():
            continue
        counts = {d: line.count(d) for d in CSV_DELIMITERS}
        best = max(counts, key=counts.get)
        if counts[best] > 0:
            return best
    return ","


def _field_count(payload: bytes, sep: str) -> int:
    lines = payload.decode("utf-8-sig", errors="replace").splitlines()
    return max((line.count(sep) for line in lines), default=0) + 1


def _cell(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def read_table(payload: bytes, filename: Optional[str] = None) -> List[List[str]]:
    if not payload or not payload.strip():
        raise ValidationError("Uploaded file contains no data.")

    fmt = detect_format(payload, filename)
    buffer = BytesIO(payload)
    try:
        if fmt == "excel":
            df = pd.read_excel(buffer, header=None, dtype=str, keep_default_na=False, engine="openpyxl")
        else:
            sep = _sniff_delimiter(payload)
            df = pd.read_csv(
                buffer,
                header=None,
                # Fixed width so a short title line does not cap the column count.
                names=list(range(_field_count(payload, sep))),
                dtype=str,
                keep_default_na=False,
                sep=sep,
                encoding="utf-8-sig",
                skip_blank_lines=True,
            )
    except (ValueError, BadZipFile, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise ValidationError(f"Could not read uploaded file: {exc}") from exc

    rows = [[_cell(v) for v in rec] for rec in df.itertuples(index=False, name=None)]
    rows = [r for r in rows if any(r)]
    if not rows:
        raise ValidationError("Uploaded file contains no data.")
    return rows
