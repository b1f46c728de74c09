from typing import Dict, List, Literal, Optional

from pydantic import BaseModel


class ColumnMappingRead(BaseModel):
    columns: Dict[str, Optional[str]]
    has_header: bool


class ImportPreviewRow(BaseModel):
    row_number: int
    part_number: str
    description: Optional[str] = None
    min_qty: Optional[int] = None
    qty: Optional[int] = None
    location: Optional[str] = None
    errors: List[str] = []
    action: Literal["create", "update", "invalid", "skip"]


class ImportPreview(BaseModel):
    applied: Literal[False] = False
    mapping: ColumnMappingRead
    rows: List[ImportPreviewRow]
    summary: Dict[str, int]


class ImportRowResult(BaseModel):
    row_number: int
    part_number: str
    status: Literal["ok", "failed", "skipped"]
    reason: Optional[str] = None
    created_part: bool = False
    quantity_set: Optional[int] = None


class ImportReportRead(BaseModel):
    applied: Literal[True] = True
    mapping: ColumnMappingRead
    rows: List[ImportRowResult]
    counts: Dict[str, int]
