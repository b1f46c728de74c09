from typing import Optional

from pydantic import BaseModel, field_validator


class PartRead(BaseModel):
    id: int
    part_number: str
    description: Optional[str] = ""
    min_qty: int
    fixed_location_id: Optional[int] = None
    fixed_location_barcode: Optional[str] = None
    fixed_location_name: Optional[str] = None


class PartCreate(BaseModel):
    part_number: str
    description: Optional[str] = None
    min_qty: Optional[int] = None
    fixed_location_barcode: Optional[str] = None

    @field_validator("part_number")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("part_number is required")
        return v


class PartUpdate(BaseModel):
    # Only keys present in the request body are written.
    part_number: Optional[str] = None
    description: Optional[str] = None
    min_qty: Optional[int] = None
    fixed_location_barcode: Optional[str] = None


class AliasCreate(BaseModel):
    alias: str


class AliasRead(BaseModel):
    alias: str
    part_id: int
    part_number: str


class ResolvedCode(BaseModel):
    code: str
    part_number: str
