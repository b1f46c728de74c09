from typing import List, Optional

from pydantic import BaseModel, field_validator


class LocationRead(BaseModel):
    id: int
    name: str
    barcode: str


class LocationCreate(BaseModel):
    name: str
    barcode: str

    @field_validator("name", "barcode")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v


class LocationUpdate(BaseModel):
    name: Optional[str] = None
    barcode: Optional[str] = None


class LocationStockRow(BaseModel):
    part_id: int
    part_number: str
    description: Optional[str] = None
    qty: int


class LocationStock(BaseModel):
    location: LocationRead
    parts: List[LocationStockRow]
