from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel

from .parts import PartRead


class ScanRequest(BaseModel):
    # Left loosely typed so the ledger reports bad input with its own error shape.
    part_number: Optional[str] = None
    location_barcode: Optional[str] = None
    quantity: Any = 1
    action: str = "in"


class SetQuantityRequest(BaseModel):
    part_number: Optional[str] = None
    location_barcode: Optional[str] = None
    quantity: Any = None


class MovementRead(BaseModel):
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
    username: Optional[str] = None
    created_at: datetime
    fixed_location_assigned: bool = False
    alert_sent: bool = False


class StockLocationRow(BaseModel):
    location_id: int
    location_name: str
    barcode: str
    qty: int


class PartStock(BaseModel):
    part: PartRead
    total: int
    locations: List[StockLocationRow]


class TransactionRead(BaseModel):
    id: int
    action: str
    qty: int
    username: Optional[str] = None
    created_at: Optional[datetime] = None
    location_barcode: str
