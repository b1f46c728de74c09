from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from partstore.schemas.stock import MovementRead, PartStock, ScanRequest, SetQuantityRequest, TransactionRead
from partstore.services import Services

from .deps import get_services, get_username

router = APIRouter()


@router.post("/scan", response_model=MovementRead)
async def scan(
    payload: ScanRequest,
    services: Services = Depends(get_services),
    username: Optional[str] = Depends(get_username),
):
    movement = await services.ledger.scan(
        payload.action,
        payload.part_number,
        payload.location_barcode,
        payload.quantity,
        username=username,
    )
    return movement.to_dict()


@router.post("/set", response_model=MovementRead)
async def set_quantity(
    payload: SetQuantityRequest,
    services: Services = Depends(get_services),
    username: Optional[str] = Depends(get_username),
):
    movement = await services.ledger.set_quantity(
        payload.part_number,
        payload.location_barcode,
        payload.quantity,
        username=username,
    )
    return movement.to_dict()


@router.get("/{part_number}", response_model=PartStock)
async def get_stock(part_number: str, services: Services = Depends(get_services)):
    return await services.ledger.stock_for_part(part_number)


@router.get("/{part_number}/history", response_model=List[TransactionRead])
async def get_history(
    part_number: str,
    limit: int = Query(100, ge=1, le=1000),
    services: Services = Depends(get_services),
):
    return await services.ledger.history(part_number, limit=limit)
