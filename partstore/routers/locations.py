from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from partstore.schemas.locations import LocationCreate, LocationRead, LocationStock, LocationUpdate
from partstore.services import Services

from .deps import get_services

router = APIRouter()


@router.get("", response_model=List[LocationRead])
async def list_locations(services: Services = Depends(get_services)):
    return await services.directory.list_locations()


@router.post("", response_model=LocationRead, status_code=status.HTTP_201_CREATED)
async def create_location(payload: LocationCreate, services: Services = Depends(get_services)):
    return await services.directory.create_location(payload.name, payload.barcode)


@router.get("/by-barcode/{barcode}", response_model=LocationRead)
async def get_location_by_barcode(barcode: str, services: Services = Depends(get_services)):
    location = await services.directory.find_location_by_barcode(barcode)
    if not location:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    return location


@router.get("/by-barcode/{barcode}/stock", response_model=LocationStock)
async def get_location_stock(barcode: str, services: Services = Depends(get_services)):
    return await services.ledger.stock_at_location(barcode)


@router.patch("/{location_id}", response_model=LocationRead)
async def update_location(
    location_id: int,
    payload: LocationUpdate,
    services: Services = Depends(get_services),
):
    data = payload.model_dump(exclude_unset=True)
    return await services.directory.update_location(
        location_id,
        name=data.get("name"),
        barcode=data.get("barcode"),
    )


@router.delete("/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_location(location_id: int, services: Services = Depends(get_services)):
    await services.directory.delete_location(location_id)
