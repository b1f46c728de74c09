from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from partstore.schemas.parts import AliasCreate, AliasRead, PartCreate, PartRead, PartUpdate, ResolvedCode
from partstore.services import Services

from .deps import get_services

router = APIRouter()


@router.get("", response_model=List[PartRead])
async def list_parts(services: Services = Depends(get_services)):
    return await services.directory.list_parts()


@router.post("", response_model=PartRead, status_code=status.HTTP_201_CREATED)
async def create_part(payload: PartCreate, services: Services = Depends(get_services)):
    return await services.directory.create_part(
        payload.part_number,
        description=payload.description,
        min_qty=payload.min_qty,
        fixed_location_barcode=payload.fixed_location_barcode,
    )


@router.get("/by-number/{part_number}", response_model=PartRead)
async def get_part_by_number(part_number: str, services: Services = Depends(get_services)):
    part = await services.directory.find_part_by_number(part_number)
    if not part:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Part not found")
    return part


@router.get("/resolve/{code}", response_model=ResolvedCode)
async def resolve_code(code: str, services: Services = Depends(get_services)):
    part_number = await services.directory.resolve_alias(code)
    return ResolvedCode(code=code.strip(), part_number=part_number)


@router.patch("/{part_id}", response_model=PartRead)
async def update_part(part_id: int, payload: PartUpdate, services: Services = Depends(get_services)):
    data = payload.model_dump(exclude_unset=True)
    return await services.directory.update_part(part_id, **data)


@router.delete("/{part_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_part(part_id: int, services: Services = Depends(get_services)):
    await services.directory.delete_part(part_id)


@router.get("/{part_number}/aliases", response_model=List[str])
async def list_aliases(part_number: str, services: Services = Depends(get_services)):
    return await services.directory.list_aliases(part_number)


@router.post("/{part_number}/aliases", response_model=AliasRead, status_code=status.HTTP_201_CREATED)
async def add_alias(part_number: str, payload: AliasCreate, services: Services = Depends(get_services)):
    return await services.directory.add_alias(part_number, payload.alias)


@router.delete("/aliases/{alias}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_alias(alias: str, services: Services = Depends(get_services)):
    await services.directory.remove_alias(alias)
