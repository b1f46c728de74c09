from typing import Optional, Union

from fastapi import APIRouter, Depends, File, Query, UploadFile

from partstore.schemas.imports import ImportPreview, ImportReportRead
from partstore.services import Services

from .deps import get_services, get_username

router = APIRouter()


@router.post("", response_model=Union[ImportReportRead, ImportPreview])
async def import_file(
    file: UploadFile = File(...),
    apply: bool = Query(False, description="Write the rows; without it the upload is only previewed"),
    services: Services = Depends(get_services),
    username: Optional[str] = Depends(get_username),
):
    payload = await file.read()
    return await services.reconciler.run(payload, file.filename, apply=apply, username=username)
