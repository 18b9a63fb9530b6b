from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...api.deps import get_admin_user, get_current_user, get_staff_user
from ...models.dentist import Specialization
from ...services.dentist_service import DentistService
from ...schemas.dentist import DentistCreate, DentistUpdate, DentistResponse, DentistStats
from ...schemas.common import ApiResponse, Page, paginate

router = APIRouter(
    prefix="/dentists",
    tags=["Dentists"],
    dependencies=[Depends(get_current_user)]
)

@router.post(
    "",
    response_model=ApiResponse[DentistResponse],
    status_code=201,
    dependencies=[Depends(get_admin_user)]
)
async def create_dentist(data: DentistCreate, db: Session = Depends(get_db)):
    dentist = DentistService(db).create_dentist(data)
    return ApiResponse(
        data=DentistResponse.model_validate(dentist),
        message="Dentist created successfully"
    )

@router.get("", response_model=ApiResponse[Page[DentistResponse]])
async def list_dentists(
    specialization: Optional[Specialization] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db)
):
    dentists, total = DentistService(db).list_dentists(
        specialization=specialization,
        limit=limit,
        offset=offset
    )
    items = [DentistResponse.model_validate(d) for d in dentists]
    return ApiResponse(data=paginate(items, total, limit, offset))

@router.get(
    "/stats",
    response_model=ApiResponse[DentistStats],
    dependencies=[Depends(get_staff_user)]
)
async def get_dentist_stats(db: Session = Depends(get_db)):
    return ApiResponse(data=DentistStats(**DentistService(db).get_stats()))

@router.get("/user/{user_id}", response_model=ApiResponse[DentistResponse])
async def get_dentist_by_user(user_id: int, db: Session = Depends(get_db)):
    dentist = DentistService(db).get_by_user_id(user_id)
    return ApiResponse(data=DentistResponse.model_validate(dentist))

@router.get("/{dentist_id}", response_model=ApiResponse[DentistResponse])
async def get_dentist(dentist_id: int, db: Session = Depends(get_db)):
    dentist = DentistService(db).get_dentist(dentist_id)
    return ApiResponse(data=DentistResponse.model_validate(dentist))

@router.put(
    "/{dentist_id}",
    response_model=ApiResponse[DentistResponse],
    dependencies=[Depends(get_admin_user)]
)
async def update_dentist(dentist_id: int, data: DentistUpdate, db: Session = Depends(get_db)):
    dentist = DentistService(db).update_dentist(dentist_id, data)
    return ApiResponse(
        data=DentistResponse.model_validate(dentist),
        message="Dentist updated successfully"
    )

@router.delete(
    "/{dentist_id}",
    response_model=ApiResponse[None],
    dependencies=[Depends(get_admin_user)]
)
async def delete_dentist(dentist_id: int, db: Session = Depends(get_db)):
    DentistService(db).delete_dentist(dentist_id)
    return ApiResponse(message="Dentist deleted successfully")
