from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.security import Actor
from ...api.deps import get_actor, get_staff_user
from ...services.patient_profile_service import PatientProfileService
from ...schemas.patient_profile import (
    PatientProfileCreate, PatientProfileUpdate,
    PatientProfileResponse, PatientProfileExists
)
from ...schemas.common import ApiResponse, Page, paginate

router = APIRouter(prefix="/patient-profiles", tags=["Patient Profiles"])

@router.post("", response_model=ApiResponse[PatientProfileResponse], status_code=201)
async def create_profile(
    data: PatientProfileCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    profile = PatientProfileService(db).create_profile(data, actor)
    return ApiResponse(
        data=PatientProfileResponse.model_validate(profile),
        message="Profile created successfully"
    )

@router.get(
    "",
    response_model=ApiResponse[Page[PatientProfileResponse]],
    dependencies=[Depends(get_staff_user)]
)
async def list_profiles(
    search: Optional[str] = Query(default=None, description="Matches first or last name"),
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db)
):
    profiles, total = PatientProfileService(db).list_profiles(search=search, limit=limit, offset=offset)
    items = [PatientProfileResponse.model_validate(p) for p in profiles]
    return ApiResponse(data=paginate(items, total, limit, offset))

@router.get("/me", response_model=ApiResponse[PatientProfileResponse])
async def get_my_profile(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    profile = PatientProfileService(db).get_by_user_id(actor.user_id, actor)
    return ApiResponse(data=PatientProfileResponse.model_validate(profile))

@router.get("/me/exists", response_model=ApiResponse[PatientProfileExists])
async def has_my_profile(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    has_profile = PatientProfileService(db).has_profile(actor.user_id)
    return ApiResponse(data=PatientProfileExists(has_profile=has_profile))

@router.get("/user/{user_id}", response_model=ApiResponse[PatientProfileResponse])
async def get_profile_by_user(user_id: int, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    profile = PatientProfileService(db).get_by_user_id(user_id, actor)
    return ApiResponse(data=PatientProfileResponse.model_validate(profile))

@router.get("/{profile_id}", response_model=ApiResponse[PatientProfileResponse])
async def get_profile(profile_id: int, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    profile = PatientProfileService(db).get_profile(profile_id, actor)
    return ApiResponse(data=PatientProfileResponse.model_validate(profile))

@router.put("/user/{user_id}", response_model=ApiResponse[PatientProfileResponse])
async def update_profile(
    user_id: int,
    data: PatientProfileUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    profile = PatientProfileService(db).update_profile(user_id, data, actor)
    return ApiResponse(
        data=PatientProfileResponse.model_validate(profile),
        message="Profile updated successfully"
    )

@router.delete("/user/{user_id}", response_model=ApiResponse[None])
async def delete_profile(user_id: int, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    PatientProfileService(db).delete_profile(user_id, actor)
    return ApiResponse(message="Profile deleted successfully")
