from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional

from ...core.database import get_db
from ...core.security import Actor
from ...api.deps import get_actor, get_current_user
from ...services.availability_service import AvailabilityService
from ...schemas.availability import (
    AvailabilityRuleCreate, AvailabilityRuleUpdate, AvailabilityRuleResponse,
    SpecificAvailabilityCreate, SpecificAvailabilityUpdate, SpecificAvailabilityResponse,
    LeaveCreate, LeaveUpdate, LeaveResponse,
    AvailabilityWindow, EffectiveAvailabilityResponse
)
from ...schemas.common import ApiResponse, Page, paginate
from ...schemas.dentist import DentistResponse

router = APIRouter(
    prefix="/availability",
    tags=["Availability"],
    dependencies=[Depends(get_current_user)]
)

@router.get("/dentist/{user_id}", response_model=ApiResponse[DentistResponse])
async def get_dentist_by_user(user_id: int, db: Session = Depends(get_db)):
    """Resolve the dentist profile behind a user account."""
    dentist = AvailabilityService(db).get_dentist_by_user_id(user_id)
    return ApiResponse(data=DentistResponse.model_validate(dentist))

@router.get("/effective", response_model=ApiResponse[EffectiveAvailabilityResponse])
async def get_effective_availability(
    dentist_id: int,
    date: date,
    db: Session = Depends(get_db)
):
    """Working windows for one date after overrides and leaves are applied."""
    windows = AvailabilityService(db).get_effective_availability(dentist_id, date)
    return ApiResponse(data=EffectiveAvailabilityResponse(
        dentist_id=dentist_id,
        date=date,
        windows=[AvailabilityWindow.from_range(window) for window in windows]
    ))

# Writes take the per-dentist availability lock and run in the threadpool

# Weekly rules

@router.post("/dentist-availability", response_model=ApiResponse[AvailabilityRuleResponse], status_code=201)
def create_rule(
    data: AvailabilityRuleCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    rule = AvailabilityService(db).add_rule(data, actor)
    return ApiResponse(
        data=AvailabilityRuleResponse.model_validate(rule),
        message="Dentist availability created successfully"
    )

@router.get("/dentist-availability", response_model=ApiResponse[Page[AvailabilityRuleResponse]])
async def list_rules(
    dentist_id: Optional[int] = None,
    day_of_week: Optional[int] = Query(default=None, ge=0, le=6),
    clinic_branch_id: Optional[int] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db)
):
    rules, total = AvailabilityService(db).list_rules(
        dentist_id=dentist_id,
        day_of_week=day_of_week,
        clinic_branch_id=clinic_branch_id,
        limit=limit,
        offset=offset
    )
    items = [AvailabilityRuleResponse.model_validate(rule) for rule in rules]
    return ApiResponse(data=paginate(items, total, limit, offset))

@router.get("/dentist-availability/{rule_id}", response_model=ApiResponse[AvailabilityRuleResponse])
async def get_rule(rule_id: int, db: Session = Depends(get_db)):
    rule = AvailabilityService(db).get_rule(rule_id)
    return ApiResponse(data=AvailabilityRuleResponse.model_validate(rule))

@router.put("/dentist-availability/{rule_id}", response_model=ApiResponse[AvailabilityRuleResponse])
def update_rule(
    rule_id: int,
    data: AvailabilityRuleUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    rule = AvailabilityService(db).update_rule(rule_id, data, actor)
    return ApiResponse(
        data=AvailabilityRuleResponse.model_validate(rule),
        message="Dentist availability updated successfully"
    )

@router.delete("/dentist-availability/{rule_id}", response_model=ApiResponse[None])
def delete_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    AvailabilityService(db).delete_rule(rule_id, actor)
    return ApiResponse(message="Dentist availability deleted successfully")

# Date-specific overrides

@router.post("/specific-availability", response_model=ApiResponse[SpecificAvailabilityResponse], status_code=201)
def create_override(
    data: SpecificAvailabilityCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    override = AvailabilityService(db).add_override(data, actor)
    return ApiResponse(
        data=SpecificAvailabilityResponse.model_validate(override),
        message="Specific availability created successfully"
    )

@router.get("/specific-availability", response_model=ApiResponse[Page[SpecificAvailabilityResponse]])
async def list_overrides(
    dentist_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    clinic_branch_id: Optional[int] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db)
):
    overrides, total = AvailabilityService(db).list_overrides(
        dentist_id=dentist_id,
        date_from=date_from,
        date_to=date_to,
        clinic_branch_id=clinic_branch_id,
        limit=limit,
        offset=offset
    )
    items = [SpecificAvailabilityResponse.model_validate(o) for o in overrides]
    return ApiResponse(data=paginate(items, total, limit, offset))

@router.get("/specific-availability/{override_id}", response_model=ApiResponse[SpecificAvailabilityResponse])
async def get_override(override_id: int, db: Session = Depends(get_db)):
    override = AvailabilityService(db).get_override(override_id)
    return ApiResponse(data=SpecificAvailabilityResponse.model_validate(override))

@router.put("/specific-availability/{override_id}", response_model=ApiResponse[SpecificAvailabilityResponse])
def update_override(
    override_id: int,
    data: SpecificAvailabilityUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    override = AvailabilityService(db).update_override(override_id, data, actor)
    return ApiResponse(
        data=SpecificAvailabilityResponse.model_validate(override),
        message="Specific availability updated successfully"
    )

@router.delete("/specific-availability/{override_id}", response_model=ApiResponse[None])
def delete_override(
    override_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    AvailabilityService(db).delete_override(override_id, actor)
    return ApiResponse(message="Specific availability deleted successfully")

# Leaves

@router.post("/leaves", response_model=ApiResponse[LeaveResponse], status_code=201)
def create_leave(
    data: LeaveCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    leave = AvailabilityService(db).add_leave(data, actor)
    return ApiResponse(data=LeaveResponse.model_validate(leave), message="Leave created successfully")

@router.get("/leaves", response_model=ApiResponse[Page[LeaveResponse]])
async def list_leaves(
    dentist_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db)
):
    leaves, total = AvailabilityService(db).list_leaves(
        dentist_id=dentist_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset
    )
    items = [LeaveResponse.model_validate(leave) for leave in leaves]
    return ApiResponse(data=paginate(items, total, limit, offset))

@router.get("/leaves/{leave_id}", response_model=ApiResponse[LeaveResponse])
async def get_leave(leave_id: int, db: Session = Depends(get_db)):
    leave = AvailabilityService(db).get_leave(leave_id)
    return ApiResponse(data=LeaveResponse.model_validate(leave))

@router.put("/leaves/{leave_id}", response_model=ApiResponse[LeaveResponse])
def update_leave(
    leave_id: int,
    data: LeaveUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    leave = AvailabilityService(db).update_leave(leave_id, data, actor)
    return ApiResponse(data=LeaveResponse.model_validate(leave), message="Leave updated successfully")

@router.delete("/leaves/{leave_id}", response_model=ApiResponse[None])
def delete_leave(
    leave_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    AvailabilityService(db).delete_leave(leave_id, actor)
    return ApiResponse(message="Leave deleted successfully")
