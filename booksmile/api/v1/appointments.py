from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import date
from typing import List, Optional

from ...core.database import get_db
from ...core.security import Actor
from ...api.deps import get_actor
from ...models.appointment import AppointmentStatus
from ...services.appointment_service import AppointmentService
from ...services.booking_service import BookingService
from ...schemas.appointment import (
    AppointmentCreate, AppointmentReschedule, AppointmentCancel, AppointmentResponse,
    AppointmentDetailsUpdate, AppointmentAssignDentist
)
from ...schemas.availability import AvailabilityWindow
from ...schemas.common import ApiResponse, Page, paginate

router = APIRouter(prefix="/appointments", tags=["Appointments"])

# Routes that take a scheduling or row lock are sync and run in the threadpool

@router.post("", response_model=ApiResponse[AppointmentResponse], status_code=201)
def book_appointment(
    data: AppointmentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Request a slot; the appointment starts out pending."""
    appointment = BookingService(db).book(data, actor)
    return ApiResponse(
        data=AppointmentResponse.model_validate(appointment),
        message="Appointment created successfully"
    )

@router.get("", response_model=ApiResponse[Page[AppointmentResponse]])
async def list_appointments(
    patient_id: Optional[int] = None,
    dentist_id: Optional[int] = None,
    status: Optional[AppointmentStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    appointments, total = AppointmentService(db).list_appointments(
        actor,
        patient_id=patient_id,
        dentist_id=dentist_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset
    )
    items = [AppointmentResponse.model_validate(a) for a in appointments]
    return ApiResponse(data=paginate(items, total, limit, offset))

@router.get("/slots", response_model=ApiResponse[List[AvailabilityWindow]])
async def list_available_slots(
    dentist_id: int,
    date: date,
    duration_minutes: Optional[int] = Query(default=None, ge=5, le=480),
    db: Session = Depends(get_db),
    _: Actor = Depends(get_actor)
):
    """Bookable start times for a dentist on one date."""
    slots = BookingService(db).list_available_slots(dentist_id, date, duration_minutes)
    return ApiResponse(data=[AvailabilityWindow.from_range(slot) for slot in slots])

@router.get("/{appointment_id}", response_model=ApiResponse[AppointmentResponse])
async def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    appointment = AppointmentService(db).get_appointment(appointment_id, actor)
    return ApiResponse(data=AppointmentResponse.model_validate(appointment))

@router.put("/{appointment_id}", response_model=ApiResponse[AppointmentResponse])
def reschedule_appointment(
    appointment_id: int,
    data: AppointmentReschedule,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    appointment = BookingService(db).reschedule(appointment_id, data, actor)
    return ApiResponse(
        data=AppointmentResponse.model_validate(appointment),
        message="Appointment rescheduled successfully"
    )

@router.post("/{appointment_id}/confirm", response_model=ApiResponse[AppointmentResponse])
def confirm_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    appointment = AppointmentService(db).confirm(appointment_id, actor)
    return ApiResponse(
        data=AppointmentResponse.model_validate(appointment),
        message="Appointment confirmed"
    )

@router.post("/{appointment_id}/cancel", response_model=ApiResponse[AppointmentResponse])
def cancel_appointment(
    appointment_id: int,
    data: Optional[AppointmentCancel] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    reason = data.reason if data else None
    appointment = AppointmentService(db).cancel(appointment_id, actor, reason=reason)
    return ApiResponse(
        data=AppointmentResponse.model_validate(appointment),
        message="Appointment cancelled"
    )

@router.patch("/{appointment_id}/details", response_model=ApiResponse[AppointmentResponse])
async def update_appointment_details(
    appointment_id: int,
    data: AppointmentDetailsUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Update notes, treatment options or the dental form."""
    appointment = AppointmentService(db).update_details(appointment_id, data, actor)
    return ApiResponse(
        data=AppointmentResponse.model_validate(appointment),
        message="Appointment details updated"
    )

@router.patch("/{appointment_id}/dentist", response_model=ApiResponse[AppointmentResponse])
def assign_dentist(
    appointment_id: int,
    data: AppointmentAssignDentist,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Assign a different dentist to the same slot (staff only)."""
    appointment = BookingService(db).assign_dentist(appointment_id, data.dentist_id, actor)
    return ApiResponse(
        data=AppointmentResponse.model_validate(appointment),
        message="Dentist assigned"
    )
