from datetime import date as DateType, datetime, time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..core.config import settings
from ..core.time_range import from_storage
from ..models.appointment import AppointmentStatus


def _normalize_notes(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > settings.MAX_NOTES_LENGTH:
        raise ValueError(f"Notes must be {settings.MAX_NOTES_LENGTH} characters or fewer.")
    return normalized


class AppointmentCreate(BaseModel):
    dentist_id: int
    patient_id: Optional[int] = Field(
        default=None, description="Defaults to the authenticated patient"
    )
    appointment_date: DateType
    start_time: time
    end_time: Optional[time] = Field(
        default=None, description="Defaults to start_time + DEFAULT_APPOINTMENT_MINUTES"
    )
    notes: Optional[str] = None
    treatment_options: List[str] = []
    clinic_branch_id: Optional[int] = None
    detailed_notes: Optional[Dict[str, Any]] = Field(
        default=None, description="Dental intake form answers"
    )

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_notes(value)

    @field_validator("treatment_options")
    @classmethod
    def validate_treatment_options(cls, value: List[str]) -> List[str]:
        return [option.strip() for option in value if option and option.strip()]


class AppointmentReschedule(BaseModel):
    appointment_date: DateType
    start_time: time
    end_time: Optional[time] = None
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_notes(value)


class AppointmentDetailsUpdate(BaseModel):
    """Clinical details of a booking; the slot and status are changed elsewhere."""

    notes: Optional[str] = None
    treatment_options: Optional[List[str]] = None
    detailed_notes: Optional[Dict[str, Any]] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_notes(value)

    @field_validator("treatment_options")
    @classmethod
    def validate_treatment_options(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        return [option.strip() for option in value if option and option.strip()]


class AppointmentAssignDentist(BaseModel):
    dentist_id: int


class AppointmentCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class AppointmentResponse(BaseModel):
    id: int
    dentist_id: int
    patient_id: int
    scheduled_by: Optional[int] = None
    clinic_branch_id: Optional[int] = None
    appointment_date: DateType
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    notes: Optional[str] = None
    treatment_options: List[str] = []
    detailed_notes: Optional[Dict[str, Any]] = None
    cancelled_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("start_time", "end_time")
    @classmethod
    def attach_utc(cls, value: datetime) -> datetime:
        return from_storage(value)

    @field_validator("treatment_options", mode="before")
    @classmethod
    def default_treatment_options(cls, value):
        return value or []
