from datetime import date as DateType, datetime, time
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..core.time_range import TimeRange

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


# Python weekday() numbering, not JavaScript getDay() which starts at Sunday = 0
DAY_OF_WEEK_DESCRIPTION = "0 = Monday ... 6 = Sunday (Python weekday()); day names are also accepted"


def _parse_day_of_week(value: Union[int, str, None]) -> Optional[int]:
    if value is None or isinstance(value, int):
        return value
    normalized = value.strip().lower()
    if normalized.isdigit():
        return int(normalized)
    if normalized not in DAY_NAMES:
        raise ValueError("Invalid day of week")
    return DAY_NAMES.index(normalized)


class AvailabilityRuleCreate(BaseModel):
    dentist_id: int
    day_of_week: int = Field(..., ge=0, le=6, description=DAY_OF_WEEK_DESCRIPTION)
    start_time: time
    end_time: time
    break_start_time: Optional[time] = None
    break_end_time: Optional[time] = None
    clinic_branch_id: Optional[int] = None

    @field_validator("day_of_week", mode="before")
    @classmethod
    def parse_day_of_week(cls, value):
        return _parse_day_of_week(value)


class AvailabilityRuleUpdate(BaseModel):
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6, description=DAY_OF_WEEK_DESCRIPTION)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    break_start_time: Optional[time] = None
    break_end_time: Optional[time] = None
    clinic_branch_id: Optional[int] = None

    @field_validator("day_of_week", mode="before")
    @classmethod
    def parse_day_of_week(cls, value):
        return _parse_day_of_week(value)


class AvailabilityRuleResponse(BaseModel):
    id: int
    dentist_id: int
    day_of_week: int
    start_time: time
    end_time: time
    break_start_time: Optional[time] = None
    break_end_time: Optional[time] = None
    clinic_branch_id: Optional[int] = None

    class Config:
        from_attributes = True


class SpecificAvailabilityCreate(BaseModel):
    dentist_id: int
    date: DateType
    start_time: time
    end_time: time
    clinic_branch_id: Optional[int] = None


class SpecificAvailabilityUpdate(BaseModel):
    date: Optional[DateType] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    clinic_branch_id: Optional[int] = None


class SpecificAvailabilityResponse(BaseModel):
    id: int
    dentist_id: int
    date: DateType
    start_time: time
    end_time: time
    clinic_branch_id: Optional[int] = None

    class Config:
        from_attributes = True


class LeaveCreate(BaseModel):
    dentist_id: int
    start_date: DateType
    end_date: DateType
    reason: Optional[str] = Field(default=None, max_length=255)


class LeaveUpdate(BaseModel):
    start_date: Optional[DateType] = None
    end_date: Optional[DateType] = None
    reason: Optional[str] = Field(default=None, max_length=255)


class LeaveResponse(BaseModel):
    id: int
    dentist_id: int
    start_date: DateType
    end_date: DateType
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class AvailabilityWindow(BaseModel):
    """A bookable window: clinic-local wall-clock times plus the UTC instants."""

    start_time: time
    end_time: time
    starts_at: datetime
    ends_at: datetime

    @classmethod
    def from_range(cls, window: TimeRange) -> "AvailabilityWindow":
        return cls(
            start_time=window.local_start(),
            end_time=window.local_end(),
            starts_at=window.start,
            ends_at=window.end,
        )


class EffectiveAvailabilityResponse(BaseModel):
    dentist_id: int
    date: DateType
    windows: List[AvailabilityWindow]
