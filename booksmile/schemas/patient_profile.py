import enum
import re
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

PHONE_PATTERN = re.compile(r"^\+?[0-9\s\-()]+$")


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    PREFER_NOT_TO_SAY = "prefer-not-to-say"


class EmergencyContactRelationship(str, enum.Enum):
    SPOUSE = "spouse"
    PARENT = "parent"
    CHILD = "child"
    SIBLING = "sibling"
    RELATIVE = "relative"
    FRIEND = "friend"
    GUARDIAN = "guardian"
    OTHER = "other"


def _check_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not 10 <= len(value) <= 15:
        raise ValueError("Phone number must be 10 to 15 characters")
    if not PHONE_PATTERN.match(value):
        raise ValueError("Phone number may only contain digits, spaces, dashes, parentheses and a leading +")
    return value


def _check_birth_date(value: Optional[date]) -> Optional[date]:
    if value is not None and value > date.today():
        raise ValueError("Birth date cannot be in the future")
    return value


class PatientProfileBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    middle_initial: Optional[str] = Field(default=None, max_length=5)
    birth_date: date
    gender: Gender
    phone_number: str
    address: str = Field(..., min_length=5, max_length=200)
    region: str = Field(..., min_length=1, max_length=100)
    province: str = Field(..., min_length=1, max_length=100)
    city: str = Field(..., min_length=1, max_length=100)
    barangay: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., pattern=r"^\d{4,10}$")
    country: str = Field(default="Philippines", min_length=1, max_length=100)
    emergency_contact_name: Optional[str] = Field(default=None, max_length=100)
    emergency_contact_phone_number: Optional[str] = None
    emergency_contact_relationship: Optional[EmergencyContactRelationship] = None

    class Config:
        use_enum_values = True

    @field_validator("phone_number", "emergency_contact_phone_number")
    @classmethod
    def validate_phone(cls, value: Optional[str]) -> Optional[str]:
        return _check_phone(value)

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, value: date) -> date:
        return _check_birth_date(value)


class PatientProfileCreate(PatientProfileBase):
    user_id: Optional[int] = Field(
        default=None, description="Defaults to the authenticated user"
    )


class PatientProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    middle_initial: Optional[str] = Field(default=None, max_length=5)
    birth_date: Optional[date] = None
    gender: Optional[Gender] = None
    phone_number: Optional[str] = None
    address: Optional[str] = Field(default=None, min_length=5, max_length=200)
    region: Optional[str] = Field(default=None, min_length=1, max_length=100)
    province: Optional[str] = Field(default=None, min_length=1, max_length=100)
    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    barangay: Optional[str] = Field(default=None, min_length=1, max_length=100)
    zip_code: Optional[str] = Field(default=None, pattern=r"^\d{4,10}$")
    country: Optional[str] = Field(default=None, min_length=1, max_length=100)
    emergency_contact_name: Optional[str] = Field(default=None, max_length=100)
    emergency_contact_phone_number: Optional[str] = None
    emergency_contact_relationship: Optional[EmergencyContactRelationship] = None

    class Config:
        use_enum_values = True

    @field_validator("phone_number", "emergency_contact_phone_number")
    @classmethod
    def validate_phone(cls, value: Optional[str]) -> Optional[str]:
        return _check_phone(value)

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, value: Optional[date]) -> Optional[date]:
        return _check_birth_date(value)


class PatientProfileResponse(PatientProfileBase):
    id: int
    user_id: int

    class Config:
        from_attributes = True


class PatientProfileExists(BaseModel):
    has_profile: bool
