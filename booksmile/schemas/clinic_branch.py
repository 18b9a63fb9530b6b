from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class ClinicBranchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=30)
    email: EmailStr


class ClinicBranchUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    address: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, min_length=1, max_length=30)
    email: Optional[EmailStr] = None


class ClinicBranchResponse(BaseModel):
    id: int
    name: str
    address: str
    phone: str
    email: str

    class Config:
        from_attributes = True
