from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.dentist import Specialization
from .auth import UserResponse


class DentistCreate(BaseModel):
    user_id: int
    specialization: List[Specialization] = Field(..., min_length=1)


class DentistUpdate(BaseModel):
    specialization: List[Specialization] = Field(..., min_length=1)


class DentistResponse(BaseModel):
    id: int
    user_id: int
    specialization: List[Specialization]
    user: Optional[UserResponse] = None

    class Config:
        from_attributes = True


class DentistStats(BaseModel):
    total_dentists: int
    active_dentists: int
    inactive_dentists: int
    specialization_stats: Dict[str, int]
