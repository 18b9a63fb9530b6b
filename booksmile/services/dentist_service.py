from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import logging

from ..core.config import settings
from ..core.exceptions import NotFoundError
from ..core.security import UserRole
from ..core.time_range import clinic_tz
from ..models.appointment import Appointment, ACTIVE_STATUSES
from ..models.availability import AvailabilityRule
from ..models.dentist import Dentist, Specialization
from ..models.user import User
from ..schemas.dentist import DentistCreate, DentistUpdate

logger = logging.getLogger(__name__)

class DentistService:
    def __init__(self, db: Session):
        self.db = db

    def create_dentist(self, data: DentistCreate) -> Dentist:
        """Attach a dentist profile to an existing dentist user."""
        user = self.db.get(User, data.user_id)
        if not user:
            raise NotFoundError("User not found", f"No user found with id {data.user_id}")

        if user.role != UserRole.DENTIST:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User must have the dentist role"
            )

        if self.db.query(Dentist).filter(Dentist.user_id == user.id).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Dentist profile already exists for this user"
            )

        dentist = Dentist(
            user_id=user.id,
            specialization=[Specialization(s).value for s in data.specialization],
        )
        self.db.add(dentist)
        self.db.commit()
        self.db.refresh(dentist)

        logger.info(f"Dentist profile {dentist.id} created for user {user.id}")
        return dentist

    def get_dentist(self, dentist_id: int) -> Dentist:
        dentist = self.db.get(Dentist, dentist_id)
        if not dentist:
            raise NotFoundError("Dentist not found", f"No dentist found with id {dentist_id}")
        return dentist

    def get_by_user_id(self, user_id: int) -> Dentist:
        dentist = self.db.query(Dentist).filter(Dentist.user_id == user_id).first()
        if not dentist:
            raise NotFoundError("Dentist not found", f"No dentist profile for user {user_id}")
        return dentist

    def list_dentists(
        self,
        specialization: Optional[Specialization] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[Dentist], int]:
        dentists = self.db.query(Dentist).order_by(Dentist.id).all()

        # JSON containment differs per backend; the dentist roster is small
        if specialization is not None:
            wanted = Specialization(specialization).value
            dentists = [d for d in dentists if wanted in (d.specialization or [])]

        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        return dentists[offset:offset + limit], len(dentists)

    def update_dentist(self, dentist_id: int, data: DentistUpdate) -> Dentist:
        dentist = self.get_dentist(dentist_id)
        dentist.specialization = [Specialization(s).value for s in data.specialization]
        self.db.commit()
        self.db.refresh(dentist)
        return dentist

    def delete_dentist(self, dentist_id: int) -> None:
        """Remove a dentist profile and its schedule; the user account stays."""
        dentist = self.get_dentist(dentist_id)

        today = datetime.now(clinic_tz()).date()
        upcoming = self.db.query(Appointment).filter(
            Appointment.dentist_id == dentist.id,
            Appointment.appointment_date >= today,
            Appointment.status.in_(ACTIVE_STATUSES)
        ).first()
        if upcoming:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot delete dentist with upcoming appointments"
            )

        # Past appointments keep their dentist; the profile stays while any exist
        if self.db.query(Appointment).filter(Appointment.dentist_id == dentist.id).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Dentist still has appointment history"
            )

        self.db.delete(dentist)
        self.db.commit()
        logger.info(f"Dentist profile {dentist_id} deleted")

    def get_stats(self) -> Dict:
        """Roster counts; a dentist counts as active once they have weekly hours."""
        dentists = self.db.query(Dentist).all()
        scheduled = {
            dentist_id for (dentist_id,) in self.db.query(AvailabilityRule.dentist_id).distinct()
        }

        by_specialization = Counter()
        for dentist in dentists:
            by_specialization.update(dentist.specialization or [])

        active = sum(1 for dentist in dentists if dentist.id in scheduled)
        return {
            "total_dentists": len(dentists),
            "active_dentists": active,
            "inactive_dentists": len(dentists) - active,
            "specialization_stats": dict(by_specialization),
        }
