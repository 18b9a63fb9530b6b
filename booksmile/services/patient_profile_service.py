from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
import logging

from ..core.config import settings
from ..core.exceptions import InvalidRequestError, NotFoundError
from ..core.security import Actor, AuthorizationError
from ..models.patient_profile import PatientProfile
from ..models.user import User
from ..schemas.patient_profile import PatientProfileCreate, PatientProfileUpdate

logger = logging.getLogger(__name__)

class PatientProfileService:
    """Basic personal and contact information kept alongside a user account."""

    def __init__(self, db: Session):
        self.db = db

    def _check_access(self, user_id: int, actor: Actor) -> None:
        if actor.user_id != user_id and not actor.role.is_staff:
            raise AuthorizationError("You can only access your own profile")

    def create_profile(self, data: PatientProfileCreate, actor: Actor) -> PatientProfile:
        user_id = data.user_id if data.user_id is not None else actor.user_id
        self._check_access(user_id, actor)

        user = self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found", f"No user found with id {user_id}")

        if self.has_profile(user_id):
            raise InvalidRequestError(
                "Profile already exists",
                f"User {user_id} already has basic information on file"
            )

        profile = PatientProfile(user_id=user_id, **data.model_dump(exclude={"user_id"}))
        self.db.add(profile)
        # The account's display name follows the profile
        user.name = f"{profile.first_name} {profile.last_name}"
        self.db.commit()
        self.db.refresh(profile)

        logger.info(f"Patient profile created for user {user_id}")
        return profile

    def get_profile(self, profile_id: int, actor: Actor) -> PatientProfile:
        profile = self.db.get(PatientProfile, profile_id)
        if not profile:
            raise NotFoundError("Profile not found", f"No profile found with id {profile_id}")
        self._check_access(profile.user_id, actor)
        return profile

    def get_by_user_id(self, user_id: int, actor: Actor) -> PatientProfile:
        self._check_access(user_id, actor)
        profile = self.db.query(PatientProfile).filter(PatientProfile.user_id == user_id).first()
        if not profile:
            raise NotFoundError("Profile not found", f"No profile found for user {user_id}")
        return profile

    def has_profile(self, user_id: int) -> bool:
        return self.db.query(PatientProfile.id).filter(PatientProfile.user_id == user_id).first() is not None

    def list_profiles(
        self,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[PatientProfile], int]:
        query = self.db.query(PatientProfile)

        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(PatientProfile.first_name).like(pattern),
                func.lower(PatientProfile.last_name).like(pattern),
            ))

        total = query.count()
        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        items = (
            query.order_by(PatientProfile.first_name, PatientProfile.last_name)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    def update_profile(self, user_id: int, data: PatientProfileUpdate, actor: Actor) -> PatientProfile:
        profile = self.get_by_user_id(user_id, actor)

        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            # Required columns cannot be cleared
            if value is None and not PatientProfile.__table__.c[field].nullable:
                continue
            setattr(profile, field, value)

        if "first_name" in changes or "last_name" in changes:
            profile.user.name = f"{profile.first_name} {profile.last_name}"

        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Patient profile for user {user_id} updated by user {actor.user_id}")
        return profile

    def delete_profile(self, user_id: int, actor: Actor) -> None:
        profile = self.get_by_user_id(user_id, actor)
        self.db.delete(profile)
        self.db.commit()
        logger.info(f"Patient profile for user {user_id} deleted by user {actor.user_id}")
