from sqlalchemy import Column, Integer, ForeignKey, DateTime, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class Specialization(str, enum.Enum):
    GENERAL_DENTISTRY = "general-dentistry"
    ORTHODONTICS = "orthodontics"
    PERIODONTICS = "periodontics"
    ENDODONTICS = "endodontics"
    ORAL_SURGERY = "oral-surgery"
    PROSTHODONTICS = "prosthodontics"
    PEDIATRIC_DENTISTRY = "pediatric-dentistry"
    ORAL_PATHOLOGY = "oral-pathology"
    ORAL_RADIOLOGY = "oral-radiology"
    COSMETIC_DENTISTRY = "cosmetic-dentistry"
    IMPLANTOLOGY = "implantology"
    MAXILLOFACIAL_SURGERY = "maxillofacial-surgery"

class Dentist(Base):
    __tablename__ = "dentists"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    # List of Specialization values
    specialization = Column(JSON, nullable=False, default=list)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="dentist")
    availability_rules = relationship(
        "AvailabilityRule", back_populates="dentist", cascade="all, delete-orphan"
    )
    specific_availabilities = relationship(
        "SpecificAvailability", back_populates="dentist", cascade="all, delete-orphan"
    )
    leaves = relationship("Leave", back_populates="dentist", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="dentist")

    def __repr__(self):
        return f"<Dentist(id={self.id}, user_id={self.user_id}, specialization={self.specialization})>"
