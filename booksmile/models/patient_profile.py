from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class PatientProfile(Base):
    __tablename__ = "patient_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # Personal information
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    middle_initial = Column(String(5), nullable=True)
    birth_date = Column(Date, nullable=False)
    gender = Column(String(20), nullable=False)

    # Contact information
    phone_number = Column(String(15), nullable=False)
    address = Column(String(200), nullable=False)
    region = Column(String(100), nullable=False)
    province = Column(String(100), nullable=False)
    city = Column(String(100), nullable=False)
    barangay = Column(String(100), nullable=False)
    zip_code = Column(String(10), nullable=False)
    country = Column(String(100), nullable=False, default="Philippines")

    # Emergency contact
    emergency_contact_name = Column(String(100), nullable=True)
    emergency_contact_phone_number = Column(String(15), nullable=True)
    emergency_contact_relationship = Column(String(20), nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="patient_profile")

    def __repr__(self):
        return f"<PatientProfile(id={self.id}, name='{self.first_name} {self.last_name}')>"
