"""Dentist availability: weekly rules, date overrides and leaves."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Time, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class AvailabilityRule(Base):
    """Recurring weekly working hours. ``day_of_week`` follows ``date.weekday()``."""
    __tablename__ = "dentist_availability"

    id = Column(Integer, primary_key=True, index=True)
    dentist_id = Column(Integer, ForeignKey("dentists.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday

    # Clinic-local wall-clock times
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    break_start_time = Column(Time, nullable=True)
    break_end_time = Column(Time, nullable=True)

    clinic_branch_id = Column(Integer, ForeignKey("clinic_branches.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    dentist = relationship("Dentist", back_populates="availability_rules")
    clinic_branch = relationship("ClinicBranch")

    __table_args__ = (
        Index("idx_availability_dentist_day", "dentist_id", "day_of_week"),
    )

    def __repr__(self):
        return (
            f"<AvailabilityRule(id={self.id}, dentist_id={self.dentist_id}, "
            f"day_of_week={self.day_of_week}, {self.start_time}-{self.end_time})>"
        )

class SpecificAvailability(Base):
    """Working hours for one calendar date, replacing the weekly rule."""
    __tablename__ = "specific_dentist_availability"

    id = Column(Integer, primary_key=True, index=True)
    dentist_id = Column(Integer, ForeignKey("dentists.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    clinic_branch_id = Column(Integer, ForeignKey("clinic_branches.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    dentist = relationship("Dentist", back_populates="specific_availabilities")
    clinic_branch = relationship("ClinicBranch")

    __table_args__ = (
        Index("idx_specific_availability_dentist_date", "dentist_id", "date"),
    )

    def __repr__(self):
        return (
            f"<SpecificAvailability(id={self.id}, dentist_id={self.dentist_id}, "
            f"date={self.date}, {self.start_time}-{self.end_time})>"
        )

class Leave(Base):
    """Inclusive date range during which the dentist takes no appointments."""
    __tablename__ = "dentist_leaves"

    id = Column(Integer, primary_key=True, index=True)
    dentist_id = Column(Integer, ForeignKey("dentists.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    dentist = relationship("Dentist", back_populates="leaves")

    __table_args__ = (
        Index("idx_leaves_dentist_range", "dentist_id", "start_date", "end_date"),
    )

    def __repr__(self):
        return f"<Leave(id={self.id}, dentist_id={self.dentist_id}, {self.start_date}..{self.end_date})>"
