from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Text, JSON, Index, Enum as SQLEnum, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base
from ..core.time_range import TimeRange

class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

# Statuses that hold a slot on the dentist's calendar
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    dentist_id = Column(Integer, ForeignKey("dentists.id"), nullable=False)
    scheduled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    clinic_branch_id = Column(Integer, ForeignKey("clinic_branches.id"), nullable=True)

    # Appointment details; start/end are naive UTC, the date is clinic-local
    appointment_date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(
        SQLEnum(
            AppointmentStatus,
            name="appointment_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )
    notes = Column(Text, nullable=True)
    treatment_options = Column(JSON, nullable=False, default=list)
    # Structured dental intake form (symptoms, history) filled in at booking
    detailed_notes = Column(JSON, nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    cancelled_reason = Column(String(255), nullable=True)

    # Relationships
    patient = relationship("User", foreign_keys=[patient_id])
    scheduled_by_user = relationship("User", foreign_keys=[scheduled_by])
    dentist = relationship("Dentist", back_populates="appointments")
    clinic_branch = relationship("ClinicBranch")
    notifications = relationship("Notification", back_populates="appointment")

    __table_args__ = (
        Index("idx_appointments_dentist_date", "dentist_id", "appointment_date"),
        # One active booking per dentist start instant; cancelled rows are kept for history
        Index(
            "uq_appointments_active_slot",
            "dentist_id",
            "start_time",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )

    @property
    def time_range(self) -> TimeRange:
        return TimeRange.from_storage(self.start_time, self.end_time)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self):
        return f"<Appointment(id={self.id}, patient_id={self.patient_id}, dentist_id={self.dentist_id}, date='{self.appointment_date}', status='{self.status}')>"
