from .user import User, RefreshToken
from .clinic_branch import ClinicBranch
from .dentist import Dentist, Specialization
from .availability import AvailabilityRule, SpecificAvailability, Leave
from .appointment import Appointment, AppointmentStatus, ACTIVE_STATUSES
from .notification import Notification, NotificationType
from .patient_profile import PatientProfile

__all__ = [
    "User",
    "RefreshToken",
    "ClinicBranch",
    "Dentist",
    "Specialization",
    "AvailabilityRule",
    "SpecificAvailability",
    "Leave",
    "Appointment",
    "AppointmentStatus",
    "ACTIVE_STATUSES",
    "Notification",
    "NotificationType",
    "PatientProfile",
]
