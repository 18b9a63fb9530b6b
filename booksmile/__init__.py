"""
Book A Smile

A FastAPI-based dental clinic booking service: dentist availability,
conflict-free appointment scheduling, an appointment status workflow and
in-app notifications, with role-based access control.
"""

__version__ = "1.0.0"
