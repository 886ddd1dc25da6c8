"""Authorization rules, kept in one place so every handler applies the same ones."""
from typing import Optional

from horizonte.schemas import Appointment, SessionUser, UserRole


def is_superadmin(user: Optional[SessionUser]) -> bool:
    return user is not None and user.role == UserRole.SUPERADMIN


def can_manage_appointment(user: Optional[SessionUser], appointment: Appointment) -> bool:
    """Superadmins manage every appointment; psychologists only their own."""
    if user is None:
        return False
    if is_superadmin(user):
        return True
    return user.role == UserRole.PSYCHOLOGIST and appointment.psychologist_email.lower() == user.email.lower()
