from __future__ import annotations
import string
from typing import Annotated, Optional, List, Literal
from datetime import datetime, timezone
from enum import Enum

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, EmailStr
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Rooms are identified by a single letter
ROOM_IDS = tuple(string.ascii_uppercase)


class UserRole(str, Enum):
    SUPERADMIN = "superadmin"
    PSYCHOLOGIST = "psychologist"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


APPOINTMENT_STATUSES = tuple(s.value for s in AppointmentStatus)

Gender = Literal["male", "female", "other", "prefer_not_say"]
RoomType = Literal["individual", "family", "group", "evaluation", "relaxation"]


class CamelModel(BaseModel):
    """
    Stored records and API bodies use camelCase keys (patientName,
    isAvailable, ...); Python code uses the snake_case attribute names.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


def _room_id(value: str) -> str:
    value = value.strip().upper()
    if value not in ROOM_IDS:
        raise ValueError("room id must be a single letter A-Z")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]
RoomId = Annotated[str, AfterValidator(_room_id)]


# ---------- Users ----------

class SessionUser(CamelModel):
    """The identity attached to a request by the session gate."""
    id: str
    email: str
    role: UserRole
    name: Optional[str] = None


class UserProfile(CamelModel):
    id: str
    email: str
    role: UserRole
    name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    is_active: bool = True
    dni: Optional[str] = None
    specialty: Optional[str] = None
    custom_specialty: Optional[str] = None
    license_number: Optional[str] = None
    phone: Optional[str] = None
    education: Optional[str] = None
    experience_years: Optional[int] = None
    bio: Optional[str] = None


class User(UserProfile):
    password_hash: str

    def to_session_user(self) -> SessionUser:
        return SessionUser(id=self.id, email=self.email, role=self.role, name=self.name)

    def to_profile(self) -> UserProfile:
        return UserProfile.model_validate(self.model_dump(exclude={"password_hash"}))


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class PsychologistCreate(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: NonBlankStr
    role: UserRole = UserRole.PSYCHOLOGIST
    dni: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9]{7,30}$")
    specialty: Optional[str] = None
    custom_specialty: Optional[str] = None
    license_number: Optional[str] = None
    phone: Optional[str] = None
    education: Optional[str] = None
    experience_years: Optional[int] = Field(None, ge=0, le=50)
    bio: Optional[str] = None


class PsychologistUpdate(CamelModel):
    name: Optional[NonBlankStr] = None
    password: Optional[str] = Field(None, min_length=8)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    dni: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9]{7,30}$")
    specialty: Optional[str] = None
    custom_specialty: Optional[str] = None
    license_number: Optional[str] = None
    phone: Optional[str] = None
    education: Optional[str] = None
    experience_years: Optional[int] = Field(None, ge=0, le=50)
    bio: Optional[str] = None


class SessionRecord(CamelModel):
    user_email: str
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime


# ---------- Patients ----------

class EmergencyContact(CamelModel):
    name: str
    phone: str
    relationship: str


class PatientFields(CamelModel):
    dni: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None  # YYYY-MM-DD
    gender: Optional[Gender] = None
    address: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None
    medical_history: Optional[str] = None
    notes: Optional[str] = None


class Patient(PatientFields):
    id: str = ""
    name: str
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PatientProfile(CamelModel):
    id: str
    name: str
    dni: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class PatientCreate(PatientFields):
    name: NonBlankStr
    is_active: bool = True


class PatientUpdate(PatientFields):
    name: Optional[NonBlankStr] = None
    is_active: Optional[bool] = None


# ---------- Rooms ----------

class Room(CamelModel):
    id: str
    name: str
    room_type: Optional[RoomType] = None
    capacity: Optional[int] = None
    equipment: List[str] = []
    is_available: bool = True
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RoomCreate(CamelModel):
    id: RoomId
    name: NonBlankStr
    room_type: Optional[RoomType] = None
    capacity: Optional[int] = Field(None, gt=0)
    equipment: List[str] = []
    is_available: bool = True
    description: Optional[str] = None


class RoomUpdate(CamelModel):
    name: Optional[NonBlankStr] = None
    room_type: Optional[RoomType] = None
    capacity: Optional[int] = Field(None, gt=0)
    equipment: Optional[List[str]] = None
    description: Optional[str] = None


# ---------- Appointments ----------

class AppointmentStatusChange(CamelModel):
    status: AppointmentStatus
    changed_at: datetime = Field(default_factory=utcnow)
    changed_by: Optional[str] = None


class Appointment(CamelModel):
    id: str
    patient_name: str
    patient_id: Optional[str] = None
    psychologist_email: str
    psychologist_name: Optional[str] = None
    appointment_date: str  # YYYY-MM-DD
    appointment_time: str  # HH:MM
    end_time: Optional[str] = None
    room_id: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    status_history: List[AppointmentStatusChange] = []
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AppointmentCreate(CamelModel):
    patient_name: NonBlankStr
    patient_id: Optional[str] = None
    psychologist_email: Optional[str] = None
    appointment_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    appointment_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    room_id: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: Optional[str] = None


class AppointmentEdit(CamelModel):
    """Full edit of an appointment's booking details; status has its own endpoint."""
    patient_name: NonBlankStr
    patient_id: Optional[str] = None
    psychologist_email: NonBlankStr
    appointment_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    appointment_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    room_id: RoomId
    notes: Optional[str] = None


class AppointmentStatusUpdate(BaseModel):
    # validated by hand so a bad value is reported as "Invalid status"
    status: Optional[str] = None


class QuickBookRequest(CamelModel):
    date: str = ""
    time: str = ""
    room_id: Optional[RoomId] = None
    patient_id: str = ""


# ---------- Dashboard ----------

class DashboardStats(CamelModel):
    total_users: int = 0
    total_psychologists: int = 0
    total_appointments: int = 0
    total_patients: int = 0
    total_rooms: int = 0
    available_rooms: int = 0
    room_utilization: int = 0
    available_time_slots: int = 0
    today_appointments: int = 0
    upcoming_appointments: int = 0


class RecentAppointment(CamelModel):
    id: str
    patient_name: str
    psychologist_email: str
    appointment_date: str
    appointment_time: str
    status: AppointmentStatus
