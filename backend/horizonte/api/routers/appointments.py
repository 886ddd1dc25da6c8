import logging
import re
import uuid
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from horizonte.api.deps import get_repositories, require_user
from horizonte.errors import (
    AuthorizationError, DuplicateSlotError, NotFoundError, UnexpectedError, ValidationError
)
from horizonte.kv import KvEntry
from horizonte.repositories import Repositories
from horizonte.schemas import (
    APPOINTMENT_STATUSES, Appointment, AppointmentCreate, AppointmentEdit, AppointmentStatus,
    AppointmentStatusUpdate, QuickBookRequest, SessionUser,
)
from horizonte.services.policy import can_manage_appointment, is_superadmin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/appointments", tags=["appointments"])

TIME_RE = re.compile(r"^\d{2}:\d{2}$")


def end_time_for(start: str) -> str:
    """Sessions last one hour."""
    hours, _, minutes = start.partition(":")
    return f"{(int(hours or 0) + 1) % 24:02d}:{int(minutes or 0):02d}"


async def _load_owned_entry(
    repos: Repositories, appointment_id: str, user: SessionUser
) -> Tuple[KvEntry, Appointment]:
    """The stored entry (a precondition token for the write) and its appointment."""
    entry = await repos.appointments.get_entry(appointment_id)
    if not entry.exists:
        raise NotFoundError("Appointment not found")
    appointment = repos.appointments.from_value(entry.value)
    if not can_manage_appointment(user, appointment):
        logger.warning(f"{user.email} tried to manage appointment {appointment_id} of {appointment.psychologist_email}")
        raise AuthorizationError("You can only manage your own appointments")
    return entry, appointment


async def _load_owned(repos: Repositories, appointment_id: str, user: SessionUser) -> Appointment:
    _, appointment = await _load_owned_entry(repos, appointment_id, user)
    return appointment


@router.get("")
async def list_appointments(
    date: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    if is_superadmin(user):
        appointments = await repos.appointments.get_all()
    else:
        appointments = await repos.appointments.get_by_psychologist(user.email)
    if date:
        appointments = [a for a in appointments if a.appointment_date == date]
    if status_filter:
        appointments = [a for a in appointments if a.status == status_filter]
    return {"success": True, "appointments": [a.to_json() for a in appointments]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreate,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    if is_superadmin(user):
        if not payload.psychologist_email:
            raise ValidationError("psychologistEmail is required")
        psychologist = await repos.users.get_user_by_email(payload.psychologist_email)
        if not psychologist:
            raise NotFoundError("Psychologist not found")
        email, name = psychologist.email, psychologist.name
    else:
        # psychologists always book for themselves
        email, name = user.email, user.name

    appointment = Appointment(
        id=str(uuid.uuid4()),
        psychologist_email=email,
        psychologist_name=name or email,
        end_time=payload.end_time or end_time_for(payload.appointment_time),
        **payload.model_dump(exclude={"psychologist_email", "end_time"}),
    )
    if not await repos.appointments.create(appointment):
        raise UnexpectedError("Error creating appointment")

    logger.info(f"Appointment {appointment.id} created by {user.email} for {email}")
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"success": True, "appointment": appointment.to_json()},
    )


async def _read_body(request: Request) -> dict:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        return {k: str(v) for k, v in form.items()}
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON")
    return data


@router.post("/quick-book", status_code=status.HTTP_201_CREATED)
async def quick_book(
    request: Request,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    try:
        req = QuickBookRequest.model_validate(await _read_body(request))
    except PydanticValidationError:
        raise ValidationError("Invalid booking request")
    if not req.date or not req.time or not req.room_id or not req.patient_id:
        raise ValidationError("Missing required fields: date, time, roomId and patientId")
    if not TIME_RE.match(req.time):
        raise ValidationError("time must be HH:MM")

    patient = await repos.patients.get_by_id(req.patient_id)
    if not patient:
        raise NotFoundError("Patient not found")
    if not await repos.rooms.get_by_id(req.room_id):
        raise NotFoundError("Room not found")

    for existing in await repos.appointments.get_by_date(req.date):
        if (
            existing.appointment_time == req.time
            and existing.room_id == req.room_id
            and existing.status != AppointmentStatus.CANCELLED
        ):
            logger.warning(f"Slot {req.date} {req.time} in room {req.room_id} already taken by {existing.id}")
            raise DuplicateSlotError("The time slot is already taken")

    appointment = Appointment(
        id=str(uuid.uuid4()),
        psychologist_email=user.email,
        psychologist_name=user.name or user.email,
        patient_name=patient.name,
        patient_id=patient.id,
        appointment_date=req.date,
        appointment_time=req.time,
        end_time=end_time_for(req.time),
        room_id=req.room_id,
        status=AppointmentStatus.SCHEDULED,
        notes="",
    )
    if not await repos.appointments.create(appointment):
        raise UnexpectedError("Error creating appointment")

    logger.info(f"Quick booking {appointment.id}: {patient.name} on {req.date} {req.time} in room {req.room_id}")
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={
            "success": True,
            "appointment": appointment.to_json(),
            "message": f"Appointment booked for {patient.name} on {req.date} at {req.time}",
        },
    )


@router.get("/{appointment_id}")
async def get_appointment(
    appointment_id: str,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    appointment = await _load_owned(repos, appointment_id, user)
    return {"success": True, "appointment": appointment.to_json()}


@router.put("/{appointment_id}")
async def edit_appointment(
    appointment_id: str,
    payload: AppointmentEdit,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    entry, current = await _load_owned_entry(repos, appointment_id, user)
    if not is_superadmin(user) and payload.psychologist_email.lower() != user.email.lower():
        raise AuthorizationError("You cannot assign appointments to other psychologists")

    psychologist = await repos.users.get_user_by_email(payload.psychologist_email)
    if not psychologist:
        raise NotFoundError("Psychologist not found")

    same_slot = (
        payload.room_id == current.room_id
        and payload.appointment_date == current.appointment_date
        and payload.appointment_time == current.appointment_time
    )
    if not same_slot:
        available = await repos.rooms.get_available_rooms(
            payload.appointment_date, payload.appointment_time, exclude_appointment_id=appointment_id
        )
        if payload.room_id not in {r.id for r in available}:
            raise ValidationError("The selected room is not available at that date and time")

    fields = payload.model_dump(exclude_unset=True)
    fields.update(
        psychologist_email=psychologist.email,
        psychologist_name=psychologist.name or psychologist.email,
        end_time=payload.end_time or end_time_for(payload.appointment_time),
    )
    result = await repos.appointments.update(appointment_id, fields, precondition=entry)
    appointment = result.unwrap(not_found="Appointment not found", conflict="Error updating appointment")
    logger.info(f"Appointment {appointment_id} edited by {user.email}")
    return {"success": True, "appointment": appointment.to_json()}


@router.post("/{appointment_id}/update")
async def update_appointment_status(
    appointment_id: str,
    payload: AppointmentStatusUpdate,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    if not payload.status:
        raise ValidationError("Status is required")
    if payload.status not in APPOINTMENT_STATUSES:
        raise ValidationError("Invalid status")

    await _load_owned(repos, appointment_id, user)
    result = await repos.appointments.update_status(appointment_id, payload.status, changed_by=user.email)
    appointment = result.unwrap(not_found="Appointment not found", conflict="Error updating appointment")
    logger.info(f"Appointment {appointment_id} set to {payload.status} by {user.email}")
    return {"success": True, "message": "Status updated", "data": appointment.to_json()}


@router.delete("/{appointment_id}/delete")
async def delete_appointment(
    appointment_id: str,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    entry, _ = await _load_owned_entry(repos, appointment_id, user)
    result = await repos.appointments.delete(appointment_id, precondition=entry)
    result.unwrap(not_found="Appointment not found", conflict="Error deleting appointment")
    logger.info(f"Appointment {appointment_id} deleted by {user.email}")
    return {"success": True, "message": "Appointment deleted"}
