from __future__ import annotations
import logging
from typing import Any, List, Optional, Tuple

from horizonte.kv import KvKey, StoreError
from horizonte.repositories.base import BaseRepository, MutationResult, MutationStatus
from horizonte.schemas import (
    APPOINTMENT_STATUSES, Appointment, AppointmentStatusChange, utcnow
)

logger = logging.getLogger(__name__)


class AppointmentRepository(BaseRepository[Appointment]):
    key_prefix = ("appointments",)
    model = Appointment

    def validate(self, entity: Appointment) -> bool:
        return (
            super().validate(entity)
            and bool(entity.id)
            and bool(entity.psychologist_email)
            and bool(entity.appointment_date)
            and bool(entity.appointment_time)
        )

    def index_entries(self, entity: Appointment) -> List[Tuple[KvKey, Any]]:
        return [(("appointments_by_psychologist", entity.psychologist_email, entity.id), self.to_value(entity))]

    def sort(self, entities: List[Appointment]) -> List[Appointment]:
        return sorted(entities, key=lambda a: (a.appointment_date, a.appointment_time))

    async def create(self, appointment: Appointment) -> bool:
        now = utcnow()
        appointment.created_at = appointment.created_at or now
        appointment.updated_at = now
        if not appointment.status_history:
            appointment.status_history = [
                AppointmentStatusChange(status=appointment.status, changed_at=now)
            ]
        return await super().create(appointment)

    async def get_by_psychologist(self, email: str) -> List[Appointment]:
        if not email:
            logger.warning(f"Invalid email provided to get_by_psychologist: {email!r}")
            return []
        entries = await self.kv.list(("appointments_by_psychologist", email))
        return self.sort([self.from_value(e.value) for e in entries])

    async def get_by_date(self, date: str) -> List[Appointment]:
        if not date:
            logger.warning(f"Invalid date provided to get_by_date: {date!r}")
            return []
        return [a for a in await self.get_all() if a.appointment_date == date]

    async def get_by_status(self, status: str) -> List[Appointment]:
        if not status:
            logger.warning(f"Invalid status provided to get_by_status: {status!r}")
            return []
        return [a for a in await self.get_all() if a.status == status]

    async def update_status(
        self, id: str, status: str, changed_by: Optional[str] = None
    ) -> MutationResult[Appointment]:
        """
        Any status may follow any other; only membership in the five
        known values is checked. The write is conditional on the record
        read here, so a concurrent change surfaces as CONFLICT.
        """
        try:
            entry = await self.get_entry(id)
        except StoreError as e:
            logger.error(f"Error reading appointment {id}: {e}")
            return MutationResult(MutationStatus.STORE_ERROR)
        if not entry.exists:
            return MutationResult(MutationStatus.NOT_FOUND)
        if status not in APPOINTMENT_STATUSES:
            return MutationResult(MutationStatus.INVALID)

        current = self.from_value(entry.value)
        history = [*current.status_history, AppointmentStatusChange(status=status, changed_by=changed_by)]
        return await self.update(id, {"status": status, "status_history": history}, precondition=entry)
