from __future__ import annotations
import logging
from typing import List, Optional

from horizonte.repositories.appointment import AppointmentRepository
from horizonte.repositories.base import BaseRepository, MutationResult, MutationStatus
from horizonte.schemas import ROOM_IDS, AppointmentStatus, Room, utcnow

logger = logging.getLogger(__name__)

DEFAULT_ROOMS = [
    {
        "id": "A",
        "name": "Sala A - Terapia Individual",
        "room_type": "individual",
        "capacity": 2,
        "equipment": ["Sillón", "Mesa", "Lámpara"],
        "description": "Sala diseñada para sesiones de terapia individual",
    },
    {
        "id": "B",
        "name": "Sala B - Terapia Familiar",
        "room_type": "family",
        "capacity": 6,
        "equipment": ["Sofá", "Sillas", "Mesa de centro"],
        "description": "Espacio amplio para terapia familiar y de pareja",
    },
    {
        "id": "C",
        "name": "Sala C - Terapia de Grupo",
        "room_type": "group",
        "capacity": 12,
        "equipment": ["Círculo de sillas", "Pizarra"],
        "description": "Sala configurada para sesiones grupales",
    },
    {
        "id": "D",
        "name": "Sala D - Evaluación",
        "room_type": "evaluation",
        "capacity": 2,
        "equipment": ["Escritorio", "Computadora", "Tests"],
        "description": "Sala equipada para evaluaciones psicológicas",
    },
    {
        "id": "E",
        "name": "Sala E - Relajación",
        "room_type": "relaxation",
        "capacity": 1,
        "equipment": ["Camilla", "Música", "Aromaterapia"],
        "description": "Espacio tranquilo para técnicas de relajación",
    },
]


class RoomRepository(BaseRepository[Room]):
    key_prefix = ("rooms",)
    model = Room

    def __init__(self, kv, appointment_repository: AppointmentRepository):
        super().__init__(kv)
        self.appointment_repository = appointment_repository

    def validate(self, entity: Room) -> bool:
        return (
            super().validate(entity)
            and entity.id in ROOM_IDS
            and bool(entity.name and entity.name.strip())
            and isinstance(entity.equipment, list)
            and (entity.capacity is None or entity.capacity > 0)
        )

    def sort(self, entities: List[Room]) -> List[Room]:
        return sorted(entities, key=lambda r: r.id)

    async def create(self, room: Room) -> bool:
        now = utcnow()
        room.created_at = room.created_at or now
        room.updated_at = now
        return await super().create(room)

    async def update_availability(self, id: str, is_available: bool) -> MutationResult[Room]:
        return await self.update(id, {"is_available": is_available})

    async def toggle_availability(self, id: str) -> MutationResult[Room]:
        entry = await self.get_entry(id)
        if not entry.exists:
            return MutationResult(MutationStatus.NOT_FOUND)
        current = self.from_value(entry.value)
        return await self.update(id, {"is_available": not current.is_available}, precondition=entry)

    async def get_available_rooms(
        self, date: str, time: str, exclude_appointment_id: Optional[str] = None
    ) -> List[Room]:
        """Rooms marked available and not used by a live appointment at date+time."""
        rooms = await self.get_all()
        occupied = {
            a.room_id
            for a in await self.appointment_repository.get_by_date(date)
            if a.appointment_time == time
            and a.status != AppointmentStatus.CANCELLED
            and a.id != exclude_appointment_id
        }
        return [r for r in rooms if r.is_available and r.id not in occupied]

    async def initialize_default_rooms(self) -> int:
        if await self.get_all():
            logger.info("Rooms already initialized, skipping default rooms")
            return 0

        created = 0
        for data in DEFAULT_ROOMS:
            if await self.create(Room(**data)):
                created += 1
                logger.info(f"Default room created: {data['name']}")
        return created
