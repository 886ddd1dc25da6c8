from dataclasses import dataclass

from horizonte.kv import KvStore
from horizonte.repositories.appointment import AppointmentRepository
from horizonte.repositories.base import BaseRepository, MutationResult, MutationStatus
from horizonte.repositories.patient import PatientRepository
from horizonte.repositories.room import RoomRepository
from horizonte.repositories.session import SessionRepository
from horizonte.repositories.user import UserRepository


@dataclass
class Repositories:
    """Everything a request handler may touch, built once per app."""
    kv: KvStore
    users: UserRepository
    sessions: SessionRepository
    patients: PatientRepository
    rooms: RoomRepository
    appointments: AppointmentRepository


def build_repositories(kv: KvStore) -> Repositories:
    appointments = AppointmentRepository(kv)
    return Repositories(
        kv=kv,
        users=UserRepository(kv),
        sessions=SessionRepository(kv),
        patients=PatientRepository(kv),
        rooms=RoomRepository(kv, appointments),
        appointments=appointments,
    )


__all__ = [
    "Repositories", "build_repositories", "BaseRepository", "MutationResult", "MutationStatus",
    "AppointmentRepository", "PatientRepository", "RoomRepository", "SessionRepository", "UserRepository",
]
