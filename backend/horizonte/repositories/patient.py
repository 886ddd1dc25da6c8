from __future__ import annotations
import logging
import uuid
from typing import Any, List, Tuple

from horizonte.kv import KvKey
from horizonte.repositories.base import BaseRepository
from horizonte.schemas import Patient, PatientProfile, utcnow

logger = logging.getLogger(__name__)


class PatientRepository(BaseRepository[Patient]):
    key_prefix = ("patients",)
    model = Patient

    def validate(self, entity: Patient) -> bool:
        return super().validate(entity) and bool(entity.name and entity.name.strip())

    def index_entries(self, entity: Patient) -> List[Tuple[KvKey, Any]]:
        return [(("patients_by_name", entity.name.lower(), entity.id), entity.id)]

    def sort(self, entities: List[Patient]) -> List[Patient]:
        return sorted(entities, key=lambda p: p.name.lower())

    async def create(self, patient: Patient) -> bool:
        # id and timestamps are assigned here, on the caller's object
        if not patient.id:
            patient.id = str(uuid.uuid4())
        now = utcnow()
        patient.created_at = now
        patient.updated_at = now
        return await super().create(patient)

    async def get_by_name(self, fragment: str) -> List[Patient]:
        """Patients whose name contains `fragment`, looked up through the name index."""
        if not fragment:
            logger.warning(f"Invalid name provided to get_by_name: {fragment!r}")
            return []
        fragment = fragment.lower()
        patients = []
        for entry in await self.kv.list(("patients_by_name",)):
            stored_name = entry.key[1]
            if fragment in stored_name:
                patient = await self.get_by_id(entry.value)
                if patient:
                    patients.append(patient)
        return self.sort(patients)

    async def search(self, query: str) -> List[PatientProfile]:
        if not query:
            return await self.get_all_profiles()
        q = query.lower()
        matches = [
            p for p in await self.get_all()
            if q in p.name.lower()
            or (p.email and q in p.email.lower())
            or (p.phone and query in p.phone)
        ]
        return [self.to_profile(p) for p in matches]

    async def get_active(self) -> List[PatientProfile]:
        return [self.to_profile(p) for p in await self.get_all() if p.is_active]

    async def get_all_profiles(self) -> List[PatientProfile]:
        return [self.to_profile(p) for p in await self.get_all()]

    @staticmethod
    def to_profile(patient: Patient) -> PatientProfile:
        return PatientProfile.model_validate(patient.model_dump())
