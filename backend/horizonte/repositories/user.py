from __future__ import annotations
import logging
import re
import uuid
from typing import Any, List, Optional, Tuple

from horizonte.kv import KvKey
from horizonte.repositories.base import BaseRepository
from horizonte.schemas import User, UserProfile, UserRole, utcnow

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DNI_RE = re.compile(r"^[A-Za-z0-9]{7,30}$")


class UserRepository(BaseRepository[User]):
    """
    Users are keyed by lower-cased email, with two secondary indexes:
    ("users_by_id", id) -> user and ("users_by_role", role, email) -> email.
    All three keys are always written and removed together.
    """
    key_prefix = ("users",)
    model = User

    def build_key(self, id: str) -> KvKey:
        return ("users", id.lower())

    def entity_id(self, entity: User) -> str:
        return entity.email.lower()

    def validate(self, user: User) -> bool:
        if not super().validate(user):
            return False
        if not user.email or not EMAIL_RE.match(user.email):
            return False
        if user.role not in (UserRole.SUPERADMIN, UserRole.PSYCHOLOGIST):
            return False
        if not user.name or not user.name.strip():
            return False
        if user.dni is not None and not DNI_RE.match(user.dni):
            return False
        if user.experience_years is not None and not 0 <= user.experience_years <= 50:
            return False
        if user.specialty == "Otra" and not (user.custom_specialty or "").strip():
            return False
        return True

    def index_entries(self, entity: User) -> List[Tuple[KvKey, Any]]:
        email = entity.email.lower()
        return [
            (("users_by_id", entity.id), self.to_value(entity)),
            (("users_by_role", entity.role.value, email), email),
        ]

    def sort(self, entities: List[User]) -> List[User]:
        return sorted(entities, key=lambda u: (u.name or u.email).lower())

    async def create(self, user: User) -> bool:
        if not user.id:
            user.id = str(uuid.uuid4())
        user.email = user.email.lower()
        user.created_at = user.created_at or utcnow()
        return await super().create(user)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        if not isinstance(email, str) or not email:
            logger.warning(f"Invalid email provided to get_user_by_email: {email!r}")
            return None
        return await self.get_by_id(email.lower())

    async def get_user_by_id(self, id: str) -> Optional[User]:
        if not id:
            logger.warning(f"Invalid id provided to get_user_by_id: {id!r}")
            return None
        entry = await self.kv.get(("users_by_id", id))
        return self.from_value(entry.value) if entry.exists else None

    async def get_users_by_role(self, role: str) -> List[UserProfile]:
        users = []
        for entry in await self.kv.list(("users_by_role", role)):
            email = entry.value
            if not isinstance(email, str) or not email:
                logger.warning(f"Invalid email value in users_by_role for role {role}: {email!r}")
                continue
            user = await self.get_user_by_email(email)
            if user:
                users.append(user)
        return [u.to_profile() for u in self.sort(users)]

    async def get_all_profiles(self) -> List[UserProfile]:
        return [u.to_profile() for u in await self.get_all()]
