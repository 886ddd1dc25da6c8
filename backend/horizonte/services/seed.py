import asyncio
import logging
from typing import Iterable, Mapping

from horizonte.config import SEED_DEFAULT_ROOMS, SUPERADMIN_EMAIL, SUPERADMIN_NAME, SUPERADMIN_PASSWORD
from horizonte.repositories import Repositories
from horizonte.schemas import User, UserRole
from horizonte.services.auth_service import hash_password

logger = logging.getLogger(__name__)

DEMO_USERS = [
    {"email": "admin@horizonte.com", "password": "password123", "role": "superadmin", "name": "Administrador Principal"},
    {"email": "psicologo1@horizonte.com", "password": "password123", "role": "psychologist", "name": "Dr. Carlos Mendoza"},
    {"email": "psicologo2@horizonte.com", "password": "password123", "role": "psychologist", "name": "Dra. Laura Jiménez"},
]


async def seed_users(repos: Repositories, users: Iterable[Mapping[str, str]]) -> int:
    """Create every user that does not exist yet. Returns how many were created."""
    created = 0
    for data in users:
        email = data["email"].lower()
        if await repos.users.get_user_by_email(email):
            logger.info(f"User {email} already exists, skipping")
            continue
        user = User(
            id="",
            email=email,
            role=UserRole(data["role"]),
            name=data["name"],
            password_hash=hash_password(data["password"]),
        )
        if await repos.users.create(user):
            created += 1
            logger.info(f"User created: {email} ({user.role.value})")
        else:
            logger.error(f"Could not create user {email}")
    return created


async def bootstrap(repos: Repositories) -> None:
    """Start-up data: the configured superadmin account and, optionally, the default rooms."""
    if SUPERADMIN_EMAIL and SUPERADMIN_PASSWORD:
        await seed_users(repos, [{
            "email": SUPERADMIN_EMAIL,
            "password": SUPERADMIN_PASSWORD,
            "role": UserRole.SUPERADMIN.value,
            "name": SUPERADMIN_NAME,
        }])
    if SEED_DEFAULT_ROOMS:
        created = await repos.rooms.initialize_default_rooms()
        logger.info(f"Default rooms created: {created}")


async def seed_demo_data() -> None:
    from horizonte.db import build_engine, build_sessionmaker, create_tables
    from horizonte.kv import KvStore
    from horizonte.repositories import build_repositories

    engine = build_engine()
    try:
        await create_tables(engine)
        repos = build_repositories(KvStore(build_sessionmaker(engine)))
        users = await seed_users(repos, DEMO_USERS)
        rooms = await repos.rooms.initialize_default_rooms()
        logger.info(f"Seed finished: {users} users, {rooms} rooms")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    asyncio.run(seed_demo_data())
