# backend/horizonte/config.py
import os
from pathlib import Path

from dotenv import load_dotenv

# .env lives next to the backend package
load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent / ".env")

ASYNC_DATABASE_URL = os.getenv("ASYNC_DATABASE_URL", "sqlite+aiosqlite:///./horizonte.db")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
IS_PRODUCTION = ENVIRONMENT == "production"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Session cookie
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "auth_session")
SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "7"))
SESSION_MAX_AGE_SECONDS = SESSION_TTL_DAYS * 24 * 60 * 60

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:8000,http://localhost:3000").split(",")
    if origin.strip()
]

# Start-up data
SEED_DEFAULT_ROOMS = os.getenv("SEED_DEFAULT_ROOMS", "false").lower() == "true"
SUPERADMIN_EMAIL = os.getenv("SUPERADMIN_EMAIL")
SUPERADMIN_PASSWORD = os.getenv("SUPERADMIN_PASSWORD")
SUPERADMIN_NAME = os.getenv("SUPERADMIN_NAME", "Administrador Principal")
