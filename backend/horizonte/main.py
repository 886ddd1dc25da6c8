# /backend/horizonte/main.py

from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from horizonte.api.routers import appointments, auth, pages, patients, psychologists, rooms
from horizonte.config import ALLOWED_ORIGINS, LOG_LEVEL
from horizonte.db import build_engine, build_sessionmaker, create_tables
from horizonte.errors import register_exception_handlers
from horizonte.kv import KvStore
from horizonte.middleware import SessionGateMiddleware
from horizonte.repositories import build_repositories
from horizonte.services.seed import bootstrap

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def create_app(engine: Optional[AsyncEngine] = None) -> FastAPI:
    owns_engine = engine is None
    engine = engine or build_engine()
    repositories = build_repositories(KvStore(build_sessionmaker(engine)))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting up...")
        await create_tables(engine)
        logger.info("Database tables ready")
        await bootstrap(repositories)
        try:
            yield
        finally:
            logger.info("Application shutting down...")
            if owns_engine:
                await engine.dispose()

    app = FastAPI(title="Horizonte API", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.repositories = repositories

    register_exception_handlers(app)

    # added last so CORS wraps the gate
    app.add_middleware(SessionGateMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(patients.router)
    app.include_router(rooms.router)
    app.include_router(appointments.router)
    app.include_router(psychologists.router)
    app.include_router(pages.router)

    @app.get("/health")
    async def health():
        return {"ok": True}

    return app


app = create_app()
