from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from horizonte.config import ASYNC_DATABASE_URL

VERSIONSTAMP_COUNTER_ID = 1


class Base(DeclarativeBase):
    pass


def build_engine(url: str = ASYNC_DATABASE_URL) -> AsyncEngine:
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(url, echo=False, pool_pre_ping=True)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def create_tables(engine: AsyncEngine) -> None:
    # models must be imported so the tables are registered on Base.metadata
    from horizonte.models import KVEntry, KVVersionstamp

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

        counter = (
            await conn.execute(
                select(KVVersionstamp.value).where(KVVersionstamp.id == VERSIONSTAMP_COUNTER_ID)
            )
        ).scalar_one_or_none()
        if counter is None:
            latest = (await conn.execute(select(func.max(KVEntry.versionstamp)))).scalar()
            await conn.execute(
                insert(KVVersionstamp).values(id=VERSIONSTAMP_COUNTER_ID, value=latest or 0)
            )
