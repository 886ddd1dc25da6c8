"""
Key-value store over the `kv_entries` table.

Keys are tuples of strings, e.g. ("users", "a@b.com"). Each committed write
stamps the touched entries with a new versionstamp, which callers hand back
through `AtomicOperation.check()` to make a write conditional on nothing
having changed since they read the entry.

Stamps come from the single-row `kv_versionstamp` counter. Bumping it is the
first statement of every writing transaction, so commits are serialized on
that row and every check reads state no other commit can change before this
one finishes.
"""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from horizonte.db import VERSIONSTAMP_COUNTER_ID
from horizonte.models import KVEntry, KVVersionstamp

logger = logging.getLogger(__name__)

KvKey = Tuple[str, ...]


class StoreError(Exception):
    """Raised when the underlying database fails."""


@dataclass(frozen=True)
class KvEntry:
    key: KvKey
    value: Any = None
    versionstamp: Optional[int] = None

    @property
    def exists(self) -> bool:
        return self.versionstamp is not None


@dataclass(frozen=True)
class CommitResult:
    ok: bool
    versionstamp: Optional[int] = None


def encode_key(key: Sequence[str]) -> str:
    return json.dumps([str(part) for part in key], ensure_ascii=False, separators=(",", ":"))


def decode_key(raw: str) -> KvKey:
    return tuple(json.loads(raw))


def encode_prefix(prefix: Sequence[str]) -> str:
    if not prefix:
        return "["
    # '["users"' + ',' so that ("users",) never matches ("users_by_id", ...)
    return encode_key(prefix)[:-1] + ","


class _CheckFailed(Exception):
    pass


@dataclass
class _Mutation:
    op: str
    key: KvKey
    value: Any = None


@dataclass
class AtomicOperation:
    store: "KvStore"
    checks: List[KvEntry] = field(default_factory=list)
    mutations: List[_Mutation] = field(default_factory=list)

    def check(self, *entries: KvEntry) -> "AtomicOperation":
        self.checks.extend(entries)
        return self

    def set(self, key: Sequence[str], value: Any) -> "AtomicOperation":
        self.mutations.append(_Mutation("set", tuple(key), value))
        return self

    def delete(self, key: Sequence[str]) -> "AtomicOperation":
        self.mutations.append(_Mutation("delete", tuple(key)))
        return self

    async def commit(self) -> CommitResult:
        return await self.store._commit(self)


class KvStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, key: Sequence[str]) -> KvEntry:
        key = tuple(key)
        try:
            async with self.session_factory() as session:
                row = await session.get(KVEntry, encode_key(key))
        except SQLAlchemyError as exc:
            raise StoreError(f"get {key} failed: {exc}") from exc
        if row is None:
            return KvEntry(key=key)
        return KvEntry(key=key, value=row.value, versionstamp=row.versionstamp)

    async def list(self, prefix: Sequence[str]) -> List[KvEntry]:
        q = (
            select(KVEntry)
            .where(KVEntry.key.startswith(encode_prefix(prefix), autoescape=True))
            .order_by(KVEntry.key)
        )
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(q)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"list {tuple(prefix)} failed: {exc}") from exc
        return [KvEntry(key=decode_key(r.key), value=r.value, versionstamp=r.versionstamp) for r in rows]

    async def set(self, key: Sequence[str], value: Any) -> CommitResult:
        return await self.atomic().set(key, value).commit()

    async def delete(self, key: Sequence[str]) -> CommitResult:
        return await self.atomic().delete(key).commit()

    def atomic(self) -> AtomicOperation:
        return AtomicOperation(store=self)

    async def _next_versionstamp(self, session: AsyncSession) -> int:
        stamp = (
            await session.execute(
                update(KVVersionstamp)
                .where(KVVersionstamp.id == VERSIONSTAMP_COUNTER_ID)
                .values(value=KVVersionstamp.value + 1)
                .returning(KVVersionstamp.value)
                .execution_options(synchronize_session=False)
            )
        ).scalar_one_or_none()
        if stamp is not None:
            return stamp

        # table created without the counter row
        latest = (await session.execute(select(func.max(KVEntry.versionstamp)))).scalar()
        stamp = (latest or 0) + 1
        session.add(KVVersionstamp(id=VERSIONSTAMP_COUNTER_ID, value=stamp))
        await session.flush()
        return stamp

    async def _commit(self, op: AtomicOperation) -> CommitResult:
        stamp: Optional[int] = None
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    if op.mutations:
                        # takes the write lock before any check is read
                        stamp = await self._next_versionstamp(session)

                    for entry in op.checks:
                        current = (
                            await session.execute(
                                select(KVEntry.versionstamp)
                                .where(KVEntry.key == encode_key(entry.key))
                                .with_for_update()
                            )
                        ).scalar_one_or_none()
                        if current != entry.versionstamp:
                            raise _CheckFailed(entry.key)

                    if not op.mutations:
                        return CommitResult(ok=True)

                    for m in op.mutations:
                        row = await session.get(KVEntry, encode_key(m.key))
                        if m.op == "delete":
                            if row is not None:
                                await session.delete(row)
                                await session.flush()
                            continue
                        if row is None:
                            session.add(KVEntry(key=encode_key(m.key), value=m.value, versionstamp=stamp))
                        else:
                            row.value = m.value
                            row.versionstamp = stamp
                        await session.flush()
        except _CheckFailed as exc:
            logger.debug(f"Atomic check failed on {exc.args[0]}")
            return CommitResult(ok=False)
        except IntegrityError as exc:
            # concurrent insert of a key that was checked as absent
            logger.warning(f"Atomic commit lost an insert race: {exc}")
            return CommitResult(ok=False)
        except SQLAlchemyError as exc:
            raise StoreError(f"commit failed: {exc}") from exc
        return CommitResult(ok=True, versionstamp=stamp)
