from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from horizonte.errors import ConflictError, NotFoundError, UnexpectedError, ValidationError
from horizonte.kv import KvEntry, KvKey, KvStore, StoreError
from horizonte.schemas import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class MutationStatus(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    STORE_ERROR = "store_error"


@dataclass(frozen=True)
class MutationResult(Generic[T]):
    """
    Outcome of an update/delete. Truthy only when the write committed, so
    `if await repo.update(...)` reads like the boolean contract while the
    status still tells a lost update (CONFLICT) apart from a missing record.
    """
    status: MutationStatus
    value: Optional[T] = None

    @property
    def ok(self) -> bool:
        return self.status is MutationStatus.OK

    def __bool__(self) -> bool:
        return self.ok

    def unwrap(self, not_found: str = "Not found", conflict: str | None = None) -> Optional[T]:
        """Return the new value or raise the matching app error."""
        if self.status is MutationStatus.OK:
            return self.value
        if self.status is MutationStatus.NOT_FOUND:
            raise NotFoundError(not_found)
        if self.status is MutationStatus.INVALID:
            raise ValidationError("Invalid data")
        if self.status is MutationStatus.CONFLICT:
            raise ConflictError(conflict)
        raise UnexpectedError()


class BaseRepository(Generic[T]):
    """
    CRUD over one entity type stored under `key_prefix`.

    Subclasses declare secondary index keys through `index_entries()`; the
    base class writes and removes them in the same atomic commit as the
    main record.
    """
    key_prefix: Tuple[str, ...] = ()
    model: Type[T]

    def __init__(self, kv: KvStore):
        self.kv = kv

    @property
    def name(self) -> str:
        return "/".join(self.key_prefix)

    def build_key(self, id: str) -> KvKey:
        return (*self.key_prefix, id)

    def entity_id(self, entity: T) -> str:
        return entity.id

    def validate(self, entity: T) -> bool:
        return entity is not None

    def index_entries(self, entity: T) -> List[Tuple[KvKey, Any]]:
        return []

    def to_value(self, entity: T) -> Dict[str, Any]:
        return entity.model_dump(mode="json", by_alias=True)

    def from_value(self, value: Dict[str, Any]) -> T:
        return self.model.model_validate(value)

    def sort(self, entities: List[T]) -> List[T]:
        return entities

    def _stored_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        # accept both snake_case attribute names and camelCase keys
        out = {}
        for key, value in fields.items():
            info = self.model.model_fields.get(key)
            out[(info.alias or key) if info else key] = value
        return out

    # ---------- reads ----------

    async def get_entry(self, id: str) -> KvEntry:
        return await self.kv.get(self.build_key(id))

    async def get_by_id(self, id: str) -> Optional[T]:
        if not id:
            return None
        entry = await self.get_entry(id)
        return self.from_value(entry.value) if entry.exists else None

    async def get_all(self) -> List[T]:
        entries = await self.kv.list(self.key_prefix)
        depth = len(self.key_prefix) + 1
        return self.sort([self.from_value(e.value) for e in entries if len(e.key) == depth])

    # ---------- writes ----------

    async def create(self, entity: T) -> bool:
        if not self.validate(entity):
            logger.warning(f"Invalid data provided to create in {self.name}: {entity!r}")
            return False

        key = self.build_key(self.entity_id(entity))
        op = self.kv.atomic().check(KvEntry(key=key)).set(key, self.to_value(entity))
        for index_key, index_value in self.index_entries(entity):
            op.set(index_key, index_value)
        try:
            result = await op.commit()
        except StoreError as e:
            logger.error(f"Error creating entity in {self.name}: {e}")
            return False
        if not result.ok:
            logger.warning(f"Entity {key} already exists in {self.name}")
        return result.ok

    async def update(
        self,
        id: str,
        fields: Dict[str, Any],
        precondition: Optional[KvEntry] = None,
    ) -> MutationResult[T]:
        """
        Merge `fields` into the stored record. The write only commits if the
        record still has the versionstamp of `precondition` (or of the entry
        read here when none is given).
        """
        try:
            entry = precondition if precondition is not None else await self.get_entry(id)
            if not entry.exists:
                return MutationResult(MutationStatus.NOT_FOUND)

            current = self.from_value(entry.value)
            merged = {**entry.value, **self._stored_fields(fields), "updatedAt": utcnow()}
            try:
                updated = self.from_value(merged)
            except PydanticValidationError as e:
                logger.warning(f"Rejected update of {id} in {self.name}: {e}")
                return MutationResult(MutationStatus.INVALID)
            if not self.validate(updated):
                return MutationResult(MutationStatus.INVALID)

            key = self.build_key(id)
            op = self.kv.atomic().check(entry).set(key, self.to_value(updated))
            new_index = self.index_entries(updated)
            new_keys = {k for k, _ in new_index}
            for old_key, _ in self.index_entries(current):
                if old_key not in new_keys:
                    op.delete(old_key)
            for index_key, index_value in new_index:
                op.set(index_key, index_value)
            result = await op.commit()
        except StoreError as e:
            logger.error(f"Error updating entity {id} in {self.name}: {e}")
            return MutationResult(MutationStatus.STORE_ERROR)

        if not result.ok:
            logger.warning(f"Concurrent modification of {id} in {self.name}, update rejected")
            return MutationResult(MutationStatus.CONFLICT)
        return MutationResult(MutationStatus.OK, updated)

    async def delete(self, id: str, precondition: Optional[KvEntry] = None) -> MutationResult[T]:
        try:
            entry = precondition if precondition is not None else await self.get_entry(id)
            if not entry.exists:
                return MutationResult(MutationStatus.NOT_FOUND)

            current = self.from_value(entry.value)
            op = self.kv.atomic().check(entry).delete(self.build_key(id))
            for index_key, _ in self.index_entries(current):
                op.delete(index_key)
            result = await op.commit()
        except StoreError as e:
            logger.error(f"Error deleting entity {id} in {self.name}: {e}")
            return MutationResult(MutationStatus.STORE_ERROR)

        if not result.ok:
            logger.warning(f"Concurrent modification of {id} in {self.name}, delete rejected")
            return MutationResult(MutationStatus.CONFLICT)
        return MutationResult(MutationStatus.OK, current)
