from __future__ import annotations
import logging
from datetime import timedelta
from typing import List, Optional, Tuple

from horizonte.config import SESSION_TTL_DAYS
from horizonte.kv import KvStore, StoreError
from horizonte.schemas import SessionRecord, utcnow

logger = logging.getLogger(__name__)


def _short(session_id: str) -> str:
    return session_id[:8] + "..."


class SessionRepository:
    """Login sessions stored under ("sessions", id)."""

    def __init__(self, kv: KvStore, ttl_days: int = SESSION_TTL_DAYS):
        self.kv = kv
        self.ttl_days = ttl_days

    @staticmethod
    def _key(session_id: str):
        return ("sessions", session_id)

    async def create_session(self, session_id: str, user_email: str) -> SessionRecord:
        if not isinstance(session_id, str) or not session_id:
            raise ValueError("Invalid session_id provided to create_session")
        if not isinstance(user_email, str) or not user_email:
            raise ValueError("Invalid user_email provided to create_session")

        now = utcnow()
        record = SessionRecord(
            user_email=user_email,
            created_at=now,
            expires_at=now + timedelta(days=self.ttl_days),
        )
        try:
            await self.kv.set(self._key(session_id), record.to_json())
        except StoreError as e:
            logger.error(f"Error creating session {_short(session_id)} for {user_email}: {e}")
            raise
        logger.info(f"Session {_short(session_id)} created for {user_email}, expires {record.expires_at.isoformat()}")
        return record

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        """The live session, or None. Expired sessions are deleted on read."""
        if not isinstance(session_id, str) or not session_id:
            logger.warning(f"Invalid session_id provided to get_session: {session_id!r}")
            return None

        entry = await self.kv.get(self._key(session_id))
        if not entry.exists:
            logger.debug(f"Session {_short(session_id)} not found")
            return None

        record = SessionRecord.model_validate(entry.value)
        if record.expires_at < utcnow():
            logger.info(f"Session {_short(session_id)} of {record.user_email} expired, deleting")
            await self.delete_session(session_id)
            return None
        return record

    async def delete_session(self, session_id: str) -> None:
        if not isinstance(session_id, str) or not session_id:
            logger.warning(f"Invalid session_id provided to delete_session: {session_id!r}")
            return
        try:
            await self.kv.delete(self._key(session_id))
        except StoreError as e:
            logger.error(f"Error deleting session {_short(session_id)}: {e}")
            return
        logger.info(f"Session {_short(session_id)} deleted")

    async def extend_session(self, session_id: str, extension_days: Optional[int] = None) -> bool:
        days = self.ttl_days if extension_days is None else extension_days
        try:
            entry = await self.kv.get(self._key(session_id))
            if not entry.exists:
                logger.warning(f"Session {_short(session_id)} not found for extension")
                return False
            record = SessionRecord.model_validate(entry.value)
            record.expires_at = utcnow() + timedelta(days=days)
            result = await self.kv.atomic().check(entry).set(self._key(session_id), record.to_json()).commit()
        except StoreError as e:
            logger.error(f"Error extending session {_short(session_id)}: {e}")
            return False
        logger.info(f"Session {_short(session_id)} extended by {days} days: ok={result.ok}")
        return result.ok

    async def _scan(self) -> List[Tuple[str, SessionRecord]]:
        return [
            (entry.key[1], SessionRecord.model_validate(entry.value))
            for entry in await self.kv.list(("sessions",))
            if len(entry.key) == 2
        ]

    async def clean_expired_sessions(self) -> int:
        try:
            sessions = await self._scan()
        except StoreError as e:
            logger.error(f"Error cleaning expired sessions: {e}")
            return 0

        now = utcnow()
        expired = [sid for sid, record in sessions if record.expires_at < now]
        deleted = 0
        for sid in expired:
            try:
                await self.kv.delete(self._key(sid))
                deleted += 1
            except StoreError as e:
                logger.warning(f"Failed to delete expired session {_short(sid)}: {e}")
        logger.info(f"Expired sessions cleanup: total={len(sessions)} expired={len(expired)} deleted={deleted}")
        return deleted

    async def get_active_sessions(self) -> List[Tuple[str, SessionRecord]]:
        try:
            sessions = await self._scan()
        except StoreError as e:
            logger.error(f"Error getting active sessions: {e}")
            return []
        now = utcnow()
        return [(sid, record) for sid, record in sessions if record.expires_at > now]
