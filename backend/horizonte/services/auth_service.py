import logging
import secrets
from typing import Optional

from passlib.context import CryptContext

from horizonte.kv import StoreError
from horizonte.repositories import Repositories
from horizonte.schemas import SessionUser, User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def verify_password(plain_password, password_hash):
    return pwd_context.verify(plain_password, password_hash)


def hash_password(password):
    if not isinstance(password, (str, bytes)):
        raise TypeError("Password must be a string or bytes.")
    return pwd_context.hash(password)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


async def authenticate(repos: Repositories, email: str, password: str) -> Optional[User]:
    """The user for these credentials, or None. Inactive accounts never authenticate."""
    user = await repos.users.get_user_by_email(email)
    if not user or not user.password_hash:
        logger.info(f"Login failed for {email}: unknown user")
        return None
    if not verify_password(password, user.password_hash):
        logger.info(f"Login failed for {email}: wrong password")
        return None
    if not user.is_active:
        logger.info(f"Login refused for inactive user {email}")
        return None
    return user


async def start_session(repos: Repositories, user: User) -> str:
    session_id = new_session_id()
    await repos.sessions.create_session(session_id, user.email)
    return session_id


async def resolve_session_user(repos: Repositories, session_id: Optional[str]) -> Optional[SessionUser]:
    """
    Cookie value -> session -> user. Anything that goes wrong on the way
    (unknown id, expired session, deleted user, store failure) yields None.
    """
    if not session_id:
        return None
    try:
        session = await repos.sessions.get_session(session_id)
        if not session:
            return None
        user = await repos.users.get_user_by_email(session.user_email)
    except (StoreError, ValueError) as e:
        logger.error(f"Session resolution failed for {session_id[:8]}...: {e}")
        return None
    if not user:
        logger.warning(f"Session {session_id[:8]}... points to missing user {session.user_email}")
        return None
    return user.to_session_user()
