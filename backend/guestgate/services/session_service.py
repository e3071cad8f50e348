"""Server-side session lifecycle.

Sessions are opaque random tokens; the database keeps only their SHA-256
hash. A session is ACTIVE until it expires or is logged out; expired rows
are deleted lazily on lookup and in bulk by the maintenance purge.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.core.auth import ClientContext
from guestgate.core.config import settings
from guestgate.core.errors import NotFoundError
from guestgate.core.tokens import hash_token, issue_token
from guestgate.models.session import Session
from guestgate.models.user import User
from guestgate.repositories.session_repository import SessionRepository
from guestgate.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionValidation:
    """Result of validating a presented session token.

    Attributes:
        valid: True only for an unexpired session whose user exists.
        user: Session owner (None when invalid).
        session: Session row (None when invalid).
    """

    valid: bool
    user: User | None = None
    session: Session | None = None


_INVALID = SessionValidation(valid=False)


async def create_session(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    client: ClientContext,
    now: datetime | None = None,
) -> tuple[str, Session]:
    """Issue a new session for a user.

    Args:
        db: Async database session.
        user_id: Session owner.
        client: Caller IP and user agent to record.
        now: Reference time. Defaults to the current time.

    Returns:
        (raw_token, session); the raw token goes to the client only.
    """
    issued_at = now or datetime.now(UTC)
    plain, token_hash = issue_token()
    session = await SessionRepository.create(
        db,
        user_id=user_id,
        token_hash=token_hash,
        expires_at=issued_at + timedelta(days=settings.session_ttl_days),
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return plain, session


async def validate_session(
    db: AsyncSession,
    token: str | None,
    now: datetime | None = None,
) -> SessionValidation:
    """Resolve a presented session token.

    Never raises for a missing, unknown, expired, or orphaned session;
    callers decide how to treat an invalid result.

    Args:
        db: Async database session.
        token: Raw session token (None when the request carried none).
        now: Reference time. Defaults to the current time.

    Returns:
        SessionValidation with user and session populated when valid.
    """
    if not token:
        return _INVALID

    token_hash = hash_token(token)
    session = await SessionRepository.get_by_token_hash(db, token_hash)
    if session is None:
        return _INVALID

    if session.expires_at <= (now or datetime.now(UTC)):
        await SessionRepository.delete_by_token_hash(db, token_hash)
        return _INVALID

    user = await UserRepository.get_by_id(db, session.user_id)
    if user is None:
        return _INVALID

    return SessionValidation(valid=True, user=user, session=session)


async def logout(db: AsyncSession, token: str | None) -> bool:
    """Delete the session for a token. Idempotent.

    Returns:
        True if a session row was deleted.
    """
    if not token:
        return False
    deleted = await SessionRepository.delete_by_token_hash(db, hash_token(token))
    return deleted > 0


async def list_user_sessions(db: AsyncSession, user_id: uuid.UUID) -> list[Session]:
    """List a user's active sessions (signed-in devices), newest first."""
    return await SessionRepository.list_active_for_user(db, user_id)


async def revoke_user_session(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    session_id: uuid.UUID,
) -> None:
    """Sign out one of the user's devices.

    Raises:
        NotFoundError: If the session does not exist or belongs to someone else.
    """
    deleted = await SessionRepository.delete_for_user(
        db, user_id=user_id, session_id=session_id
    )
    if not deleted:
        raise NotFoundError("Session", str(session_id))


async def logout_everywhere(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Delete every session of a user.

    Returns:
        Number of sessions ended.
    """
    deleted = await SessionRepository.delete_all_for_user(db, user_id)
    logger.info("Ended %d sessions for user %s", deleted, user_id)
    return deleted
