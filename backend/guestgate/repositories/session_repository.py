"""Repository for server-side Session operations.

Sessions are looked up by the SHA-256 hash of the presented token.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.models.session import Session


class SessionRepository:
    """Stateless repository for Session table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        token_hash: str,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        """Store a new session.

        Args:
            db: Async database session.
            user_id: Owner of the session.
            token_hash: SHA-256 hash of the raw session token.
            expires_at: Session expiry timestamp.
            ip_address: Client IP at sign-in.
            user_agent: Client User-Agent at sign-in.

        Returns:
            Created Session.
        """
        session = Session(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(session)
        await db.flush()
        await db.refresh(session)
        return session

    @staticmethod
    async def get_by_token_hash(db: AsyncSession, token_hash: str) -> Session | None:
        """Look up a session by token hash.

        Args:
            db: Async database session.
            token_hash: SHA-256 hash of the presented token.

        Returns:
            Session if found (possibly expired), None otherwise.
        """
        stmt = select(Session).where(Session.token_hash == token_hash)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def delete_by_token_hash(db: AsyncSession, token_hash: str) -> int:
        """Delete the session matching a token hash.

        Returns:
            Number of deleted rows (0 or 1).
        """
        stmt = delete(Session).where(Session.token_hash == token_hash)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_for_user(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
    ) -> int:
        """Delete one session, scoped to its owner.

        Returns:
            Number of deleted rows (0 when the session is not the user's).
        """
        stmt = delete(Session).where(
            Session.id == session_id,
            Session.user_id == user_id,
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_all_for_user(db: AsyncSession, user_id: uuid.UUID) -> int:
        """Delete every session of a user (sign out all devices).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(Session).where(Session.user_id == user_id)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def list_active_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        now: datetime | None = None,
    ) -> list[Session]:
        """List unexpired sessions of a user, newest first."""
        stmt = (
            select(Session)
            .where(
                Session.user_id == user_id,
                Session.expires_at > (now or datetime.now(UTC)),
            )
            .order_by(Session.created_at.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def delete_expired(db: AsyncSession, now: datetime | None = None) -> int:
        """Delete all expired sessions (periodic cleanup).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(Session).where(Session.expires_at <= (now or datetime.now(UTC)))
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
