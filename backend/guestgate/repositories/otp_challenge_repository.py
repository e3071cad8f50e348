"""Repository for InviteOtpChallenge operations.

At most one challenge per invite is open (not consumed) at a time: issuing
a new code consumes the previous one. Attempt counting and consumption are
single conditional statements.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.models.invite import InviteOtpChallenge


class OtpChallengeRepository:
    """Stateless repository for InviteOtpChallenge table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        invite_id: uuid.UUID,
        code_hash: str,
        expires_at: datetime,
    ) -> InviteOtpChallenge:
        """Store a new challenge.

        Args:
            db: Async database session.
            invite_id: Invite the code unlocks.
            code_hash: HMAC-SHA256 of the code.
            expires_at: Code expiry.

        Returns:
            Created InviteOtpChallenge.
        """
        challenge = InviteOtpChallenge(
            invite_id=invite_id,
            code_hash=code_hash,
            expires_at=expires_at,
        )
        db.add(challenge)
        await db.flush()
        return challenge

    @staticmethod
    async def consume_open_for_invite(
        db: AsyncSession,
        invite_id: uuid.UUID,
        now: datetime,
    ) -> int:
        """Mark every open challenge of an invite consumed (superseded).

        Returns:
            Number of challenges closed.
        """
        stmt = (
            update(InviteOtpChallenge)
            .where(
                InviteOtpChallenge.invite_id == invite_id,
                InviteOtpChallenge.consumed_at.is_(None),
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def get_open_for_invite(
        db: AsyncSession,
        invite_id: uuid.UUID,
    ) -> InviteOtpChallenge | None:
        """Fetch the most recent unconsumed challenge of an invite."""
        stmt = (
            select(InviteOtpChallenge)
            .where(
                InviteOtpChallenge.invite_id == invite_id,
                InviteOtpChallenge.consumed_at.is_(None),
            )
            .order_by(InviteOtpChallenge.created_at.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def record_attempt(db: AsyncSession, challenge_id: uuid.UUID) -> int:
        """Increment the attempt counter and return the new value."""
        stmt = (
            update(InviteOtpChallenge)
            .where(InviteOtpChallenge.id == challenge_id)
            .values(attempts=InviteOtpChallenge.attempts + 1)
            .returning(InviteOtpChallenge.attempts)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    async def consume(
        db: AsyncSession,
        challenge_id: uuid.UUID,
        now: datetime,
    ) -> bool:
        """Consume a challenge if still open.

        Returns:
            True if this call consumed it; False if another request did.
        """
        stmt = (
            update(InviteOtpChallenge)
            .where(
                InviteOtpChallenge.id == challenge_id,
                InviteOtpChallenge.consumed_at.is_(None),
            )
            .values(consumed_at=now)
            .returning(InviteOtpChallenge.id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def delete_stale(db: AsyncSession, now: datetime | None = None) -> int:
        """Delete expired or consumed challenges (periodic cleanup).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(InviteOtpChallenge).where(
            or_(
                InviteOtpChallenge.expires_at <= (now or datetime.now(UTC)),
                InviteOtpChallenge.consumed_at.is_not(None),
            )
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
