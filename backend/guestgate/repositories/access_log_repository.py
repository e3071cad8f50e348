"""Repository for InviteAccessLog operations.

Append-only: rows are inserted on successful validation and removed only by
the retention purge.
"""

import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.models.invite import InviteAccessLog


class AccessLogRepository:
    """Stateless repository for InviteAccessLog table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        invite_id: uuid.UUID,
        accessed_at: datetime,
        ip_address: str | None,
        user_agent: str | None,
    ) -> InviteAccessLog:
        """Append one access record.

        Args:
            db: Async database session.
            invite_id: Invite that was validated.
            accessed_at: Validation time.
            ip_address: Client IP.
            user_agent: Client User-Agent.

        Returns:
            Created InviteAccessLog.
        """
        entry = InviteAccessLog(
            invite_id=invite_id,
            accessed_at=accessed_at,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def list_for_invite(
        db: AsyncSession,
        invite_id: uuid.UUID,
        *,
        limit: int | None = None,
    ) -> list[InviteAccessLog]:
        """List an invite's access records, newest first."""
        stmt = (
            select(InviteAccessLog)
            .where(InviteAccessLog.invite_id == invite_id)
            .order_by(InviteAccessLog.accessed_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def delete_older_than(db: AsyncSession, cutoff: datetime) -> int:
        """Delete access records older than ``cutoff`` (retention).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(InviteAccessLog).where(InviteAccessLog.accessed_at < cutoff)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
