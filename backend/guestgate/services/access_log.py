"""Invite access auditing.

Each successful invite validation appends one InviteAccessLog row before the
response is returned. The write is best-effort: it runs in a SAVEPOINT, and
if it fails the validation still succeeds, the failure is logged, and one
retry is queued on a fresh database session after the response.
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guestgate.core.auth import ClientContext
from guestgate.models.invite import InviteAccessLog
from guestgate.repositories.access_log_repository import AccessLogRepository

logger = logging.getLogger(__name__)


class AccessLogRecorder:
    """Writes access records, deferring a retry when the write fails.

    Args:
        session_factory: Opens the session used by the deferred retry.
            When None, failed writes are only logged.
        background_tasks: Queue for the deferred retry.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        background_tasks: BackgroundTasks | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._background_tasks = background_tasks

    async def record(
        self,
        db: AsyncSession,
        *,
        invite_id: uuid.UUID,
        client: ClientContext,
        accessed_at: datetime | None = None,
    ) -> bool:
        """Append an access record for an invite.

        Args:
            db: Request database session.
            invite_id: Invite that was validated.
            client: Caller IP and user agent.
            accessed_at: Access time. Defaults to the current time.

        Returns:
            True if the record was written in the request transaction.
        """
        accessed_at = accessed_at or datetime.now(UTC)
        try:
            async with db.begin_nested():
                await AccessLogRepository.create(
                    db,
                    invite_id=invite_id,
                    accessed_at=accessed_at,
                    ip_address=client.ip_address,
                    user_agent=client.user_agent,
                )
        except SQLAlchemyError:
            logger.warning(
                "Failed to write access log for invite %s", invite_id, exc_info=True
            )
            if self._session_factory is not None and self._background_tasks is not None:
                self._background_tasks.add_task(
                    self._retry, invite_id, client, accessed_at
                )
            return False
        return True

    async def _retry(
        self,
        invite_id: uuid.UUID,
        client: ClientContext,
        accessed_at: datetime,
    ) -> None:
        if self._session_factory is None:
            return
        try:
            async with self._session_factory() as session:
                await AccessLogRepository.create(
                    session,
                    invite_id=invite_id,
                    accessed_at=accessed_at,
                    ip_address=client.ip_address,
                    user_agent=client.user_agent,
                )
                await session.commit()
        except SQLAlchemyError:
            logger.error(
                "Access log retry failed for invite %s; record lost",
                invite_id,
                exc_info=True,
            )
        else:
            logger.info("Access log retry succeeded for invite %s", invite_id)


async def list_access_logs(
    db: AsyncSession,
    invite_id: uuid.UUID,
    *,
    limit: int | None = None,
) -> list[InviteAccessLog]:
    """List an invite's access records, newest first."""
    return await AccessLogRepository.list_for_invite(db, invite_id, limit=limit)


async def purge_access_logs(
    db: AsyncSession,
    *,
    retention_days: int,
    now: datetime | None = None,
) -> int:
    """Delete access records older than the retention period.

    Returns:
        Number of deleted rows.
    """
    cutoff = (now or datetime.now(UTC)) - timedelta(days=retention_days)
    return await AccessLogRepository.delete_older_than(db, cutoff)
