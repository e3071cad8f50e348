"""Expired credential and audit retention cleanup.

One pass deletes:
- expired magic link tokens
- expired sessions
- expired or consumed invite one-time code challenges
- expired organization invitations
- invite access logs older than INVITE_ACCESS_LOG_RETENTION_DAYS

Run from scripts/purge_expired_tokens.py (cron, container job, etc.).
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.core.config import settings
from guestgate.core.errors import APIError
from guestgate.repositories.magic_link_repository import MagicLinkRepository
from guestgate.repositories.organization_repository import OrganizationRepository
from guestgate.repositories.otp_challenge_repository import OtpChallengeRepository
from guestgate.repositories.session_repository import SessionRepository
from guestgate.services.access_log import purge_access_logs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurgeResult:
    """Rows deleted by one purge pass.

    Attributes:
        magic_links: Expired magic link tokens.
        sessions: Expired sessions.
        otp_challenges: Expired or consumed one-time code challenges.
        organization_invitations: Expired organization invitations.
        access_logs: Access logs past retention.
    """

    magic_links: int
    sessions: int
    otp_challenges: int
    organization_invitations: int
    access_logs: int


class PurgeError(APIError):
    """Raised when a purge fails at the database level."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code="PURGE_ERROR",
            message=message,
            status_code=500,
        )


async def run_purge(db: AsyncSession, now: datetime | None = None) -> PurgeResult:
    """Delete expired credentials and out-of-retention access logs.

    The caller commits.

    Args:
        db: Async database session.
        now: Reference time. Defaults to the current time.

    Returns:
        PurgeResult with per-table counts.

    Raises:
        PurgeError: If any delete fails.
    """
    now = now or datetime.now(UTC)
    try:
        result = PurgeResult(
            magic_links=await MagicLinkRepository.delete_expired(db, now),
            sessions=await SessionRepository.delete_expired(db, now),
            otp_challenges=await OtpChallengeRepository.delete_stale(db, now),
            organization_invitations=(
                await OrganizationRepository.delete_expired_invitations(db, now)
            ),
            access_logs=await purge_access_logs(
                db,
                retention_days=settings.invite_access_log_retention_days,
                now=now,
            ),
        )
    except SQLAlchemyError as exc:
        logger.exception("Purge failed")
        raise PurgeError("Purge failed") from exc

    logger.info("Purge complete: %s", result)
    return result
