"""Repository for MagicLinkToken operations.

Single-use sign-in tokens stored as SHA-256 hashes with a time-limited
expiry. Redemption reads and deletes in one statement, so two concurrent
redemptions of the same token cannot both succeed.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.models.magic_link import MagicLinkToken


@dataclass(frozen=True)
class ConsumedMagicLink:
    """Data returned by a successful DELETE ... RETURNING.

    Attributes:
        email: Address the link was issued to.
        expires_at: Deadline the link carried.
    """

    email: str
    expires_at: datetime


class MagicLinkRepository:
    """Stateless repository for MagicLinkToken table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        token_hash: str,
        expires_at: datetime,
    ) -> MagicLinkToken:
        """Store a new magic link token.

        Args:
            db: Async database session.
            email: Normalized email address.
            token_hash: SHA-256 hash of the plain token.
            expires_at: Token expiry timestamp.

        Returns:
            Created MagicLinkToken.
        """
        token = MagicLinkToken(
            token_hash=token_hash,
            email=email,
            expires_at=expires_at,
        )
        db.add(token)
        await db.flush()
        return token

    @staticmethod
    async def consume(
        db: AsyncSession,
        token_hash: str,
    ) -> ConsumedMagicLink | None:
        """Atomically delete a token and return what it carried.

        Expired tokens are consumed too; the caller checks expires_at.

        Args:
            db: Async database session.
            token_hash: SHA-256 hash of the presented token.

        Returns:
            ConsumedMagicLink if this call deleted the row, None if no row
            matched (never issued, or already redeemed).
        """
        stmt = (
            delete(MagicLinkToken)
            .where(MagicLinkToken.token_hash == token_hash)
            .returning(MagicLinkToken.email, MagicLinkToken.expires_at)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return ConsumedMagicLink(email=row.email, expires_at=row.expires_at)

    @staticmethod
    async def delete_all_for_email(db: AsyncSession, email: str) -> int:
        """Delete every outstanding token for an email (superseded links).

        Args:
            db: Async database session.
            email: Normalized email address.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(MagicLinkToken).where(MagicLinkToken.email == email)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_expired(db: AsyncSession, now: datetime | None = None) -> int:
        """Delete all expired tokens (periodic cleanup).

        Args:
            db: Async database session.
            now: Reference time. Defaults to the current time.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(MagicLinkToken).where(
            MagicLinkToken.expires_at <= (now or datetime.now(UTC)),
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
