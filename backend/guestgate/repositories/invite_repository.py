"""Repository for Invite operations.

Invites are looked up by token hash for guest validation and by id for
management. Token regeneration rewrites token_hash in place so the invite id
and its access history survive.
"""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.models.invite import Invite


class InviteRepository:
    """Stateless repository for Invite table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        project_id: uuid.UUID,
        site_id: uuid.UUID,
        token_hash: str,
        security_mode: str,
        passcode_hash: str | None = None,
        guest_id: uuid.UUID | None = None,
        group_id: uuid.UUID | None = None,
        contact_email: str | None = None,
        expires_at: datetime | None = None,
    ) -> Invite:
        """Store a new invite.

        Args:
            db: Async database session.
            project_id: Owning project.
            site_id: Event site the invite opens.
            token_hash: SHA-256 hash of the raw invite token.
            security_mode: SecurityMode value.
            passcode_hash: bcrypt hash (PASSCODE mode).
            guest_id: Individual guest, if any.
            group_id: Guest group, if any.
            contact_email: Address for one-time codes.
            expires_at: Optional expiry.

        Returns:
            Created Invite.
        """
        invite = Invite(
            project_id=project_id,
            site_id=site_id,
            guest_id=guest_id,
            group_id=group_id,
            contact_email=contact_email,
            security_mode=security_mode,
            passcode_hash=passcode_hash,
            token_hash=token_hash,
            expires_at=expires_at,
        )
        db.add(invite)
        await db.flush()
        await db.refresh(invite)
        return invite

    @staticmethod
    async def get_by_id(db: AsyncSession, invite_id: uuid.UUID) -> Invite | None:
        """Fetch an invite by primary key."""
        return await db.get(Invite, invite_id)

    @staticmethod
    async def get_by_token_hash(db: AsyncSession, token_hash: str) -> Invite | None:
        """Fetch the invite whose current token hashes to ``token_hash``."""
        stmt = select(Invite).where(Invite.token_hash == token_hash)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_project(
        db: AsyncSession,
        project_id: uuid.UUID,
        *,
        site_id: uuid.UUID | None = None,
        guest_id: uuid.UUID | None = None,
        group_id: uuid.UUID | None = None,
    ) -> list[Invite]:
        """List a project's invites, newest first, with optional filters."""
        stmt = select(Invite).where(Invite.project_id == project_id)
        if site_id is not None:
            stmt = stmt.where(Invite.site_id == site_id)
        if guest_id is not None:
            stmt = stmt.where(Invite.guest_id == guest_id)
        if group_id is not None:
            stmt = stmt.where(Invite.group_id == group_id)
        result = await db.execute(stmt.order_by(Invite.created_at.desc()))
        return list(result.scalars().all())
