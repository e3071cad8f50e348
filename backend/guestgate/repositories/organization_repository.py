"""Repository for organizations, memberships, invitations, and projects.

Membership queries back two decisions: whether a signing-in user is new
(no memberships yet) and whether a user may manage a project's invites.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.models.organization import (
    Organization,
    OrganizationInvitation,
    OrganizationMember,
)
from guestgate.models.project import Project
from guestgate.models.user import User


class OrganizationRepository:
    """Stateless repository for organization tables.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(db: AsyncSession, *, name: str, org_type: str) -> Organization:
        """Create an organization.

        Args:
            db: Async database session.
            name: Display name.
            org_type: COUPLE, PLANNER, or VENUE.

        Returns:
            Created Organization.
        """
        org = Organization(name=name, type=org_type)
        db.add(org)
        await db.flush()
        await db.refresh(org)
        return org

    @staticmethod
    async def get_by_id(db: AsyncSession, org_id: uuid.UUID) -> Organization | None:
        """Fetch an organization by primary key."""
        return await db.get(Organization, org_id)

    @staticmethod
    async def add_member(
        db: AsyncSession,
        *,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        role: str,
    ) -> OrganizationMember:
        """Add a user to an organization.

        Args:
            db: Async database session.
            org_id: Organization to join.
            user_id: Joining user.
            role: "admin" or "member".

        Returns:
            Created OrganizationMember.
        """
        member = OrganizationMember(org_id=org_id, user_id=user_id, role=role)
        db.add(member)
        await db.flush()
        return member

    @staticmethod
    async def get_member(
        db: AsyncSession,
        *,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> OrganizationMember | None:
        """Fetch a user's membership in one organization."""
        stmt = select(OrganizationMember).where(
            OrganizationMember.org_id == org_id,
            OrganizationMember.user_id == user_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count_memberships(db: AsyncSession, user_id: uuid.UUID) -> int:
        """Count the organizations a user belongs to."""
        stmt = (
            select(func.count())
            .select_from(OrganizationMember)
            .where(OrganizationMember.user_id == user_id)
        )
        result = await db.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> list[tuple[Organization, str]]:
        """List a user's organizations with the user's role in each.

        Returns:
            (Organization, role) pairs ordered by organization name.
        """
        stmt = (
            select(Organization, OrganizationMember.role)
            .join(OrganizationMember, OrganizationMember.org_id == Organization.id)
            .where(OrganizationMember.user_id == user_id)
            .order_by(Organization.name)
        )
        result = await db.execute(stmt)
        return [(org, role) for org, role in result.all()]

    @staticmethod
    async def list_members(
        db: AsyncSession,
        org_id: uuid.UUID,
    ) -> list[tuple[User, str]]:
        """List an organization's members with their roles.

        Returns:
            (User, role) pairs ordered by join time.
        """
        stmt = (
            select(User, OrganizationMember.role)
            .join(OrganizationMember, OrganizationMember.user_id == User.id)
            .where(OrganizationMember.org_id == org_id)
            .order_by(OrganizationMember.created_at)
        )
        result = await db.execute(stmt)
        return [(user, role) for user, role in result.all()]

    # -------------------------------------------------------------------------
    # Invitations
    # -------------------------------------------------------------------------

    @staticmethod
    async def upsert_invitation(
        db: AsyncSession,
        *,
        org_id: uuid.UUID,
        email: str,
        role: str,
        invited_by: uuid.UUID,
        expires_at: datetime,
    ) -> OrganizationInvitation:
        """Create the invitation for (org, email), or refresh an expired one.

        Refreshing resets role, inviter, and expiry.
        """
        stmt = select(OrganizationInvitation).where(
            OrganizationInvitation.org_id == org_id,
            OrganizationInvitation.email == email,
        )
        result = await db.execute(stmt)
        invitation = result.scalar_one_or_none()
        if invitation is None:
            invitation = OrganizationInvitation(org_id=org_id, email=email)
            db.add(invitation)
        invitation.role = role
        invitation.invited_by = invited_by
        invitation.expires_at = expires_at
        await db.flush()
        return invitation

    @staticmethod
    async def get_pending_invitation(
        db: AsyncSession,
        *,
        org_id: uuid.UUID,
        email: str,
        now: datetime | None = None,
    ) -> OrganizationInvitation | None:
        """Get the unexpired invitation for (org, email), if any."""
        stmt = select(OrganizationInvitation).where(
            OrganizationInvitation.org_id == org_id,
            OrganizationInvitation.email == email,
            OrganizationInvitation.expires_at > (now or datetime.now(UTC)),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_pending_invitations(
        db: AsyncSession,
        email: str,
        now: datetime | None = None,
    ) -> list[OrganizationInvitation]:
        """List unexpired invitations addressed to an email."""
        stmt = select(OrganizationInvitation).where(
            OrganizationInvitation.email == email,
            OrganizationInvitation.expires_at > (now or datetime.now(UTC)),
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def delete_invitation(db: AsyncSession, invitation_id: uuid.UUID) -> None:
        """Delete an invitation (accepted or withdrawn)."""
        await db.execute(
            delete(OrganizationInvitation).where(
                OrganizationInvitation.id == invitation_id
            )
        )

    @staticmethod
    async def delete_expired_invitations(
        db: AsyncSession,
        now: datetime | None = None,
    ) -> int:
        """Delete expired invitations (periodic cleanup).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(OrganizationInvitation).where(
            OrganizationInvitation.expires_at <= (now or datetime.now(UTC))
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    @staticmethod
    async def get_project(db: AsyncSession, project_id: uuid.UUID) -> Project | None:
        """Fetch a project by primary key."""
        return await db.get(Project, project_id)
