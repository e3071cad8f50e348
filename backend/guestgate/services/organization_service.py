"""Organization membership and project authorization.

Covers creating organizations, inviting members by email, accepting pending
invitations at sign-in, and checking that a user may manage a project.
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.core.config import settings
from guestgate.core.email import Mailer
from guestgate.core.errors import ConflictError, ForbiddenError, NotFoundError
from guestgate.models.organization import (
    Organization,
    OrganizationInvitation,
)
from guestgate.models.project import Project
from guestgate.models.user import User
from guestgate.repositories.organization_repository import OrganizationRepository
from guestgate.repositories.user_repository import normalize_email

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


async def create_organization(
    db: AsyncSession,
    *,
    creator: User,
    name: str,
    org_type: str,
) -> Organization:
    """Create an organization with the creator as its first admin."""
    org = await OrganizationRepository.create(db, name=name, org_type=org_type)
    await OrganizationRepository.add_member(
        db, org_id=org.id, user_id=creator.id, role=ADMIN_ROLE
    )
    logger.info("Organization %s created by user %s", org.id, creator.id)
    return org


async def get_organization_for_member(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    org_id: uuid.UUID,
) -> tuple[Organization, list[tuple[User, str]]]:
    """Fetch an organization and its members, visible to members only.

    Raises:
        NotFoundError: If the organization does not exist or the user is
            not a member.
    """
    org = await OrganizationRepository.get_by_id(db, org_id)
    member = await OrganizationRepository.get_member(db, org_id=org_id, user_id=user_id)
    if org is None or member is None:
        raise NotFoundError("Organization", str(org_id))
    members = await OrganizationRepository.list_members(db, org_id)
    return org, members


async def invite_member(
    db: AsyncSession,
    *,
    inviter: User,
    org_id: uuid.UUID,
    email: str,
    role: str,
    mailer: Mailer,
) -> OrganizationInvitation:
    """Invite an email address to join an organization.

    Any member may invite members; only admins may invite admins.

    Raises:
        NotFoundError: If the organization does not exist or the inviter
            is not a member.
        ForbiddenError: If a non-admin tries to invite an admin.
        ConflictError: If the address already belongs to a member or
            already has a pending invitation.
    """
    org = await OrganizationRepository.get_by_id(db, org_id)
    membership = await OrganizationRepository.get_member(
        db, org_id=org_id, user_id=inviter.id
    )
    if org is None or membership is None:
        raise NotFoundError("Organization", str(org_id))
    if role == ADMIN_ROLE and membership.role != ADMIN_ROLE:
        raise ForbiddenError("Only admins can invite admins")

    email = normalize_email(email)
    members = await OrganizationRepository.list_members(db, org_id)
    if any(user.email == email for user, _ in members):
        raise ConflictError("ALREADY_MEMBER", "This person is already a member")
    if await OrganizationRepository.get_pending_invitation(
        db, org_id=org_id, email=email
    ):
        raise ConflictError(
            "INVITATION_PENDING", "An invitation has already been sent to this email"
        )

    invitation = await OrganizationRepository.upsert_invitation(
        db,
        org_id=org_id,
        email=email,
        role=role,
        invited_by=inviter.id,
        expires_at=datetime.now(UTC)
        + timedelta(days=settings.organization_invitation_ttl_days),
    )
    await mailer.send_organization_invite(
        to_email=email,
        org_name=org.name,
        inviter_name=inviter.full_name or inviter.email,
        role=role,
    )
    return invitation


async def accept_pending_invitations(db: AsyncSession, user: User) -> int:
    """Turn the user's pending invitations into memberships.

    Called after a magic link redemption, which proves control of the
    invited address. Expired invitations are ignored.

    Returns:
        Number of organizations joined.
    """
    joined = 0
    for invitation in await OrganizationRepository.list_pending_invitations(
        db, user.email
    ):
        existing = await OrganizationRepository.get_member(
            db, org_id=invitation.org_id, user_id=user.id
        )
        if existing is None:
            await OrganizationRepository.add_member(
                db, org_id=invitation.org_id, user_id=user.id, role=invitation.role
            )
            joined += 1
        await OrganizationRepository.delete_invitation(db, invitation.id)
    if joined:
        logger.info("User %s joined %d organizations by invitation", user.id, joined)
    return joined


async def authorize_project_access(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
) -> Project:
    """Require that the user belongs to the project's owner organization.

    Raises:
        NotFoundError: If the project does not exist or the user may not
            see it.
    """
    project = await OrganizationRepository.get_project(db, project_id)
    if project is None:
        raise NotFoundError("Project", str(project_id))
    member = await OrganizationRepository.get_member(
        db, org_id=project.owner_org_id, user_id=user_id
    )
    if member is None:
        raise NotFoundError("Project", str(project_id))
    return project
