"""Organization models - tenants that own projects.

An organization is a couple, a planning agency, or a venue. Users join
organizations as members; membership in a project's owner organization is
what authorizes invite management.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from guestgate.models.base import Base, CreatedAtMixin, TimestampMixin

if TYPE_CHECKING:
    from guestgate.models.user import User

ORGANIZATION_TYPES = ("COUPLE", "PLANNER", "VENUE")
MEMBER_ROLES = ("admin", "member")


class Organization(Base, TimestampMixin):
    """Tenant owning projects.

    Attributes:
        id: UUID primary key.
        type: COUPLE, PLANNER, or VENUE.
        name: Display name.
    """

    __tablename__ = "organizations"
    __table_args__ = (
        CheckConstraint(
            "type IN ('COUPLE', 'PLANNER', 'VENUE')",
            name="ck_organizations_type",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    members: Mapped[list["OrganizationMember"]] = relationship(
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class OrganizationMember(Base, CreatedAtMixin):
    """Membership of a user in an organization.

    Attributes:
        id: UUID primary key.
        org_id: FK to organizations.
        user_id: FK to users.
        role: "admin" or "member". Admins manage membership.
    """

    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_organization_members_org_user"),
        CheckConstraint(
            "role IN ('admin', 'member')",
            name="ck_organization_members_role",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")

    organization: Mapped["Organization"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship(back_populates="memberships")


class OrganizationInvitation(Base, CreatedAtMixin):
    """Pending invitation for an email address to join an organization.

    Accepted automatically the next time the invitee signs in by magic link,
    which proves control of the address.

    Attributes:
        id: UUID primary key.
        org_id: FK to organizations.
        email: Invitee email, normalized.
        role: Role granted on acceptance.
        invited_by: FK to the inviting user (NULL if that user was deleted).
        expires_at: Invitation is ignored after this time.
    """

    __tablename__ = "organization_invitations"
    __table_args__ = (
        UniqueConstraint(
            "org_id", "email", name="uq_organization_invitations_org_email"
        ),
        CheckConstraint(
            "role IN ('admin', 'member')",
            name="ck_organization_invitations_role",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    invited_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
