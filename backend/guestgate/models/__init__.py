"""SQLAlchemy ORM models for GuestGate.

All models are exported from this module for convenient imports:
    from guestgate.models import User, Session, Invite, ...

Models are organized by domain:
- user.py: User
- organization.py: Organization, OrganizationMember, OrganizationInvitation
- project.py: Project (read-only here; owned by the projects module)
- magic_link.py: MagicLinkToken
- session.py: Session
- invite.py: Invite, InviteAccessLog, InviteOtpChallenge, SecurityMode
"""

from guestgate.models.base import Base, CreatedAtMixin, TimestampMixin
from guestgate.models.invite import (
    Invite,
    InviteAccessLog,
    InviteOtpChallenge,
    SecurityMode,
)
from guestgate.models.magic_link import MagicLinkToken
from guestgate.models.organization import (
    Organization,
    OrganizationInvitation,
    OrganizationMember,
)
from guestgate.models.project import Project
from guestgate.models.session import Session
from guestgate.models.user import User

__all__ = [
    "Base",
    "CreatedAtMixin",
    "Invite",
    "InviteAccessLog",
    "InviteOtpChallenge",
    "MagicLinkToken",
    "Organization",
    "OrganizationInvitation",
    "OrganizationMember",
    "Project",
    "SecurityMode",
    "Session",
    "TimestampMixin",
    "User",
]
