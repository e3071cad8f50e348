"""User model - staff accounts (couples, planners, venue staff).

Guests never get User rows; they reach a project through invites.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from guestgate.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from guestgate.models.organization import OrganizationMember
    from guestgate.models.session import Session

_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"


class User(Base, TimestampMixin):
    """Staff account authenticated by magic link.

    Attributes:
        id: UUID primary key.
        email: Unique email address, stored lowercased and trimmed.
        full_name: Display name. NULL until provided.
        locale: Preferred language for emails and UI (default "en").
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    full_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    locale: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="en",
        server_default="en",
    )

    # Relationships
    sessions: Mapped[list["Session"]] = relationship(
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
    )
    memberships: Mapped[list["OrganizationMember"]] = relationship(
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
    )
