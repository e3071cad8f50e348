"""Project model - the event an invite belongs to.

Projects are managed by the projects module; this service only reads the
owning organization to authorize invite management.
"""

import uuid

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from guestgate.models.base import Base, CreatedAtMixin


class Project(Base, CreatedAtMixin):
    """Event project owned by an organization.

    Attributes:
        id: UUID primary key.
        owner_org_id: FK to the owning organization.
        name: Display name.
    """

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    owner_org_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
