"""Session model - server-side staff sessions.

One row per signed-in device. The raw session token lives only in the
client's cookie or Authorization header.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from guestgate.models.base import Base, CreatedAtMixin

if TYPE_CHECKING:
    from guestgate.models.user import User


class Session(Base, CreatedAtMixin):
    """Active staff session.

    Attributes:
        id: UUID primary key (safe to expose for device management).
        user_id: FK to users.
        token_hash: SHA-256 hex of the raw session token (unique).
        expires_at: Session is invalid after this time.
        ip_address: Client IP at sign-in.
        user_agent: Client User-Agent at sign-in.
    """

    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    user: Mapped["User"] = relationship(back_populates="sessions")
