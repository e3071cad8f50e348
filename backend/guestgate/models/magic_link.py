"""Magic link token model.

Stores only the SHA-256 hash of each token. Rows are single-use: redemption
deletes the row in the same statement that reads it.
"""

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from guestgate.models.base import Base, CreatedAtMixin


class MagicLinkToken(Base, CreatedAtMixin):
    """One-time sign-in token.

    Several tokens may exist for one email when links are re-requested.
    Redeeming any of them deletes the others.

    Attributes:
        token_hash: SHA-256 hex of the plain token (primary key).
        email: Normalized address the link was sent to.
        expires_at: Redemption deadline.
    """

    __tablename__ = "magic_link_tokens"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
