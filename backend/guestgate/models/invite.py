"""Guest invite models.

- Invite: per-guest (or per-group) access token with a security mode
- InviteAccessLog: append-only audit of successful validations
- InviteOtpChallenge: one-time codes for the OTP_* security modes
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from guestgate.models.base import Base, CreatedAtMixin, utcnow


class SecurityMode(enum.StrEnum):
    """How an invite holder proves they are the intended guest.

    OPEN and LINK_LOCKED both accept the bare token; LINK_LOCKED marks
    invites that must not be forwarded (enforced client-side by the RSVP
    app). PASSCODE additionally requires a shared passcode. OTP_* modes
    require a one-time code emailed to the invite's contact address:
    once ever, once per browser session, or on every visit.
    """

    OPEN = "OPEN"
    LINK_LOCKED = "LINK_LOCKED"
    PASSCODE = "PASSCODE"
    OTP_FIRST_TIME = "OTP_FIRST_TIME"
    OTP_EVERY_SESSION = "OTP_EVERY_SESSION"
    OTP_EVERY_TIME = "OTP_EVERY_TIME"

    @property
    def uses_otp(self) -> bool:
        """True for the one-time code modes."""
        return self.value.startswith("OTP_")


_SECURITY_MODES_SQL = ", ".join(f"'{mode.value}'" for mode in SecurityMode)


class Invite(Base, CreatedAtMixin):
    """Guest invite.

    The raw token is returned once at creation (and on regeneration); only
    its hash is stored. Revocation is terminal.

    Attributes:
        id: UUID primary key, stable across token regeneration.
        project_id: FK to projects.
        site_id: Event site the invite opens.
        guest_id: Invited guest (NULL for group invites).
        group_id: Invited guest group (NULL for individual invites).
        contact_email: Where one-time codes are sent (OTP_* modes).
        security_mode: SecurityMode value.
        passcode_hash: bcrypt hash. Required for PASSCODE mode.
        token_hash: SHA-256 hex of the current raw token (unique).
        expires_at: Optional expiry.
        revoked_at: Set once on revoke; never cleared.
        otp_verified_at: First successful one-time code verification.
    """

    __tablename__ = "invites"
    __table_args__ = (
        CheckConstraint(
            f"security_mode IN ({_SECURITY_MODES_SQL})",
            name="ck_invites_security_mode",
        ),
        CheckConstraint(
            "security_mode <> 'PASSCODE' OR passcode_hash IS NOT NULL",
            name="ck_invites_passcode_hash_required",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    site_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    guest_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    group_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    security_mode: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=SecurityMode.OPEN.value,
        server_default=SecurityMode.OPEN.value,
    )
    passcode_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    otp_verified_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def mode(self) -> SecurityMode:
        """security_mode as a SecurityMode member."""
        return SecurityMode(self.security_mode)

    @property
    def is_revoked(self) -> bool:
        """True once the invite has been revoked."""
        return self.revoked_at is not None


class InviteAccessLog(Base):
    """One successful invite validation.

    Rows are only ever inserted (and purged by retention).

    Attributes:
        id: UUID primary key.
        invite_id: FK to invites.
        accessed_at: When the validation succeeded.
        ip_address: Client IP.
        user_agent: Client User-Agent.
    """

    __tablename__ = "invite_access_logs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    invite_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    accessed_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        index=True,
    )
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)


class InviteOtpChallenge(Base, CreatedAtMixin):
    """One-time code sent to an invite's contact email.

    Attributes:
        id: UUID primary key.
        invite_id: FK to invites.
        code_hash: HMAC-SHA256 of the code.
        expires_at: Code is rejected after this time.
        attempts: Verification attempts made against this challenge.
        consumed_at: Set when the code is accepted or superseded.
    """

    __tablename__ = "invite_otp_challenges"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    invite_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)
