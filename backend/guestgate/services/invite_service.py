"""Guest invite management and validation.

Management (staff, scoped to the project's owner organization):
create, list, get, revoke, regenerate, and read access logs.

Validation (public, by raw token), checked in this order:
    1. token matches an invite           else InvalidInviteTokenError
    2. invite not revoked                else InviteRevokedError
    3. invite not expired                else InviteExpiredError
    4. PASSCODE mode: passcode present   else PasscodeRequiredError
       and matching                      else InvalidPasscodeError
    5. OTP_* modes: OTP state resolved by invite_otp
    6. access recorded, then the result returned

Revocation is terminal. Regeneration swaps the token hash on the same row,
so the old link stops working while id, mode, and access history remain.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.core.auth import ClientContext
from guestgate.core.email import Mailer
from guestgate.core.errors import (
    InvalidInviteTokenError,
    InvalidPasscodeError,
    InviteExpiredError,
    InviteRevokedError,
    NotFoundError,
    PasscodeRequiredError,
    ValidationError,
)
from guestgate.core.tokens import (
    hash_passcode,
    hash_token,
    issue_token,
    verify_passcode,
)
from guestgate.models.invite import (
    Invite,
    InviteAccessLog,
    InviteOtpChallenge,
    SecurityMode,
)
from guestgate.repositories.invite_repository import InviteRepository
from guestgate.repositories.otp_challenge_repository import OtpChallengeRepository
from guestgate.repositories.user_repository import normalize_email
from guestgate.services import access_log, invite_otp, organization_service
from guestgate.services.access_log import AccessLogRecorder
from guestgate.services.invite_otp import InviteOtpState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedInvite:
    """An invite together with its raw token.

    The raw token exists only here; it is shown to the caller once.
    """

    invite: Invite
    token: str


@dataclass(frozen=True)
class InviteValidation:
    """Successful validation payload.

    Attributes:
        invite_id: Validated invite.
        project_id: Owning project.
        site_id: Event site to open.
        guest_id: Invited guest, if individual.
        group_id: Invited group, if any.
        security_mode: Invite security mode.
        otp_state: One-time code state for this request.
    """

    invite_id: uuid.UUID
    project_id: uuid.UUID
    site_id: uuid.UUID
    guest_id: uuid.UUID | None
    group_id: uuid.UUID | None
    security_mode: SecurityMode
    otp_state: InviteOtpState

    @property
    def requires_otp(self) -> bool:
        """True when the guest must still enter a one-time code."""
        return self.otp_state is InviteOtpState.OTP_PENDING

    @classmethod
    def for_invite(
        cls, invite: Invite, otp_state: InviteOtpState
    ) -> "InviteValidation":
        return cls(
            invite_id=invite.id,
            project_id=invite.project_id,
            site_id=invite.site_id,
            guest_id=invite.guest_id,
            group_id=invite.group_id,
            security_mode=invite.mode,
            otp_state=otp_state,
        )


@dataclass(frozen=True)
class OtpGrant:
    """Validation result of an accepted one-time code.

    Attributes:
        validation: Payload with otp_state OTP_VERIFIED.
        guest_pass: Pass to store client-side (OTP_EVERY_SESSION only).
    """

    validation: InviteValidation
    guest_pass: str | None


def parse_security_mode(value: str) -> SecurityMode:
    """Convert a client-supplied mode name.

    Raises:
        ValidationError: If the value is not a known mode.
    """
    try:
        return SecurityMode(value)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid security mode '{value}'",
            details=[{"allowed": [mode.value for mode in SecurityMode]}],
        ) from exc


# =============================================================================
# Management
# =============================================================================


async def create_project_invite(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    site_id: uuid.UUID,
    security_mode: str = SecurityMode.OPEN.value,
    passcode: str | None = None,
    guest_id: uuid.UUID | None = None,
    group_id: uuid.UUID | None = None,
    contact_email: str | None = None,
    expires_at: datetime | None = None,
) -> IssuedInvite:
    """Create an invite for a project.

    Args:
        db: Async database session.
        user_id: Acting staff user.
        project_id: Project to invite into.
        site_id: Event site the invite opens.
        security_mode: SecurityMode name.
        passcode: Required for PASSCODE mode; rejected otherwise.
        guest_id: Individual guest, if any.
        group_id: Guest group, if any.
        contact_email: Required for OTP_* modes.
        expires_at: Optional expiry; must be in the future.

    Returns:
        IssuedInvite with the raw token.

    Raises:
        NotFoundError: If the project is missing or not the user's.
        ValidationError: For an unknown mode or missing/extra mode inputs.
    """
    await organization_service.authorize_project_access(
        db, user_id=user_id, project_id=project_id
    )
    mode = parse_security_mode(security_mode)

    passcode_hash = None
    if mode is SecurityMode.PASSCODE:
        if not passcode:
            raise ValidationError("Passcode is required for PASSCODE security mode")
        try:
            passcode_hash = hash_passcode(passcode)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
    elif passcode:
        raise ValidationError("Passcode is only used with PASSCODE security mode")

    if mode.uses_otp and not contact_email:
        raise ValidationError("contact_email is required for one-time code modes")

    if expires_at is not None and expires_at <= datetime.now(UTC):
        raise ValidationError("expires_at must be in the future")

    plain_token, token_hash = issue_token()
    invite = await InviteRepository.create(
        db,
        project_id=project_id,
        site_id=site_id,
        token_hash=token_hash,
        security_mode=mode.value,
        passcode_hash=passcode_hash,
        guest_id=guest_id,
        group_id=group_id,
        contact_email=normalize_email(contact_email) if contact_email else None,
        expires_at=expires_at,
    )
    logger.info("Invite %s created for project %s (%s)", invite.id, project_id, mode)
    return IssuedInvite(invite=invite, token=plain_token)


async def list_project_invites(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    site_id: uuid.UUID | None = None,
    guest_id: uuid.UUID | None = None,
    group_id: uuid.UUID | None = None,
) -> list[Invite]:
    """List a project's invites, newest first."""
    await organization_service.authorize_project_access(
        db, user_id=user_id, project_id=project_id
    )
    return await InviteRepository.list_for_project(
        db, project_id, site_id=site_id, guest_id=guest_id, group_id=group_id
    )


async def get_invite(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    invite_id: uuid.UUID,
) -> Invite:
    """Fetch an invite the user may manage.

    Raises:
        NotFoundError: If the invite is missing or belongs to a project the
            user cannot see.
    """
    invite = await InviteRepository.get_by_id(db, invite_id)
    if invite is None:
        raise NotFoundError("Invite", str(invite_id))
    try:
        await organization_service.authorize_project_access(
            db, user_id=user_id, project_id=invite.project_id
        )
    except NotFoundError as exc:
        raise NotFoundError("Invite", str(invite_id)) from exc
    return invite


async def revoke_project_invite(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    invite_id: uuid.UUID,
) -> Invite:
    """Revoke an invite. Idempotent; the first revocation time is kept."""
    invite = await get_invite(db, user_id=user_id, invite_id=invite_id)
    if invite.revoked_at is None:
        invite.revoked_at = datetime.now(UTC)
        await db.flush()
        logger.info("Invite %s revoked by user %s", invite.id, user_id)
    return invite


async def regenerate_project_invite_token(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    invite_id: uuid.UUID,
) -> IssuedInvite:
    """Replace an invite's token.

    The previous token stops matching immediately. One-time code progress
    (first-time verification, open challenges, guest passes) is reset
    because it was earned with the old link.

    Raises:
        NotFoundError: If the invite is missing or not the user's.
        InviteRevokedError: If the invite was revoked.
    """
    invite = await get_invite(db, user_id=user_id, invite_id=invite_id)
    if invite.is_revoked:
        raise InviteRevokedError()

    plain_token, token_hash = issue_token()
    invite.token_hash = token_hash
    invite.otp_verified_at = None
    await OtpChallengeRepository.consume_open_for_invite(
        db, invite.id, datetime.now(UTC)
    )
    await db.flush()
    logger.info("Invite %s token regenerated by user %s", invite.id, user_id)
    return IssuedInvite(invite=invite, token=plain_token)


async def get_invite_logs(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    invite_id: uuid.UUID,
    limit: int | None = None,
) -> list[InviteAccessLog]:
    """Read an invite's access history, newest first."""
    invite = await get_invite(db, user_id=user_id, invite_id=invite_id)
    return await access_log.list_access_logs(db, invite.id, limit=limit)


# =============================================================================
# Guest validation
# =============================================================================


async def resolve_active_invite(
    db: AsyncSession,
    token: str,
    now: datetime | None = None,
) -> Invite:
    """Find the invite for a raw token and check it is usable.

    Raises:
        InvalidInviteTokenError: No invite has this token.
        InviteRevokedError: The invite was revoked.
        InviteExpiredError: The invite expired.
    """
    invite = await InviteRepository.get_by_token_hash(db, hash_token(token))
    if invite is None:
        raise InvalidInviteTokenError()
    if invite.is_revoked:
        raise InviteRevokedError()
    if invite.expires_at is not None and invite.expires_at <= (
        now or datetime.now(UTC)
    ):
        raise InviteExpiredError()
    return invite


def _check_passcode(invite: Invite, passcode: str | None) -> None:
    if invite.mode is not SecurityMode.PASSCODE:
        return
    if not passcode:
        raise PasscodeRequiredError()
    if invite.passcode_hash is None or not verify_passcode(
        passcode, invite.passcode_hash
    ):
        logger.info("Wrong passcode for invite %s", invite.id)
        raise InvalidPasscodeError()


async def validate_invite_token(
    db: AsyncSession,
    token: str,
    *,
    client: ClientContext,
    recorder: AccessLogRecorder,
    passcode: str | None = None,
    guest_pass: str | None = None,
) -> InviteValidation:
    """Validate a guest's invite token.

    Args:
        db: Async database session.
        token: Raw invite token.
        client: Caller IP and user agent for the access log.
        recorder: Access log writer.
        passcode: Passcode entered by the guest (PASSCODE mode).
        guest_pass: Guest pass from a previous code verification.

    Returns:
        InviteValidation; ``requires_otp`` tells the client to ask for a code.

    Raises:
        InvalidInviteTokenError, InviteRevokedError, InviteExpiredError,
        PasscodeRequiredError, InvalidPasscodeError: see module docstring.
    """
    invite = await resolve_active_invite(db, token)
    _check_passcode(invite, passcode)
    otp_state = invite_otp.resolve_otp_state(invite, guest_pass=guest_pass)
    await recorder.record(db, invite_id=invite.id, client=client)
    return InviteValidation.for_invite(invite, otp_state)


async def request_invite_otp(
    db: AsyncSession,
    token: str,
    *,
    mailer: Mailer,
) -> InviteOtpChallenge:
    """Send a one-time code for an OTP_* invite.

    Raises:
        InvalidInviteTokenError, InviteRevokedError, InviteExpiredError:
            invite not usable.
        InvalidStateError: Invite does not use codes or has no contact email.
    """
    invite = await resolve_active_invite(db, token)
    return await invite_otp.issue_challenge(db, invite, mailer=mailer)


async def verify_invite_otp(
    db: AsyncSession,
    token: str,
    *,
    code: str | None,
    client: ClientContext,
    recorder: AccessLogRecorder,
) -> OtpGrant:
    """Verify a one-time code and grant the visit.

    A granted visit is a successful validation and is recorded in the
    access log.

    Raises:
        InvalidInviteTokenError, InviteRevokedError, InviteExpiredError:
            invite not usable.
        InvalidStateError, OtpRequiredError, InvalidOtpError: see
            invite_otp.verify_challenge.
    """
    invite = await resolve_active_invite(db, token)
    verification = await invite_otp.verify_challenge(db, invite, code=code)
    await recorder.record(db, invite_id=invite.id, client=client)
    return OtpGrant(
        validation=InviteValidation.for_invite(invite, verification.state),
        guest_pass=verification.guest_pass,
    )
