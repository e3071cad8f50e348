"""One-time code state machine for OTP_* invites.

This module alone decides whether an invite visit still needs a code:

    mode                 state on validation
    -------------------  --------------------------------------------------
    OPEN / LINK_LOCKED   NONE_REQUIRED
    PASSCODE             NONE_REQUIRED
    OTP_FIRST_TIME       OTP_VERIFIED once any code was ever accepted,
                         otherwise OTP_PENDING
    OTP_EVERY_SESSION    OTP_VERIFIED with a guest pass for the current
                         token, otherwise OTP_PENDING
    OTP_EVERY_TIME       OTP_PENDING (each visit is granted by its own
                         code verification)

Codes are 6 digits, stored as HMAC-SHA256, valid for INVITE_OTP_TTL_MINUTES,
and allow INVITE_OTP_MAX_ATTEMPTS guesses. Issuing a code closes any
previous one.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.core.auth import create_guest_pass, guest_pass_grants
from guestgate.core.config import settings
from guestgate.core.email import Mailer
from guestgate.core.errors import InvalidOtpError, InvalidStateError, OtpRequiredError
from guestgate.core.tokens import generate_otp_code, hash_otp_code, hashes_match
from guestgate.models.invite import Invite, InviteOtpChallenge, SecurityMode
from guestgate.repositories.otp_challenge_repository import OtpChallengeRepository

logger = logging.getLogger(__name__)


class InviteOtpState(enum.StrEnum):
    """Whether an invite visit still needs a one-time code."""

    NONE_REQUIRED = "NONE_REQUIRED"
    OTP_PENDING = "OTP_PENDING"
    OTP_VERIFIED = "OTP_VERIFIED"


@dataclass(frozen=True)
class OtpVerification:
    """Outcome of an accepted one-time code.

    Attributes:
        state: Always OTP_VERIFIED.
        guest_pass: Signed pass to store client-side (OTP_EVERY_SESSION
            only; None for the other modes).
    """

    state: InviteOtpState
    guest_pass: str | None


def _secret() -> str:
    return settings.auth_secret.get_secret_value()


def resolve_otp_state(invite: Invite, *, guest_pass: str | None) -> InviteOtpState:
    """Compute the OTP state of a validation request.

    Args:
        invite: Active (not revoked, not expired) invite.
        guest_pass: Guest pass presented by the client, if any.

    Returns:
        InviteOtpState for this request.
    """
    mode = invite.mode
    if not mode.uses_otp:
        return InviteOtpState.NONE_REQUIRED

    if mode is SecurityMode.OTP_FIRST_TIME:
        if invite.otp_verified_at is not None:
            return InviteOtpState.OTP_VERIFIED
        return InviteOtpState.OTP_PENDING

    if mode is SecurityMode.OTP_EVERY_SESSION and guest_pass_grants(
        guest_pass,
        invite_id=invite.id,
        token_hash=invite.token_hash,
        secret=_secret(),
    ):
        return InviteOtpState.OTP_VERIFIED

    return InviteOtpState.OTP_PENDING


def _require_otp_mode(invite: Invite) -> None:
    if not invite.mode.uses_otp:
        raise InvalidStateError("This invite does not use one-time codes")


async def issue_challenge(
    db: AsyncSession,
    invite: Invite,
    *,
    mailer: Mailer,
    now: datetime | None = None,
) -> InviteOtpChallenge:
    """Create a one-time code for an invite and email it.

    Args:
        db: Async database session.
        invite: Active invite in an OTP_* mode.
        mailer: Email sender.
        now: Reference time. Defaults to the current time.

    Returns:
        Created InviteOtpChallenge.

    Raises:
        InvalidStateError: If the invite does not use one-time codes or has
            no contact email, or is OTP_EVERY_SESSION while no
            signing secret is configured.
    """
    _require_otp_mode(invite)
    if not invite.contact_email:
        raise InvalidStateError("This invite has no contact email for one-time codes")
    if invite.mode is SecurityMode.OTP_EVERY_SESSION and not _secret():
        raise InvalidStateError("Guest passes need AUTH_SECRET to be configured")

    issued_at = now or datetime.now(UTC)
    await OtpChallengeRepository.consume_open_for_invite(db, invite.id, issued_at)

    code = generate_otp_code()
    challenge = await OtpChallengeRepository.create(
        db,
        invite_id=invite.id,
        code_hash=hash_otp_code(code, _secret()),
        expires_at=issued_at + timedelta(minutes=settings.invite_otp_ttl_minutes),
    )
    await mailer.send_invite_otp(
        to_email=invite.contact_email,
        code=code,
        expires_minutes=settings.invite_otp_ttl_minutes,
    )
    logger.info("One-time code issued for invite %s", invite.id)
    return challenge


async def verify_challenge(
    db: AsyncSession,
    invite: Invite,
    *,
    code: str | None,
    now: datetime | None = None,
) -> OtpVerification:
    """Check a one-time code against the invite's open challenge.

    The attempt counter is committed before the code is compared, so failed
    guesses count even though the error response rolls back the request.

    Args:
        db: Async database session.
        invite: Active invite in an OTP_* mode.
        code: Code entered by the guest.
        now: Reference time. Defaults to the current time.

    Returns:
        OtpVerification carrying a guest pass for OTP_EVERY_SESSION.

    Raises:
        InvalidStateError: If the invite does not use one-time codes.
        OtpRequiredError: If no code was given.
        InvalidOtpError: If there is no open challenge, or it expired, ran
            out of attempts, or the code does not match.
    """
    _require_otp_mode(invite)
    if not code:
        raise OtpRequiredError()

    checked_at = now or datetime.now(UTC)
    challenge = await OtpChallengeRepository.get_open_for_invite(db, invite.id)
    if challenge is None or challenge.expires_at <= checked_at:
        raise InvalidOtpError()

    attempts = await OtpChallengeRepository.record_attempt(db, challenge.id)
    if attempts > settings.invite_otp_max_attempts:
        await OtpChallengeRepository.consume(db, challenge.id, checked_at)
        await db.commit()
        logger.warning("One-time code attempts exhausted for invite %s", invite.id)
        raise InvalidOtpError()
    await db.commit()

    if not hashes_match(hash_otp_code(code, _secret()), challenge.code_hash):
        logger.info("Wrong one-time code for invite %s", invite.id)
        raise InvalidOtpError()

    if not await OtpChallengeRepository.consume(db, challenge.id, checked_at):
        # A concurrent request accepted this code first
        raise InvalidOtpError()

    if invite.otp_verified_at is None:
        invite.otp_verified_at = checked_at
        await db.flush()

    guest_pass = None
    if invite.mode is SecurityMode.OTP_EVERY_SESSION:
        guest_pass = create_guest_pass(
            invite_id=invite.id,
            token_hash=invite.token_hash,
            secret=_secret(),
        )
    logger.info("One-time code accepted for invite %s", invite.id)
    return OtpVerification(state=InviteOtpState.OTP_VERIFIED, guest_pass=guest_pass)
