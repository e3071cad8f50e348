"""Passwordless staff authentication via magic links.

Attempt lifecycle: REQUESTED -> TOKEN_ISSUED -> REDEEMED | EXPIRED | SUPERSEDED.

Enumeration defense: issuing functions return MagicLinkDispatch, whose
``sent`` flag is for logging and tests only. The HTTP layer answers every
issuing request with a fixed message (see api/v1/auth.py) and never reads
the flag. Token generation runs in every code path to keep the crypto
work constant.

Redemption deletes the token row in one DELETE ... RETURNING statement, so
of two concurrent redemptions exactly one gets the row.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.core.auth import ClientContext
from guestgate.core.config import settings
from guestgate.core.email import Mailer
from guestgate.core.errors import InvalidOrExpiredTokenError
from guestgate.core.rate_limiting import RESEND_MAGIC_LINK_POLICY, RateLimiter
from guestgate.core.tokens import hash_token, issue_token
from guestgate.models.session import Session
from guestgate.models.user import User
from guestgate.repositories.magic_link_repository import MagicLinkRepository
from guestgate.repositories.organization_repository import OrganizationRepository
from guestgate.repositories.user_repository import UserRepository, normalize_email
from guestgate.services import organization_service, session_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MagicLinkDispatch:
    """Internal outcome of a magic link request.

    Attributes:
        sent: Whether a token was stored and an email queued.
    """

    sent: bool


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful magic link redemption.

    Attributes:
        user: Signed-in user.
        session_token: Raw session token for the client.
        session: Created session row.
        is_new_user: True when the user had no organization memberships
            before this sign-in.
    """

    user: User
    session_token: str
    session: Session
    is_new_user: bool


def _email_domain(email: str) -> str:
    return email.rpartition("@")[2]


async def _store_magic_link(db: AsyncSession, *, email: str, token_hash: str) -> None:
    await MagicLinkRepository.create(
        db,
        email=email,
        token_hash=token_hash,
        expires_at=datetime.now(UTC)
        + timedelta(minutes=settings.magic_link_ttl_minutes),
    )


async def _is_new_user(db: AsyncSession, user: User) -> bool:
    return await OrganizationRepository.count_memberships(db, user.id) == 0


async def send_login_magic_link(
    db: AsyncSession,
    *,
    email: str,
    mailer: Mailer,
) -> MagicLinkDispatch:
    """Issue a sign-in link if an account exists for the email.

    Args:
        db: Async database session.
        email: Address as entered (normalized here).
        mailer: Email sender.

    Returns:
        MagicLinkDispatch (never exposed to the requester).
    """
    email = normalize_email(email)

    # Generate token in all paths (constant-time crypto work)
    plain_token, token_hash = issue_token()

    user = await UserRepository.get_by_email(db, email)
    if user is None:
        logger.info(
            "Magic link requested for unknown address at %s", _email_domain(email)
        )
        return MagicLinkDispatch(sent=False)

    await _store_magic_link(db, email=email, token_hash=token_hash)
    await mailer.send_magic_link(
        to_email=email,
        token=plain_token,
        full_name=user.full_name,
        is_new_user=await _is_new_user(db, user),
    )
    logger.info("Magic link issued for user %s", user.id)
    return MagicLinkDispatch(sent=True)


async def register_user(
    db: AsyncSession,
    *,
    email: str,
    full_name: str | None,
    mailer: Mailer,
) -> MagicLinkDispatch:
    """Ensure an account exists for the email and send a sign-in link.

    Idempotent: registering an existing address reuses the account without
    changing it, so the response cannot reveal prior registration.

    Args:
        db: Async database session.
        email: Address as entered (normalized here).
        full_name: Display name for a new account.
        mailer: Email sender.

    Returns:
        MagicLinkDispatch (always sent).
    """
    email = normalize_email(email)
    plain_token, token_hash = issue_token()

    user = await UserRepository.get_by_email(db, email)
    if user is None:
        try:
            async with db.begin_nested():
                user = await UserRepository.create(db, email=email, full_name=full_name)
        except IntegrityError:
            # Concurrent registration of the same address won the insert
            user = await UserRepository.get_by_email(db, email)
            if user is None:
                raise
        else:
            logger.info("User %s registered", user.id)

    await _store_magic_link(db, email=email, token_hash=token_hash)
    await mailer.send_magic_link(
        to_email=email,
        token=plain_token,
        full_name=user.full_name,
        is_new_user=await _is_new_user(db, user),
    )
    return MagicLinkDispatch(sent=True)


async def resend_magic_link(
    db: AsyncSession,
    *,
    email: str,
    mailer: Mailer,
    limiter: RateLimiter,
) -> MagicLinkDispatch:
    """Re-send a sign-in link, limited per email address.

    The per-email limit is counted before the account lookup, so known and
    unknown addresses hit it identically.

    Raises:
        RateLimitedError: If the address exceeded its resend budget.
    """
    email = normalize_email(email)
    await limiter.check(RESEND_MAGIC_LINK_POLICY, email)
    return await send_login_magic_link(db, email=email, mailer=mailer)


async def login_with_magic_link(
    db: AsyncSession,
    *,
    token: str,
    client: ClientContext,
) -> LoginResult:
    """Redeem a magic link and open a session.

    On success the token and every other outstanding link for the same
    address are gone, pending organization invitations are accepted, and a
    new session exists.

    Args:
        db: Async database session.
        token: Raw token from the link.
        client: Caller IP and user agent recorded on the session.

    Returns:
        LoginResult with the raw session token.

    Raises:
        InvalidOrExpiredTokenError: Unknown, already used, or expired token,
            or the account was deleted after the link was sent.
    """
    now = datetime.now(UTC)
    consumed = await MagicLinkRepository.consume(db, hash_token(token))
    if consumed is None:
        logger.info("Magic link redemption failed: unknown or already used")
        raise InvalidOrExpiredTokenError()
    if consumed.expires_at <= now:
        logger.info("Magic link redemption failed: expired")
        raise InvalidOrExpiredTokenError()

    user = await UserRepository.get_by_email(db, consumed.email)
    if user is None:
        logger.warning("Magic link redeemed for a deleted account")
        raise InvalidOrExpiredTokenError()

    await MagicLinkRepository.delete_all_for_email(db, consumed.email)

    is_new_user = await _is_new_user(db, user)
    await organization_service.accept_pending_invitations(db, user)

    session_token, session = await session_service.create_session(
        db, user_id=user.id, client=client, now=now
    )
    logger.info("User %s signed in (session %s)", user.id, session.id)
    return LoginResult(
        user=user,
        session_token=session_token,
        session=session,
        is_new_user=is_new_user,
    )
