"""Magic link + session endpoints.

Passwordless sign-in via email magic links backed by server-side sessions.

Endpoints:
- POST /auth/register: create account if needed, send magic link
- POST /auth/login: send magic link to an existing account
- POST /auth/resend-magic-link: resend, limited per email
- POST /auth/verify: redeem magic link, open session, set cookie
- POST /auth/logout: end current session, clear cookie
- GET /auth/me: current user and organizations
- PATCH /auth/profile: update display name / locale
- GET /auth/sessions: list signed-in devices
- DELETE /auth/sessions/{session_id}: sign out one device
- POST /auth/logout-all: sign out every device
"""

import enum
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from guestgate.api.deps import (
    Client,
    CurrentSession,
    CurrentUser,
    DbSession,
    Limiter,
    MailerDep,
)
from guestgate.core.auth import (
    clear_session_cookie,
    extract_session_token,
    set_session_cookie,
)
from guestgate.core.errors import ValidationError
from guestgate.core.rate_limiting import (
    MAGIC_LINK_POLICY,
    OTP_VERIFY_POLICY,
    limit_by_client_ip,
)
from guestgate.core.responses import DataResponse
from guestgate.models.user import User
from guestgate.repositories.organization_repository import OrganizationRepository
from guestgate.repositories.user_repository import UserRepository
from guestgate.services import auth_service, session_service

router = APIRouter()


# ===================================================================
# Request / response models
# ===================================================================


class LoginRequest(BaseModel):
    """Request body for POST /auth/login and /auth/resend-magic-link."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    full_name: str | None = Field(default=None, max_length=255)


class VerifyRequest(BaseModel):
    """Request body for POST /auth/verify."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=256)


class UpdateProfileRequest(BaseModel):
    """Request body for PATCH /auth/profile."""

    model_config = ConfigDict(extra="forbid")

    full_name: str | None = Field(default=None, max_length=255)
    locale: str | None = Field(default=None, min_length=2, max_length=10)


class UserSchema(BaseModel):
    """User payload."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    full_name: str | None
    locale: str


class OrganizationMembershipSchema(BaseModel):
    """One of the current user's organizations."""

    id: uuid.UUID
    name: str
    type: str
    role: str


class MeSchema(BaseModel):
    """Payload for GET /auth/me."""

    user: UserSchema
    organizations: list[OrganizationMembershipSchema]


class VerifySchema(BaseModel):
    """Payload for POST /auth/verify.

    The session token is also set as an httpOnly cookie; it is returned in
    the body for clients that send it as a Bearer header.
    """

    user: UserSchema
    session_token: str
    expires_at: datetime
    is_new_user: bool


class SessionSchema(BaseModel):
    """A signed-in device."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime
    expires_at: datetime
    ip_address: str | None
    user_agent: str | None
    current: bool = False


# ===================================================================
# Enumeration-safe responses
# ===================================================================


class MagicLinkFlow(enum.Enum):
    """Magic link issuing endpoints."""

    LOGIN = "login"
    REGISTER = "register"
    RESEND = "resend"


_LINK_SENT_IF_ACCOUNT = (
    "If an account exists for this email, a sign-in link has been sent."
)

_MAGIC_LINK_MESSAGES = {
    MagicLinkFlow.LOGIN: _LINK_SENT_IF_ACCOUNT,
    MagicLinkFlow.REGISTER: "Check your email for a link to finish signing up.",
    MagicLinkFlow.RESEND: _LINK_SENT_IF_ACCOUNT,
}


def magic_link_public_response(flow: MagicLinkFlow) -> DataResponse[dict]:
    """The only response magic link issuing endpoints return.

    Takes no input from the issuing service, so whether an account exists
    cannot reach the response body.
    """
    return DataResponse(data={"message": _MAGIC_LINK_MESSAGES[flow]})


# ===================================================================
# POST /auth/register, /auth/login, /auth/resend-magic-link
# ===================================================================


@router.post(
    "/register",
    status_code=201,
    dependencies=[Depends(limit_by_client_ip(MAGIC_LINK_POLICY))],
)
async def register(
    body: RegisterRequest,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[dict]:
    """Create an account if needed and email a sign-in link.

    Rate limit: 5 per 10 minutes per IP.
    """
    full_name = body.full_name.strip() if body.full_name else None
    await auth_service.register_user(
        db, email=body.email, full_name=full_name or None, mailer=mailer
    )
    await db.commit()
    return magic_link_public_response(MagicLinkFlow.REGISTER)


@router.post(
    "/login",
    dependencies=[Depends(limit_by_client_ip(MAGIC_LINK_POLICY))],
)
async def login(
    body: LoginRequest,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[dict]:
    """Email a sign-in link to an existing account.

    Always returns the same success message (prevents email enumeration).

    Rate limit: 5 per 10 minutes per IP.
    """
    await auth_service.send_login_magic_link(db, email=body.email, mailer=mailer)
    await db.commit()
    return magic_link_public_response(MagicLinkFlow.LOGIN)


@router.post("/resend-magic-link")
async def resend_magic_link(
    body: LoginRequest,
    db: DbSession,
    mailer: MailerDep,
    limiter: Limiter,
) -> DataResponse[dict]:
    """Resend a sign-in link.

    Rate limit: 3 per hour per email, counted whether or not the account
    exists.
    """
    await auth_service.resend_magic_link(
        db, email=body.email, mailer=mailer, limiter=limiter
    )
    await db.commit()
    return magic_link_public_response(MagicLinkFlow.RESEND)


# ===================================================================
# POST /auth/verify
# ===================================================================


@router.post(
    "/verify",
    dependencies=[Depends(limit_by_client_ip(OTP_VERIFY_POLICY))],
)
async def verify(
    body: VerifyRequest,
    response: Response,
    db: DbSession,
    client: Client,
) -> DataResponse[VerifySchema]:
    """Redeem a magic link and open a session.

    Sets the httpOnly session cookie. Any failure (unknown, used, expired)
    returns the same 401.

    Rate limit: 10 per 10 minutes per IP.
    """
    result = await auth_service.login_with_magic_link(
        db, token=body.token, client=client
    )
    await db.commit()

    set_session_cookie(response, result.session_token)
    # Prevent token leakage via Referer header
    response.headers["Referrer-Policy"] = "no-referrer"
    return DataResponse(
        data=VerifySchema(
            user=UserSchema.model_validate(result.user),
            session_token=result.session_token,
            expires_at=result.session.expires_at,
            is_new_user=result.is_new_user,
        )
    )


# ===================================================================
# POST /auth/logout, /auth/logout-all
# ===================================================================


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: DbSession,
) -> DataResponse[dict]:
    """End the current session and clear the cookie.

    No valid session required: logging out twice, or with an expired
    token, still succeeds.
    """
    await session_service.logout(db, extract_session_token(request))
    await db.commit()
    clear_session_cookie(response)
    return DataResponse(data={"message": "Signed out"})


@router.post("/logout-all")
async def logout_all(
    response: Response,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[dict]:
    """Sign out every device, including this one."""
    ended = await session_service.logout_everywhere(db, user.id)
    await db.commit()
    clear_session_cookie(response)
    return DataResponse(data={"message": "Signed out everywhere", "ended": ended})


# ===================================================================
# GET /auth/me, PATCH /auth/profile
# ===================================================================


async def _me_payload(db: AsyncSession, user: User) -> MeSchema:
    organizations = await OrganizationRepository.list_for_user(db, user.id)
    return MeSchema(
        user=UserSchema.model_validate(user),
        organizations=[
            OrganizationMembershipSchema(
                id=org.id, name=org.name, type=org.type, role=role
            )
            for org, role in organizations
        ],
    )


@router.get("/me")
async def get_me(user: CurrentUser, db: DbSession) -> DataResponse[MeSchema]:
    """Return the current user and their organizations.

    Returns 401 without a valid session.
    """
    return DataResponse(data=await _me_payload(db, user))


@router.patch("/profile")
async def update_profile(
    body: UpdateProfileRequest,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[UserSchema]:
    """Update the current user's display name and/or locale."""
    fields: dict[str, str | None] = {}
    if body.full_name is not None:
        trimmed_name = body.full_name.strip()
        if not trimmed_name:
            raise ValidationError("Name must not be empty")
        fields["full_name"] = trimmed_name
    if body.locale is not None:
        fields["locale"] = body.locale.strip()
    if not fields:
        raise ValidationError("Nothing to update")

    updated = await UserRepository.update(db, user.id, **fields)
    await db.commit()
    return DataResponse(data=UserSchema.model_validate(updated or user))


# ===================================================================
# Device sessions
# ===================================================================


@router.get("/sessions")
async def list_sessions(
    current: CurrentSession,
    db: DbSession,
) -> DataResponse[list[SessionSchema]]:
    """List the current user's signed-in devices."""
    assert current.user is not None and current.session is not None  # nosec B101
    sessions = await session_service.list_user_sessions(db, current.user.id)
    return DataResponse(
        data=[
            SessionSchema.model_validate(s).model_copy(
                update={"current": s.id == current.session.id}
            )
            for s in sessions
        ]
    )


@router.delete("/sessions/{session_id}")
async def revoke_session(
    session_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[dict]:
    """Sign out one of the current user's devices."""
    await session_service.revoke_user_session(
        db, user_id=user.id, session_id=session_id
    )
    await db.commit()
    return DataResponse(data={"message": "Session revoked"})
