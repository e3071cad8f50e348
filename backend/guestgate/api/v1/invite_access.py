"""Public invite access endpoints (guests, no session).

The raw invite token travels in the request body so it stays out of
server access logs and Referer headers.

Endpoints:
- POST /invite-access/validate: validate token (+ passcode, guest pass)
- POST /invite-access/otp: email a one-time code (OTP_* invites)
- POST /invite-access/otp/verify: check the code, set the guest pass
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Cookie, Depends
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import Response

from guestgate.api.deps import Client, DbSession, Limiter, MailerDep, Recorder
from guestgate.core.auth import set_guest_pass_cookie
from guestgate.core.config import settings
from guestgate.core.rate_limiting import (
    INVITE_OTP_SEND_POLICY,
    INVITE_VALIDATE_POLICY,
    OTP_VERIFY_POLICY,
    limit_by_client_ip,
)
from guestgate.core.responses import DataResponse
from guestgate.core.tokens import hash_token
from guestgate.models.invite import SecurityMode
from guestgate.services import invite_service
from guestgate.services.invite_otp import InviteOtpState
from guestgate.services.invite_service import InviteValidation

router = APIRouter()

GuestPassCookie = Annotated[
    str | None, Cookie(alias=settings.invite_pass_cookie_name)
]


# ===================================================================
# Request / response models
# ===================================================================


class ValidateInviteRequest(BaseModel):
    """Request body for POST /invite-access/validate."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=256)
    passcode: str | None = Field(default=None, max_length=72)


class RequestOtpRequest(BaseModel):
    """Request body for POST /invite-access/otp."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=256)


class VerifyOtpRequest(BaseModel):
    """Request body for POST /invite-access/otp/verify."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=256)
    code: str | None = Field(default=None, max_length=16)


class InviteAccessSchema(BaseModel):
    """Validated invite as seen by the guest's client."""

    invite_id: uuid.UUID
    project_id: uuid.UUID
    site_id: uuid.UUID
    guest_id: uuid.UUID | None
    group_id: uuid.UUID | None
    security_mode: SecurityMode
    otp_state: InviteOtpState
    requires_otp: bool

    @classmethod
    def from_validation(cls, validation: InviteValidation) -> "InviteAccessSchema":
        return cls(
            invite_id=validation.invite_id,
            project_id=validation.project_id,
            site_id=validation.site_id,
            guest_id=validation.guest_id,
            group_id=validation.group_id,
            security_mode=validation.security_mode,
            otp_state=validation.otp_state,
            requires_otp=validation.requires_otp,
        )


# ===================================================================
# Endpoints
# ===================================================================


@router.post(
    "/validate",
    dependencies=[Depends(limit_by_client_ip(INVITE_VALIDATE_POLICY))],
)
async def validate_invite(
    body: ValidateInviteRequest,
    db: DbSession,
    client: Client,
    recorder: Recorder,
    guest_pass: GuestPassCookie = None,
) -> DataResponse[InviteAccessSchema]:
    """Validate an invite token.

    For OTP_* invites, ``requires_otp`` tells the client to request and
    verify a one-time code before showing the site.

    Rate limit: 20 per 10 minutes per IP.
    """
    validation = await invite_service.validate_invite_token(
        db,
        body.token,
        client=client,
        recorder=recorder,
        passcode=body.passcode,
        guest_pass=guest_pass,
    )
    await db.commit()
    return DataResponse(data=InviteAccessSchema.from_validation(validation))


@router.post("/otp", status_code=202)
async def request_otp(
    body: RequestOtpRequest,
    db: DbSession,
    mailer: MailerDep,
    limiter: Limiter,
) -> DataResponse[dict]:
    """Email a one-time code to the invite's contact address.

    Rate limit: 3 per 10 minutes per invite token.
    """
    await limiter.check(INVITE_OTP_SEND_POLICY, hash_token(body.token))
    challenge = await invite_service.request_invite_otp(db, body.token, mailer=mailer)
    await db.commit()
    return DataResponse(
        data={
            "message": "A one-time code has been sent",
            "expires_at": challenge.expires_at.isoformat(),
        }
    )


@router.post(
    "/otp/verify",
    dependencies=[Depends(limit_by_client_ip(OTP_VERIFY_POLICY))],
)
async def verify_otp(
    body: VerifyOtpRequest,
    response: Response,
    db: DbSession,
    client: Client,
    recorder: Recorder,
) -> DataResponse[InviteAccessSchema]:
    """Verify a one-time code.

    OTP_EVERY_SESSION invites also get a guest pass cookie that skips the
    code for the rest of the browser session.

    Rate limit: 10 per 10 minutes per IP.
    """
    grant = await invite_service.verify_invite_otp(
        db, body.token, code=body.code, client=client, recorder=recorder
    )
    await db.commit()
    if grant.guest_pass is not None:
        set_guest_pass_cookie(response, grant.guest_pass)
    return DataResponse(data=InviteAccessSchema.from_validation(grant.validation))
