"""Guest invite management endpoints (staff).

Every endpoint requires a session belonging to a member of the project's
owner organization. Invites of other organizations return 404.

Endpoints:
- GET /projects/{project_id}/invites: list (filter by site/guest/group)
- POST /projects/{project_id}/invites: create; returns the raw token once
- GET /invites/{invite_id}: get
- POST /invites/{invite_id}/revoke: revoke (terminal, idempotent)
- POST /invites/{invite_id}/regenerate: new token, old link stops working
- GET /invites/{invite_id}/logs: access history, newest first
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import AwareDatetime, BaseModel, ConfigDict, EmailStr, Field

from guestgate.api.deps import CurrentUser, DbSession
from guestgate.core.responses import DataResponse
from guestgate.models.invite import Invite, SecurityMode
from guestgate.services import invite_service

project_invites_router = APIRouter()
router = APIRouter()


# ===================================================================
# Request / response models
# ===================================================================


class CreateInviteRequest(BaseModel):
    """Request body for POST /projects/{project_id}/invites."""

    model_config = ConfigDict(extra="forbid")

    site_id: uuid.UUID
    security_mode: str = Field(default=SecurityMode.OPEN.value, max_length=32)
    passcode: str | None = Field(default=None, max_length=72)
    guest_id: uuid.UUID | None = None
    group_id: uuid.UUID | None = None
    contact_email: EmailStr | None = None
    expires_at: AwareDatetime | None = None


class InviteSchema(BaseModel):
    """Invite payload. Never includes the token or passcode hash."""

    id: uuid.UUID
    project_id: uuid.UUID
    site_id: uuid.UUID
    guest_id: uuid.UUID | None
    group_id: uuid.UUID | None
    contact_email: str | None
    security_mode: SecurityMode
    expires_at: datetime | None
    revoked_at: datetime | None
    otp_verified_at: datetime | None
    created_at: datetime

    @classmethod
    def from_invite(cls, invite: Invite) -> "InviteSchema":
        return cls(
            id=invite.id,
            project_id=invite.project_id,
            site_id=invite.site_id,
            guest_id=invite.guest_id,
            group_id=invite.group_id,
            contact_email=invite.contact_email,
            security_mode=invite.mode,
            expires_at=invite.expires_at,
            revoked_at=invite.revoked_at,
            otp_verified_at=invite.otp_verified_at,
            created_at=invite.created_at,
        )


class IssuedInviteSchema(InviteSchema):
    """Invite payload with the raw token, returned on create/regenerate."""

    token: str


class AccessLogSchema(BaseModel):
    """One invite access log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invite_id: uuid.UUID
    accessed_at: datetime
    ip_address: str | None
    user_agent: str | None


def _issued(issued: invite_service.IssuedInvite) -> IssuedInviteSchema:
    return IssuedInviteSchema(
        **InviteSchema.from_invite(issued.invite).model_dump(),
        token=issued.token,
    )


# ===================================================================
# /projects/{project_id}/invites
# ===================================================================


@project_invites_router.get("/{project_id}/invites")
async def list_invites(
    project_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    site_id: uuid.UUID | None = None,
    guest_id: uuid.UUID | None = None,
    group_id: uuid.UUID | None = None,
) -> DataResponse[list[InviteSchema]]:
    """List a project's invites, newest first."""
    invites = await invite_service.list_project_invites(
        db,
        user_id=user.id,
        project_id=project_id,
        site_id=site_id,
        guest_id=guest_id,
        group_id=group_id,
    )
    return DataResponse(data=[InviteSchema.from_invite(i) for i in invites])


@project_invites_router.post("/{project_id}/invites", status_code=201)
async def create_invite(
    project_id: uuid.UUID,
    body: CreateInviteRequest,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[IssuedInviteSchema]:
    """Create an invite.

    The raw token is in the response and cannot be retrieved again.
    """
    issued = await invite_service.create_project_invite(
        db,
        user_id=user.id,
        project_id=project_id,
        site_id=body.site_id,
        security_mode=body.security_mode,
        passcode=body.passcode,
        guest_id=body.guest_id,
        group_id=body.group_id,
        contact_email=body.contact_email,
        expires_at=body.expires_at,
    )
    await db.commit()
    return DataResponse(data=_issued(issued))


# ===================================================================
# /invites/{invite_id}
# ===================================================================


@router.get("/{invite_id}")
async def get_invite(
    invite_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[InviteSchema]:
    """Get one invite."""
    invite = await invite_service.get_invite(db, user_id=user.id, invite_id=invite_id)
    return DataResponse(data=InviteSchema.from_invite(invite))


@router.post("/{invite_id}/revoke")
async def revoke_invite(
    invite_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[InviteSchema]:
    """Revoke an invite. Revoking twice returns the same revoked invite."""
    invite = await invite_service.revoke_project_invite(
        db, user_id=user.id, invite_id=invite_id
    )
    await db.commit()
    return DataResponse(data=InviteSchema.from_invite(invite))


@router.post("/{invite_id}/regenerate")
async def regenerate_invite(
    invite_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[IssuedInviteSchema]:
    """Issue a new token for an invite.

    Returns 410 INVITE_REVOKED for a revoked invite.
    """
    issued = await invite_service.regenerate_project_invite_token(
        db, user_id=user.id, invite_id=invite_id
    )
    await db.commit()
    return DataResponse(data=_issued(issued))


@router.get("/{invite_id}/logs")
async def get_invite_logs(
    invite_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    limit: int = Query(default=100, ge=1, le=1000),
) -> DataResponse[list[AccessLogSchema]]:
    """Return an invite's access history, newest first."""
    logs = await invite_service.get_invite_logs(
        db, user_id=user.id, invite_id=invite_id, limit=limit
    )
    return DataResponse(data=[AccessLogSchema.model_validate(log) for log in logs])
