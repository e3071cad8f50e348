"""Organization endpoints.

Organizations own projects; membership in the owner organization is what
lets staff manage a project's guest invites.

Endpoints:
- POST /orgs: create an organization (caller becomes admin)
- GET /orgs/{org_id}: organization and members (members only)
- POST /orgs/{org_id}/invitations: invite an email address to join
"""

import uuid
from datetime import datetime
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from guestgate.api.deps import CurrentUser, DbSession, MailerDep
from guestgate.core.responses import DataResponse
from guestgate.services import organization_service

router = APIRouter()


# ===================================================================
# Request / response models
# ===================================================================


class CreateOrganizationRequest(BaseModel):
    """Request body for POST /orgs."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    type: Literal["COUPLE", "PLANNER", "VENUE"]


class InviteMemberRequest(BaseModel):
    """Request body for POST /orgs/{org_id}/invitations."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    role: Literal["admin", "member"] = "member"


class MemberSchema(BaseModel):
    """Organization member."""

    user_id: uuid.UUID
    email: str
    full_name: str | None
    role: str


class OrganizationSchema(BaseModel):
    """Organization payload."""

    id: uuid.UUID
    name: str
    type: str
    created_at: datetime
    members: list[MemberSchema] = []


class InvitationSchema(BaseModel):
    """Pending organization invitation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    org_id: uuid.UUID
    email: str
    role: str
    expires_at: datetime


# ===================================================================
# Endpoints
# ===================================================================


@router.post("", status_code=201)
async def create_organization(
    body: CreateOrganizationRequest,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[OrganizationSchema]:
    """Create an organization with the caller as admin."""
    org = await organization_service.create_organization(
        db, creator=user, name=body.name.strip(), org_type=body.type
    )
    await db.commit()
    return DataResponse(
        data=OrganizationSchema(
            id=org.id,
            name=org.name,
            type=org.type,
            created_at=org.created_at,
            members=[
                MemberSchema(
                    user_id=user.id,
                    email=user.email,
                    full_name=user.full_name,
                    role=organization_service.ADMIN_ROLE,
                )
            ],
        )
    )


@router.get("/{org_id}")
async def get_organization(
    org_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[OrganizationSchema]:
    """Return an organization and its members.

    Non-members get 404, same as a missing organization.
    """
    org, members = await organization_service.get_organization_for_member(
        db, user_id=user.id, org_id=org_id
    )
    return DataResponse(
        data=OrganizationSchema(
            id=org.id,
            name=org.name,
            type=org.type,
            created_at=org.created_at,
            members=[
                MemberSchema(
                    user_id=member.id,
                    email=member.email,
                    full_name=member.full_name,
                    role=role,
                )
                for member, role in members
            ],
        )
    )


@router.post("/{org_id}/invitations", status_code=201)
async def invite_member(
    org_id: uuid.UUID,
    body: InviteMemberRequest,
    user: CurrentUser,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[InvitationSchema]:
    """Invite an email address to the organization.

    The invitation is accepted automatically the next time that address
    signs in with a magic link.
    """
    invitation = await organization_service.invite_member(
        db,
        inviter=user,
        org_id=org_id,
        email=body.email,
        role=body.role,
        mailer=mailer,
    )
    await db.commit()
    return DataResponse(data=InvitationSchema.model_validate(invitation))
