"""Create auth, organization, and guest invite tables.

Revision ID: 001_auth_and_invites
Revises:
Create Date: 2026-10-18

- users, sessions, magic_link_tokens: staff magic link authentication
- organizations, organization_members, organization_invitations: tenants
- projects: minimal project rows owning invites
- invites, invite_access_logs, invite_otp_challenges: guest access
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_auth_and_invites"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_SECURITY_MODES = (
    "'OPEN', 'LINK_LOCKED', 'PASSCODE', "
    "'OTP_FIRST_TIME', 'OTP_EVERY_SESSION', 'OTP_EVERY_TIME'"
)


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        sa.UUID(),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    # pgcrypto provides gen_random_uuid() for UUID primary keys
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # =========================================================================
    # Staff authentication
    # =========================================================================

    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("locale", sa.String(10), nullable=False, server_default="en"),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("email", name="users_email_key"),
    )

    op.create_table(
        "sessions",
        _uuid_pk(),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        _created_at(),
        sa.UniqueConstraint("token_hash", name="sessions_token_hash_key"),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"])

    # Single-use: redemption is DELETE ... RETURNING on the primary key
    op.create_table(
        "magic_link_tokens",
        sa.Column("token_hash", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
    )
    op.create_index("ix_magic_link_tokens_email", "magic_link_tokens", ["email"])
    op.create_index(
        "ix_magic_link_tokens_expires_at", "magic_link_tokens", ["expires_at"]
    )

    # =========================================================================
    # Organizations
    # =========================================================================

    op.create_table(
        "organizations",
        _uuid_pk(),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "type IN ('COUPLE', 'PLANNER', 'VENUE')",
            name="ck_organizations_type",
        ),
    )

    op.create_table(
        "organization_members",
        _uuid_pk(),
        sa.Column(
            "org_id",
            sa.UUID(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(20), nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            "org_id", "user_id", name="uq_organization_members_org_user"
        ),
        sa.CheckConstraint(
            "role IN ('admin', 'member')",
            name="ck_organization_members_role",
        ),
    )
    op.create_index(
        "ix_organization_members_org_id", "organization_members", ["org_id"]
    )
    op.create_index(
        "ix_organization_members_user_id", "organization_members", ["user_id"]
    )

    op.create_table(
        "organization_invitations",
        _uuid_pk(),
        sa.Column(
            "org_id",
            sa.UUID(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column(
            "invited_by",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            "org_id", "email", name="uq_organization_invitations_org_email"
        ),
        sa.CheckConstraint(
            "role IN ('admin', 'member')",
            name="ck_organization_invitations_role",
        ),
    )
    op.create_index(
        "ix_organization_invitations_email", "organization_invitations", ["email"]
    )

    op.create_table(
        "projects",
        _uuid_pk(),
        sa.Column(
            "owner_org_id",
            sa.UUID(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        _created_at(),
    )
    op.create_index("ix_projects_owner_org_id", "projects", ["owner_org_id"])

    # =========================================================================
    # Guest invites
    # =========================================================================

    op.create_table(
        "invites",
        _uuid_pk(),
        sa.Column(
            "project_id",
            sa.UUID(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("site_id", sa.UUID(), nullable=False),
        sa.Column("guest_id", sa.UUID(), nullable=True),
        sa.Column("group_id", sa.UUID(), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column(
            "security_mode", sa.String(32), nullable=False, server_default="OPEN"
        ),
        sa.Column("passcode_hash", sa.String(255), nullable=True),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("otp_verified_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("token_hash", name="invites_token_hash_key"),
        sa.CheckConstraint(
            f"security_mode IN ({_SECURITY_MODES})",
            name="ck_invites_security_mode",
        ),
        sa.CheckConstraint(
            "security_mode <> 'PASSCODE' OR passcode_hash IS NOT NULL",
            name="ck_invites_passcode_hash_required",
        ),
    )
    op.create_index("ix_invites_project_id", "invites", ["project_id"])

    # Append-only; rows leave only through retention purge
    op.create_table(
        "invite_access_logs",
        _uuid_pk(),
        sa.Column(
            "invite_id",
            sa.UUID(),
            sa.ForeignKey("invites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "accessed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
    )
    op.create_index(
        "ix_invite_access_logs_invite_id", "invite_access_logs", ["invite_id"]
    )
    op.create_index(
        "ix_invite_access_logs_accessed_at", "invite_access_logs", ["accessed_at"]
    )

    op.create_table(
        "invite_otp_challenges",
        _uuid_pk(),
        sa.Column(
            "invite_id",
            sa.UUID(),
            sa.ForeignKey("invites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_invite_otp_challenges_invite_id", "invite_otp_challenges", ["invite_id"]
    )


def downgrade() -> None:
    op.drop_table("invite_otp_challenges")
    op.drop_table("invite_access_logs")
    op.drop_table("invites")
    op.drop_table("projects")
    op.drop_table("organization_invitations")
    op.drop_table("organization_members")
    op.drop_table("organizations")
    op.drop_table("magic_link_tokens")
    op.drop_table("sessions")
    op.drop_table("users")
    # Note: pgcrypto is left installed; other schemas may depend on it
