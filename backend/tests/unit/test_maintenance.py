"""Tests for the expired credential purge."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from guestgate.models import (
    InviteAccessLog,
    InviteOtpChallenge,
    MagicLinkToken,
    OrganizationInvitation,
    Session,
)
from guestgate.repositories.session_repository import SessionRepository
from guestgate.services.maintenance import PurgeError, PurgeResult, run_purge

_NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)
_PAST = _NOW - timedelta(minutes=1)
_FUTURE = _NOW + timedelta(days=1)


async def _count(db_session, model) -> int:
    return (
        await db_session.execute(select(func.count()).select_from(model))
    ).scalar_one()


class TestRunPurge:
    """run_purge deletes only what is expired or out of retention."""

    @pytest.mark.asyncio
    async def test_purges_each_table(self, db_session, test_org, test_user):
        invite_id = uuid.uuid4()
        db_session.add_all(
            [
                MagicLinkToken(token_hash="a" * 64, email="a@x.io", expires_at=_PAST),
                MagicLinkToken(token_hash="b" * 64, email="b@x.io", expires_at=_FUTURE),
                Session(user_id=test_user.id, token_hash="c" * 64, expires_at=_PAST),
                Session(user_id=test_user.id, token_hash="d" * 64, expires_at=_FUTURE),
                InviteOtpChallenge(
                    invite_id=invite_id, code_hash="e" * 64, expires_at=_PAST
                ),
                InviteOtpChallenge(
                    invite_id=invite_id,
                    code_hash="f" * 64,
                    expires_at=_FUTURE,
                    consumed_at=_PAST,
                ),
                InviteOtpChallenge(
                    invite_id=invite_id, code_hash="0" * 64, expires_at=_FUTURE
                ),
                OrganizationInvitation(
                    org_id=test_org.id,
                    email="old@x.io",
                    role="member",
                    expires_at=_PAST,
                ),
                OrganizationInvitation(
                    org_id=test_org.id,
                    email="new@x.io",
                    role="member",
                    expires_at=_FUTURE,
                ),
                InviteAccessLog(
                    invite_id=invite_id, accessed_at=_NOW - timedelta(days=400)
                ),
                InviteAccessLog(invite_id=invite_id, accessed_at=_PAST),
            ]
        )
        await db_session.commit()

        result = await run_purge(db_session, now=_NOW)

        assert result == PurgeResult(
            magic_links=1,
            sessions=1,
            otp_challenges=2,
            organization_invitations=1,
            access_logs=1,
        )
        for model in (
            MagicLinkToken,
            Session,
            InviteOtpChallenge,
            OrganizationInvitation,
            InviteAccessLog,
        ):
            assert await _count(db_session, model) == 1

    @pytest.mark.asyncio
    async def test_empty_database(self, db_session):
        result = await run_purge(db_session, now=_NOW)
        assert result == PurgeResult(0, 0, 0, 0, 0)

    @pytest.mark.asyncio
    async def test_database_error_becomes_purge_error(self, db_session):
        failing = AsyncMock(side_effect=OperationalError("DELETE", {}, Exception()))
        with (
            patch.object(SessionRepository, "delete_expired", failing),
            pytest.raises(PurgeError) as exc_info,
        ):
            await run_purge(db_session, now=_NOW)

        assert exc_info.value.code == "PURGE_ERROR"
