"""Tests for best-effort invite access logging."""

import logging
import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from fastapi import BackgroundTasks
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from guestgate.models import Invite, InviteAccessLog
from guestgate.repositories.access_log_repository import AccessLogRepository
from guestgate.services import access_log, invite_service
from guestgate.services.access_log import AccessLogRecorder
from tests.conftest import TEST_CLIENT


def _failing_create() -> AsyncMock:
    return AsyncMock(side_effect=SQLAlchemyError("disk full"))


async def _log_count(db_session) -> int:
    return (
        await db_session.execute(select(func.count()).select_from(InviteAccessLog))
    ).scalar_one()


@pytest_asyncio.fixture
async def issued_invite(db_session, test_project, test_user):
    issued = await invite_service.create_project_invite(
        db_session,
        user_id=test_user.id,
        project_id=test_project.id,
        site_id=uuid.uuid4(),
    )
    await db_session.commit()
    return issued


@pytest_asyncio.fixture
async def invite(issued_invite) -> Invite:
    return issued_invite.invite


class TestAccessLogRecorder:
    """Tests for AccessLogRecorder.record."""

    @pytest.mark.asyncio
    async def test_writes_in_request_transaction(self, db_session, invite):
        recorded = await AccessLogRecorder().record(
            db_session, invite_id=invite.id, client=TEST_CLIENT
        )

        assert recorded is True
        assert await _log_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, db_session, invite, caplog):
        with (
            patch.object(AccessLogRepository, "create", _failing_create()),
            caplog.at_level(logging.WARNING, logger="guestgate.services.access_log"),
        ):
            recorded = await AccessLogRecorder().record(
                db_session, invite_id=invite.id, client=TEST_CLIENT
            )

        assert recorded is False
        assert "Failed to write access log" in caplog.text

    @pytest.mark.asyncio
    async def test_failure_queues_one_retry(self, db_session, session_factory, invite):
        tasks = BackgroundTasks()
        recorder = AccessLogRecorder(session_factory, tasks)
        accessed_at = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)

        with patch.object(AccessLogRepository, "create", _failing_create()):
            await recorder.record(
                db_session,
                invite_id=invite.id,
                client=TEST_CLIENT,
                accessed_at=accessed_at,
            )
        assert len(tasks.tasks) == 1

        await tasks()

        logs = (await db_session.execute(select(InviteAccessLog))).scalars().all()
        assert len(logs) == 1
        assert logs[0].accessed_at == accessed_at
        assert logs[0].ip_address == TEST_CLIENT.ip_address

    @pytest.mark.asyncio
    async def test_failed_retry_is_logged(
        self, db_session, session_factory, invite, caplog
    ):
        tasks = BackgroundTasks()
        recorder = AccessLogRecorder(session_factory, tasks)

        with (
            patch.object(AccessLogRepository, "create", _failing_create()),
            caplog.at_level(logging.ERROR, logger="guestgate.services.access_log"),
        ):
            await recorder.record(db_session, invite_id=invite.id, client=TEST_CLIENT)
            await tasks()

        assert "record lost" in caplog.text
        assert await _log_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_validation_survives_log_failure(
        self, db_session, issued_invite
    ):
        with patch.object(AccessLogRepository, "create", _failing_create()):
            validation = await invite_service.validate_invite_token(
                db_session,
                issued_invite.token,
                client=TEST_CLIENT,
                recorder=AccessLogRecorder(),
            )

        assert validation.invite_id == issued_invite.invite.id


class TestReadAndPurge:
    """Tests for list_access_logs and purge_access_logs."""

    @pytest.mark.asyncio
    async def test_list_is_newest_first_with_limit(self, db_session, invite):
        base = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)
        recorder = AccessLogRecorder()
        for minutes in (0, 10, 5):
            await recorder.record(
                db_session,
                invite_id=invite.id,
                client=TEST_CLIENT,
                accessed_at=base + timedelta(minutes=minutes),
            )

        logs = await access_log.list_access_logs(db_session, invite.id, limit=2)

        assert [log.accessed_at for log in logs] == [
            base + timedelta(minutes=10),
            base + timedelta(minutes=5),
        ]

    @pytest.mark.asyncio
    async def test_purge_keeps_recent_records(self, db_session, invite):
        now = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)
        recorder = AccessLogRecorder()
        for days_ago in (400, 366, 10):
            await recorder.record(
                db_session,
                invite_id=invite.id,
                client=TEST_CLIENT,
                accessed_at=now - timedelta(days=days_ago),
            )

        deleted = await access_log.purge_access_logs(
            db_session, retention_days=365, now=now
        )

        assert deleted == 2
        assert await _log_count(db_session) == 1
