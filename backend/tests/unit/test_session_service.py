"""Tests for server-side session lifecycle."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select

from guestgate.core.errors import NotFoundError
from guestgate.core.tokens import hash_token
from guestgate.models import Session, User
from guestgate.services import session_service
from tests.conftest import TEST_CLIENT


async def _session_count(db_session) -> int:
    return (
        await db_session.execute(select(func.count()).select_from(Session))
    ).scalar_one()


class TestCreateSession:
    """Tests for create_session."""

    @pytest.mark.asyncio
    async def test_stores_hash_and_client_metadata(self, db_session, test_user):
        token, session = await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT
        )

        assert session.token_hash == hash_token(token)
        assert session.ip_address == "203.0.113.7"
        assert session.user_agent == "pytest-agent/1.0"

    @pytest.mark.asyncio
    async def test_expiry_uses_session_ttl(self, db_session, test_user):
        now = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)
        _, session = await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT, now=now
        )
        assert session.expires_at == now + timedelta(days=7)


class TestValidateSession:
    """validate_session never raises; it reports validity."""

    @pytest.mark.asyncio
    async def test_valid_token(self, db_session, test_user):
        token, session = await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT
        )

        result = await session_service.validate_session(db_session, token)

        assert result.valid is True
        assert result.user.id == test_user.id
        assert result.session.id == session.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, "", "unknown-token"])
    async def test_missing_or_unknown_token(self, db_session, test_user, token):
        result = await session_service.validate_session(db_session, token)
        assert result.valid is False
        assert result.user is None

    @pytest.mark.asyncio
    async def test_expired_session_is_invalid_and_deleted(self, db_session, test_user):
        issued = datetime.now(UTC) - timedelta(days=8)
        token, _ = await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT, now=issued
        )

        result = await session_service.validate_session(db_session, token)

        assert result.valid is False
        assert await _session_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_session_valid_until_expiry_instant(self, db_session, test_user):
        now = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)
        token, _ = await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT, now=now
        )
        expiry = now + timedelta(days=7)

        before = await session_service.validate_session(
            db_session, token, now=expiry - timedelta(seconds=1)
        )
        at = await session_service.validate_session(db_session, token, now=expiry)

        assert before.valid is True
        assert at.valid is False


class TestLogout:
    """Tests for logout and device management."""

    @pytest.mark.asyncio
    async def test_logout_deletes_session(self, db_session, test_user):
        token, _ = await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT
        )

        assert await session_service.logout(db_session, token) is True
        validation = await session_service.validate_session(db_session, token)
        assert validation.valid is False

    @pytest.mark.asyncio
    async def test_logout_is_idempotent(self, db_session, test_user):
        token, _ = await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT
        )
        await session_service.logout(db_session, token)

        assert await session_service.logout(db_session, token) is False
        assert await session_service.logout(db_session, None) is False

    @pytest.mark.asyncio
    async def test_list_returns_only_active_sessions(self, db_session, test_user):
        await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT
        )
        await session_service.create_session(
            db_session,
            user_id=test_user.id,
            client=TEST_CLIENT,
            now=datetime.now(UTC) - timedelta(days=30),
        )

        sessions = await session_service.list_user_sessions(db_session, test_user.id)

        assert len(sessions) == 1

    @pytest.mark.asyncio
    async def test_revoke_one_device(self, db_session, test_user):
        keep_token, _ = await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT
        )
        drop_token, drop = await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT
        )

        await session_service.revoke_user_session(
            db_session, user_id=test_user.id, session_id=drop.id
        )

        assert (await session_service.validate_session(db_session, keep_token)).valid
        assert not (
            await session_service.validate_session(db_session, drop_token)
        ).valid

    @pytest.mark.asyncio
    async def test_cannot_revoke_someone_elses_session(
        self, db_session, test_user, user_b
    ):
        _, session = await session_service.create_session(
            db_session, user_id=test_user.id, client=TEST_CLIENT
        )

        with pytest.raises(NotFoundError):
            await session_service.revoke_user_session(
                db_session, user_id=user_b.id, session_id=session.id
            )
        assert await _session_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_revoke_unknown_session(self, db_session, test_user):
        with pytest.raises(NotFoundError):
            await session_service.revoke_user_session(
                db_session, user_id=test_user.id, session_id=uuid.uuid4()
            )

    @pytest.mark.asyncio
    async def test_logout_everywhere_spares_other_users(
        self, db_session, test_user, user_b
    ):
        for _ in range(3):
            await session_service.create_session(
                db_session, user_id=test_user.id, client=TEST_CLIENT
            )
        await session_service.create_session(
            db_session, user_id=user_b.id, client=TEST_CLIENT
        )

        ended = await session_service.logout_everywhere(db_session, test_user.id)

        assert ended == 3
        assert await _session_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_deleted_user_invalidates_session(self, db_session, user_b):
        token, _ = await session_service.create_session(
            db_session, user_id=user_b.id, client=TEST_CLIENT
        )
        await db_session.commit()
        await db_session.delete(await db_session.get(User, user_b.id))
        await db_session.flush()

        validation = await session_service.validate_session(db_session, token)
        assert validation.valid is False
