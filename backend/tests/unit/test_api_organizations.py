"""Tests for organization endpoints."""

import uuid

import pytest

_ORGS_URL = "/api/v1/orgs"


class TestCreateOrganization:
    """Tests for POST /orgs."""

    @pytest.mark.asyncio
    async def test_creator_is_admin(self, client, test_user):
        resp = await client.post(
            _ORGS_URL, json={"name": "  Sam & Alex  ", "type": "COUPLE"}
        )

        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["name"] == "Sam & Alex"
        assert data["type"] == "COUPLE"
        assert data["members"] == [
            {
                "user_id": str(test_user.id),
                "email": "planner@example.com",
                "full_name": "Pat Planner",
                "role": "admin",
            }
        ]

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, client):
        resp = await client.post(_ORGS_URL, json={"name": "X", "type": "CASINO"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_requires_session(self, app_client):
        resp = await app_client.post(_ORGS_URL, json={"name": "X", "type": "VENUE"})
        assert resp.status_code == 401


class TestGetOrganization:
    """Tests for GET /orgs/{org_id}."""

    @pytest.mark.asyncio
    async def test_member_sees_members(self, client, test_org):
        resp = await client.get(f"{_ORGS_URL}/{test_org.id}")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["name"] == "Blue Door Events"
        assert [m["role"] for m in data["members"]] == ["admin"]

    @pytest.mark.asyncio
    async def test_missing_org(self, client):
        resp = await client.get(f"{_ORGS_URL}/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"


class TestInviteMember:
    """Tests for POST /orgs/{org_id}/invitations."""

    @pytest.mark.asyncio
    async def test_admin_invites_and_email_is_sent(
        self, client, test_org, mock_mailer
    ):
        resp = await client.post(
            f"{_ORGS_URL}/{test_org.id}/invitations",
            json={"email": "Coordinator@Example.com"},
        )

        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["email"] == "coordinator@example.com"
        assert data["role"] == "member"
        mock_mailer.send_organization_invite.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_existing_member_conflicts(self, client, test_org):
        resp = await client.post(
            f"{_ORGS_URL}/{test_org.id}/invitations",
            json={"email": "planner@example.com"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "ALREADY_MEMBER"

    @pytest.mark.asyncio
    async def test_second_invitation_conflicts(self, client, test_org):
        url = f"{_ORGS_URL}/{test_org.id}/invitations"
        await client.post(url, json={"email": "twice@example.com"})

        resp = await client.post(url, json={"email": "twice@example.com"})

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "INVITATION_PENDING"

    @pytest.mark.asyncio
    async def test_invitation_accepted_on_sign_in(
        self, client, app_client, test_org, mock_mailer
    ):
        await client.post(
            f"{_ORGS_URL}/{test_org.id}/invitations",
            json={"email": "coordinator@example.com", "role": "admin"},
        )
        del client.headers["Authorization"]

        await app_client.post(
            "/api/v1/auth/register", json={"email": "coordinator@example.com"}
        )
        token = mock_mailer.send_magic_link.await_args.kwargs["token"]
        await app_client.post("/api/v1/auth/verify", json={"token": token})
        me = await app_client.get("/api/v1/auth/me")

        organizations = me.json()["data"]["organizations"]
        assert [(o["id"], o["role"]) for o in organizations] == [
            (str(test_org.id), "admin")
        ]
