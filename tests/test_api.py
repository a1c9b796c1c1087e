"""
End-to-end API tests through the ASGI app.

Verifies that:
- Sign-up, onboarding with an invite code and the refreshed session work together
- The last admin of a team cannot be removed over HTTP
- Listings are scoped to the caller
- Missing and forbidden resources look the same
- Identity-provider sign-in provisions exactly one user
- Logged-out tokens stop working
"""

import base64
import re
import uuid
from datetime import UTC, datetime, timedelta

import pytest
from jose import jwt
from sqlalchemy import func, select

from voltedge.core.config import settings
from voltedge.core.errors import INVALID_INVITE_MESSAGE
from voltedge.core.security import decode_access_token
from voltedge.models import User

API = "/api/v1"


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def register(client, email: str, password: str = "password123") -> dict:
    resp = await client.post(f"{API}/auth/register", json={
        "email": email,
        "password": password,
        "display_name": "Test User",
    })
    assert resp.status_code == 201, f"Register failed: {resp.text}"
    return resp.json()


# ---------------------------------------------------------------------------
# Sign-up and onboarding
# ---------------------------------------------------------------------------

class TestSignUpFlow:
    async def test_register_starts_onboarding(self, client):
        tokens = await register(client, "new@example.com")

        assert tokens["is_new_user"] is True
        claims = decode_access_token(tokens["access_token"])
        assert claims["onboarding_complete"] is False
        assert claims["team_ids"] == []
        assert settings.SESSION_COOKIE_NAME in client.cookies

    async def test_duplicate_email(self, client):
        await register(client, "dup@example.com")
        resp = await client.post(f"{API}/auth/register", json={
            "email": "DUP@example.com", "password": "password123", "display_name": "Again",
        })
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "EMAIL_TAKEN"

    async def test_onboarding_with_team_invite(self, client, make_user, make_team, auth_headers):
        admin = await make_user()
        team = await make_team(admin, name="Relay Lab")
        invite = await client.post(
            f"{API}/teams/{team.id}/invites", json={}, headers=await auth_headers(admin)
        )
        assert invite.status_code == 201
        code = invite.json()["code"]

        tokens = await register(client, "joiner@example.com")
        resp = await client.post(
            f"{API}/users/me/onboarding",
            json={"account_type": "individual", "invite_code": code.lower()},
            headers=bearer(tokens["access_token"]),
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["joined_scope"] == "team"
        assert body["joined_scope_id"] == str(team.id)
        claims = decode_access_token(body["tokens"]["access_token"])
        assert claims["onboarding_complete"] is True
        assert claims["team_ids"] == [str(team.id)]

        me = await client.get(f"{API}/auth/me", headers=bearer(body["tokens"]["access_token"]))
        assert me.json()["facts"]["team_roles"] == {str(team.id): "member"}

    async def test_onboarding_with_bad_code_still_completes(self, client):
        tokens = await register(client, "solo@example.com")
        resp = await client.post(
            f"{API}/users/me/onboarding",
            json={"invite_code": "ZZZZZZZZ"},
            headers=bearer(tokens["access_token"]),
        )
        assert resp.status_code == 200
        assert resp.json()["joined_scope"] is None
        claims = decode_access_token(resp.json()["tokens"]["access_token"])
        assert claims["onboarding_complete"] is True


# ---------------------------------------------------------------------------
# Invites over HTTP
# ---------------------------------------------------------------------------

class TestInviteEndpoints:
    async def test_failed_join_is_generic(self, client, make_user, auth_headers):
        user = await make_user()
        resp = await client.post(
            f"{API}/invites/join", json={"code": "ZZZZZZZZ"}, headers=await auth_headers(user)
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "success": False,
            "scope": None,
            "scope_id": None,
            "message": INVALID_INVITE_MESSAGE,
        }

    async def test_join_requires_session(self, client):
        resp = await client.post(f"{API}/invites/join", json={"code": "AB12CD34"})
        assert resp.status_code == 401

    async def test_member_cannot_create_invite(self, client, make_user, make_team, auth_headers):
        admin = await make_user()
        member = await make_user()
        team = await make_team(admin, member)

        resp = await client.post(
            f"{API}/teams/{team.id}/invites", json={}, headers=await auth_headers(member)
        )
        assert resp.status_code == 403

    async def test_list_and_revoke(self, client, make_user, make_team, auth_headers):
        admin = await make_user()
        team = await make_team(admin)
        headers = await auth_headers(admin)
        created = (await client.post(
            f"{API}/teams/{team.id}/invites", json={"role": "admin"}, headers=headers
        )).json()

        listed = (await client.get(f"{API}/teams/{team.id}/invites", headers=headers)).json()
        assert [invite["id"] for invite in listed["invites"]] == [created["id"]]

        resp = await client.delete(f"{API}/teams/invites/{created['id']}", headers=headers)
        assert resp.status_code == 204
        listed = (await client.get(f"{API}/teams/{team.id}/invites", headers=headers)).json()
        assert listed["total"] == 0


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

class TestTeamEndpoints:
    async def test_last_admin_cannot_be_removed(self, client, make_user, make_team, auth_headers):
        admin = await make_user()
        member = await make_user()
        team = await make_team(admin, member)
        headers = await auth_headers(admin)
        team_id = team.id

        resp = await client.delete(f"{API}/teams/{team_id}/members/{admin.id}", headers=headers)
        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "LAST_ADMIN"

        # the failed request rolled back the shared session, expiring admin and team
        members = (await client.get(f"{API}/teams/{team_id}/members", headers=headers)).json()
        assert members["total"] == 2

    async def test_role_change_reaches_next_session(
        self, client, make_user, make_team, auth_headers
    ):
        admin = await make_user()
        member = await make_user()
        team = await make_team(admin, member)

        resp = await client.patch(
            f"{API}/teams/{team.id}/members/{member.id}",
            json={"role": "admin"},
            headers=await auth_headers(admin),
        )
        assert resp.status_code == 200

        me = await client.get(f"{API}/auth/me", headers=await auth_headers(member))
        assert me.json()["facts"]["team_roles"] == {str(team.id): "admin"}

    async def test_non_member_cannot_read_team(self, client, make_user, make_team, auth_headers):
        admin = await make_user()
        outsider = await make_user()
        team = await make_team(admin)

        resp = await client.get(f"{API}/teams/{team.id}", headers=await auth_headers(outsider))
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Self-scoped listings and resource existence
# ---------------------------------------------------------------------------

class TestScoping:
    @pytest.mark.parametrize("listing", ["teams", "ideas", "sprints"])
    async def test_other_users_listing_is_forbidden(
        self, client, make_user, make_team, auth_headers, listing
    ):
        u1 = await make_user()
        u2 = await make_user()
        await make_team(u1, u2)
        u1_id, headers = u1.id, await auth_headers(u1)

        resp = await client.get(f"{API}/users/{u2.id}/{listing}", headers=headers)
        assert resp.status_code == 403

        own = await client.get(f"{API}/users/{u1_id}/{listing}", headers=headers)
        assert own.status_code == 200

    async def test_listing_requires_session(self, client):
        resp = await client.get(f"{API}/users/{uuid.uuid4()}/teams")
        assert resp.status_code == 401

    async def test_missing_and_forbidden_idea_look_alike(
        self, client, make_user, make_idea, auth_headers
    ):
        owner = await make_user()
        other = await make_user()
        idea_id = (await make_idea(owner)).id
        headers = await auth_headers(other)

        missing = await client.get(f"{API}/ideas/{uuid.uuid4()}", headers=headers)
        forbidden = await client.get(f"{API}/ideas/{idea_id}", headers=headers)

        assert missing.status_code == forbidden.status_code == 403
        assert missing.json() == forbidden.json()

    async def test_sprint_participant_can_read(
        self, client, make_user, make_team, make_sprint, auth_headers
    ):
        owner = await make_user()
        guest = await make_user()
        sprint = await make_sprint(owner, await make_team(owner), participants=(guest,))

        resp = await client.get(f"{API}/sprints/{sprint.id}", headers=await auth_headers(guest))
        assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

class TestOrganizations:
    async def test_create_organization(self, client, make_user, auth_headers):
        user = await make_user()

        resp = await client.post(
            f"{API}/organizations",
            json={"name": "Acme Labs", "domain": "Acme.com"},
            headers=await auth_headers(user),
        )

        assert resp.status_code == 201
        body = resp.json()
        assert re.fullmatch(r"acme-labs-[a-z0-9]{4}", body["slug"])
        assert body["domain"] == "acme.com"

        me = (await client.get(f"{API}/auth/me", headers=await auth_headers(user))).json()
        assert me["facts"]["org_role"] == "business_admin"
        assert me["account_type"] == "business"

        again = await client.post(
            f"{API}/organizations", json={"name": "Second"}, headers=await auth_headers(user)
        )
        assert again.status_code == 409
        assert again.json()["detail"]["code"] == "ALREADY_IN_ORG"

    async def test_org_invite_over_http(self, client, make_user, make_org, auth_headers):
        admin = await make_user()
        joiner = await make_user()
        org = await make_org(admin)

        invite = await client.post(
            f"{API}/organizations/{org.slug}/invites",
            json={"role": "team_admin"},
            headers=await auth_headers(admin),
        )
        assert invite.status_code == 201

        resp = await client.post(
            f"{API}/organizations/invites/redeem",
            json={"code": invite.json()["code"]},
            headers=await auth_headers(joiner),
        )
        assert resp.json()["success"] is True

        detail = await client.get(
            f"{API}/organizations/{org.slug}", headers=await auth_headers(joiner)
        )
        assert detail.status_code == 200

    async def test_unknown_slug_is_forbidden(self, client, make_user, auth_headers):
        user = await make_user()
        resp = await client.get(f"{API}/organizations/nope-0000", headers=await auth_headers(user))
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Identity provider sign-in
# ---------------------------------------------------------------------------

IDP_SECRET = b"identity-provider-shared-secret-for-tests"


@pytest.fixture
def identity_provider(monkeypatch):
    key = base64.urlsafe_b64encode(IDP_SECRET).rstrip(b"=").decode()
    monkeypatch.setattr(settings, "IDP_JWKS", {"keys": [{"kty": "oct", "k": key}]})
    monkeypatch.setattr(settings, "IDP_ALGORITHMS", ["HS256"])
    monkeypatch.setattr(settings, "IDP_AUDIENCE", "voltedge-web")
    monkeypatch.setattr(settings, "IDP_ISSUER", "")

    def _id_token(sub: str, email: str | None, **extra) -> str:
        now = datetime.now(UTC)
        claims = {
            "sub": sub,
            "aud": "voltedge-web",
            "iat": now,
            "exp": now + timedelta(minutes=5),
            **extra,
        }
        if email is not None:
            claims["email"] = email
        return jwt.encode(claims, IDP_SECRET, algorithm="HS256")

    return _id_token


class TestExternalSignIn:
    async def test_first_and_repeat_sign_in(self, client, db, identity_provider):
        token = identity_provider("idp|42", "Ada@Example.com", name="Ada")

        first = await client.post(f"{API}/auth/external", json={"id_token": token})
        second = await client.post(f"{API}/auth/external", json={"id_token": token})

        assert first.status_code == second.status_code == 200
        assert first.json()["is_new_user"] is True
        assert second.json()["is_new_user"] is False
        assert await db.scalar(select(func.count()).select_from(User)) == 1

    async def test_wrong_audience_rejected(self, client, identity_provider):
        token = identity_provider("idp|42", "ada@example.com", aud="someone-else")
        resp = await client.post(f"{API}/auth/external", json={"id_token": token})
        assert resp.status_code == 401

    async def test_token_without_email_rejected(self, client, identity_provider):
        resp = await client.post(
            f"{API}/auth/external", json={"id_token": identity_provider("idp|42", None)}
        )
        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "INVALID_TOKEN"


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------

class TestLogout:
    async def test_logged_out_token_is_rejected(self, client):
        tokens = await register(client, "bye@example.com")
        headers = bearer(tokens["access_token"])

        resp = await client.post(
            f"{API}/auth/logout", json={"refresh_token": tokens["refresh_token"]}, headers=headers
        )
        assert resp.status_code == 200

        assert (await client.get(f"{API}/auth/me", headers=headers)).status_code == 401
        refreshed = await client.post(
            f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        assert refreshed.status_code == 401
