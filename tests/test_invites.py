"""
Invite lifecycle tests for team and organization invites.
"""

import re
import uuid

import pytest
from fastapi import HTTPException
from sqlalchemy import select, update

from voltedge.core.errors import ForbiddenError, NotFoundError
from voltedge.models import OrgInvite, OrgMember, OrgRole, TeamInvite, TeamMember, TeamRole
from voltedge.services import invites as invites_module
from voltedge.services.invites import (
    ORG_SCOPE,
    TEAM_SCOPE,
    InviteLifecycle,
    join_with_code,
    normalize_invite_code,
)


@pytest.fixture
def lifecycle(db, guard_for, cache, clock):
    def _lifecycle(user, scope=TEAM_SCOPE) -> InviteLifecycle:
        return InviteLifecycle(db, guard_for(user), cache, scope, now=clock)

    return _lifecycle


@pytest.fixture
def fixed_codes(monkeypatch):
    """Make generate_invite_code hand out the given codes in order."""

    def _fixed(*codes: str) -> None:
        queue = list(codes)
        monkeypatch.setattr(invites_module, "generate_invite_code", lambda: queue.pop(0))

    return _fixed


async def _team_roles(db, team_id) -> dict:
    result = await db.execute(
        select(TeamMember.user_id, TeamMember.role).where(TeamMember.team_id == team_id)
    )
    return dict(result.all())


class TestCodes:
    def test_generated_code_format(self):
        for _ in range(50):
            assert re.fullmatch(r"[A-Z0-9]{8}", invites_module.generate_invite_code())

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("ab12cd34", "AB12CD34"),
            (" AB12-CD34 ", "AB12CD34"),
            ("ab 12 cd 34", "AB12CD34"),
            ("AB12CD3", None),
            ("AB12CD345", None),
            ("", None),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_invite_code(raw) == expected


class TestCreate:
    async def test_admin_creates_invite(self, make_user, make_team, lifecycle, clock, sent_emails):
        admin = await make_user()
        team = await make_team(admin)

        invite = await lifecycle(admin).create(team.id, role="admin")

        assert invite.team_id == team.id
        assert invite.role == TeamRole.admin
        assert invite.used is False
        assert (invite.expires_at - clock()).days == 7
        assert sent_emails == []

    async def test_member_cannot_create(self, make_user, make_team, lifecycle):
        admin = await make_user()
        member = await make_user()
        team = await make_team(admin, member)

        with pytest.raises(ForbiddenError):
            await lifecycle(member).create(team.id)

    async def test_unknown_role_rejected(self, make_user, make_team, lifecycle):
        admin = await make_user()
        team = await make_team(admin)

        with pytest.raises(HTTPException) as exc:
            await lifecycle(admin).create(team.id, role="owner")
        assert exc.value.status_code == 422

    async def test_email_invite_queues_email(
        self, make_user, make_team, lifecycle, sent_emails
    ):
        admin = await make_user()
        team = await make_team(admin, name="Relay Lab")

        invite = await lifecycle(admin).create(team.id, email="New.Hire@Example.com")

        assert invite.email == "new.hire@example.com"
        assert len(sent_emails) == 1
        assert sent_emails[0]["to_email"] == "new.hire@example.com"
        assert sent_emails[0]["invite_code"] == invite.code
        assert sent_emails[0]["scope_name"] == "Relay Lab"

    async def test_org_invite_requires_business_admin(
        self, db, make_user, make_org, lifecycle
    ):
        admin = await make_user()
        team_admin = await make_user()
        org = await make_org(admin)
        db.add(OrgMember(org_id=org.id, user_id=team_admin.id, role=OrgRole.team_admin))
        await db.commit()

        with pytest.raises(ForbiddenError):
            await lifecycle(team_admin, ORG_SCOPE).create(org.id)
        invite = await lifecycle(admin, ORG_SCOPE).create(org.id, role="team_admin")
        assert invite.role == OrgRole.team_admin


class TestRedeem:
    async def test_redeem_joins_and_refreshes_facts(
        self, db, make_user, make_team, lifecycle, cache
    ):
        admin = await make_user()
        joiner = await make_user()
        team = await make_team(admin)
        invite = await lifecycle(admin).create(team.id)
        await db.commit()
        assert (await cache.get(joiner.id)).team_ids == []

        result = await lifecycle(joiner).redeem(invite.code.lower())

        assert result.success
        assert result.scope == "team"
        assert result.scope_id == team.id
        await db.refresh(invite)
        assert invite.used is True
        assert (await cache.get(joiner.id)).team_roles == {str(team.id): TeamRole.member}

    async def test_existing_member_redeems_again_without_writes(
        self, db, make_user, make_team, lifecycle
    ):
        admin = await make_user()
        joiner = await make_user()
        team = await make_team(admin)
        invite = await lifecycle(admin).create(team.id)

        assert (await lifecycle(joiner).redeem(invite.code)).success
        again = await lifecycle(joiner).redeem(invite.code)

        assert again.success
        rows = await db.execute(
            select(TeamMember).where(TeamMember.team_id == team.id, TeamMember.user_id == joiner.id)
        )
        assert len(rows.scalars().all()) == 1

    async def test_used_code_fails_for_another_user(self, make_user, make_team, lifecycle):
        admin = await make_user()
        first = await make_user()
        second = await make_user()
        team = await make_team(admin)
        invite = await lifecycle(admin).create(team.id)

        assert (await lifecycle(first).redeem(invite.code)).success
        assert not (await lifecycle(second).redeem(invite.code)).success

    async def test_expired_code_fails(self, make_user, make_team, lifecycle, clock):
        admin = await make_user()
        joiner = await make_user()
        team = await make_team(admin)
        invite = await lifecycle(admin).create(team.id)

        clock.advance(days=7, seconds=1)

        result = await lifecycle(joiner).redeem(invite.code)
        assert result.success is False
        assert result.scope is None

    async def test_code_redeemable_at_the_expiry_instant(
        self, make_user, make_team, lifecycle, clock
    ):
        admin = await make_user()
        joiner = await make_user()
        team = await make_team(admin)
        invite = await lifecycle(admin).create(team.id)

        clock.advance(days=7)

        assert clock() == invite.expires_at
        assert [i.id for i in await lifecycle(admin).list(team.id)] == [invite.id]
        assert (await lifecycle(joiner).redeem(invite.code)).success

    @pytest.mark.parametrize("code", ["ZZZZZZZZ", "short", "!!!!!!!!"])
    async def test_unknown_or_malformed_code_fails(self, make_user, lifecycle, code):
        user = await make_user()
        assert not (await lifecycle(user).redeem(code)).success

    async def test_email_bound_invite(self, make_user, make_team, lifecycle):
        admin = await make_user()
        intended = await make_user(email="Intended@Example.com")
        stranger = await make_user()
        team = await make_team(admin)
        invite = await lifecycle(admin).create(team.id, email="intended@example.com")

        assert not (await lifecycle(stranger).redeem(invite.code)).success
        assert (await lifecycle(intended).redeem(invite.code)).success

    async def test_redeeming_for_someone_else_is_forbidden(self, make_user, lifecycle):
        user = await make_user()
        other = await make_user()
        with pytest.raises(ForbiddenError):
            await lifecycle(user).redeem("AB12CD34", user_id=other.id)

    async def test_member_of_another_org_cannot_join(self, make_user, make_org, lifecycle):
        admin = await make_user()
        other_admin = await make_user()
        org = await make_org(admin, name="Acme")
        await make_org(other_admin, name="Globex")
        invite = await lifecycle(admin, ORG_SCOPE).create(org.id)

        assert not (await lifecycle(other_admin, ORG_SCOPE).redeem(invite.code)).success

    async def test_org_invite_lifecycle(
        self, db, make_user, make_org, lifecycle, clock, cache, fixed_codes
    ):
        a = await make_user()
        b = await make_user()
        c = await make_user()
        org = await make_org(a)
        fixed_codes("AB12CD34", "EF56GH78")

        invite = await lifecycle(a, ORG_SCOPE).create(org.id, role="team_admin")
        assert invite.code == "AB12CD34"
        assert invite.email is None
        await db.commit()

        result = await lifecycle(b, ORG_SCOPE).redeem("AB12CD34")
        assert result.success
        assert result.scope == "organization"
        assert result.scope_id == org.id
        facts = await cache.get(b.id)
        assert facts.org_id == org.id
        assert facts.org_role == OrgRole.team_admin

        assert not (await lifecycle(c, ORG_SCOPE).redeem("AB12CD34")).success

        fresh = await lifecycle(a, ORG_SCOPE).create(org.id)
        assert fresh.code == "EF56GH78"
        clock.advance(days=8)
        assert not (await lifecycle(c, ORG_SCOPE).redeem("EF56GH78")).success
        assert (await cache.get(c.id)).org_id is None

    async def test_invite_used_after_the_checks_is_not_redeemed(
        self, db, make_user, make_team, lifecycle, monkeypatch
    ):
        admin = await make_user()
        joiner = await make_user()
        team = await make_team(admin)
        invite = await lifecycle(admin).create(team.id)
        invite_id, code, team_id, joiner_id = invite.id, invite.code, team.id, joiner.id
        invites = TeamInvite.__table__

        async def redeemed_elsewhere(session, scope_id, user_id):
            # Another redemption lands after the used/expiry checks passed
            await session.execute(
                update(invites).where(invites.c.id == invite_id).values(used=True)
            )
            return True

        monkeypatch.setattr(TEAM_SCOPE, "can_join", redeemed_elsewhere)

        assert not (await lifecycle(joiner).redeem(code)).success
        assert joiner_id not in await _team_roles(db, team_id)

    async def test_failed_membership_insert_leaves_invite_unused(
        self, db, make_user, make_team, lifecycle, monkeypatch
    ):
        admin = await make_user()
        joiner = await make_user()
        team = await make_team(admin)
        invite = await lifecycle(admin).create(team.id)
        invite_id, code, team_id = invite.id, invite.code, team.id
        admin_id, joiner_id = admin.id, joiner.id

        with monkeypatch.context() as m:
            # A second row for the admin violates the (team, user) uniqueness
            m.setattr(
                TEAM_SCOPE,
                "new_membership",
                lambda scope_id, user_id, role: TeamMember(
                    team_id=scope_id, user_id=admin_id, role=role
                ),
            )
            assert not (await lifecycle(joiner).redeem(code)).success

        used = await db.scalar(select(TeamInvite.used).where(TeamInvite.id == invite_id))
        assert used is False
        assert await _team_roles(db, team_id) == {admin_id: TeamRole.admin}

        assert (await lifecycle(joiner).redeem(code)).success
        assert joiner_id in await _team_roles(db, team_id)


class TestListAndRevoke:
    async def test_list_returns_only_active_invites(
        self, make_user, make_team, lifecycle, clock
    ):
        admin = await make_user()
        joiner = await make_user()
        team = await make_team(admin)

        await lifecycle(admin).create(team.id)
        clock.advance(days=5)
        active = await lifecycle(admin).create(team.id)
        used = await lifecycle(admin).create(team.id)
        assert (await lifecycle(joiner).redeem(used.code)).success
        clock.advance(days=3)

        listed = await lifecycle(admin).list(team.id)
        assert [invite.id for invite in listed] == [active.id]

    async def test_list_requires_admin(self, make_user, make_team, lifecycle):
        admin = await make_user()
        member = await make_user()
        team = await make_team(admin, member)

        with pytest.raises(ForbiddenError):
            await lifecycle(member).list(team.id)

    async def test_revoke(self, db, make_user, make_team, lifecycle):
        admin = await make_user()
        member = await make_user()
        team = await make_team(admin, member)
        invite = await lifecycle(admin).create(team.id)

        with pytest.raises(ForbiddenError):
            await lifecycle(member).revoke(invite.id)

        await lifecycle(admin).revoke(invite.id)
        assert await db.get(TeamInvite, invite.id) is None
        assert not (await lifecycle(member).redeem(invite.code)).success

    async def test_revoke_unknown_invite(self, make_user, lifecycle):
        admin = await make_user()
        with pytest.raises(NotFoundError):
            await lifecycle(admin, ORG_SCOPE).revoke(uuid.uuid4())

    async def test_revoke_checks_the_invites_own_scope(self, make_user, make_team, lifecycle):
        admin_a = await make_user()
        admin_b = await make_user()
        team_a = await make_team(admin_a)
        await make_team(admin_b)
        invite = await lifecycle(admin_a).create(team_a.id)

        with pytest.raises(ForbiddenError):
            await lifecycle(admin_b).revoke(invite.id)


class TestJoinWithCode:
    async def test_falls_back_to_organization(
        self, db, make_user, make_org, lifecycle, guard_for, cache
    ):
        admin = await make_user()
        joiner = await make_user()
        org = await make_org(admin)
        invite = await lifecycle(admin, ORG_SCOPE).create(org.id)

        result = await join_with_code(db, guard_for(joiner), cache, invite.code)

        assert result.success
        assert result.scope == "organization"
        stored = await db.execute(select(OrgInvite.used).where(OrgInvite.id == invite.id))
        assert stored.scalar_one() is True

    async def test_team_code_wins(self, db, make_user, make_team, lifecycle, guard_for, cache):
        admin = await make_user()
        joiner = await make_user()
        team = await make_team(admin)
        invite = await lifecycle(admin).create(team.id)

        result = await join_with_code(db, guard_for(joiner), cache, invite.code)
        assert (result.scope, result.scope_id) == ("team", team.id)

    async def test_unknown_code(self, db, make_user, guard_for, cache):
        user = await make_user()
        assert not (await join_with_code(db, guard_for(user), cache, "QQQQQQQQ")).success
