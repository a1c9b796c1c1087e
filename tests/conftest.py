"""
Pytest configuration for VoltEdge backend tests.

Tests run against a file-backed SQLite database (aiosqlite) per test and an
in-memory fake Redis. The API is exercised in-process through httpx's
ASGITransport with the database, Redis and role-fact cache dependencies
overridden.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ROLE_CACHE_BACKEND", "memory")

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from fakeredis import aioredis as fake_aioredis  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from voltedge.core.database import get_db  # noqa: E402
from voltedge.core.dependencies import get_redis, get_role_cache  # noqa: E402
from voltedge.core.guards import AccessGuard  # noqa: E402
from voltedge.core.security import create_access_token, hash_password  # noqa: E402
from voltedge.main import app  # noqa: E402
from voltedge.models import (  # noqa: E402
    AccountType,
    Base,
    Idea,
    OrgMember,
    OrgRole,
    Organization,
    Sprint,
    SprintMember,
    Team,
    TeamMember,
    TeamRole,
    User,
)
from voltedge.models.base import utcnow  # noqa: E402
from voltedge.services.role_cache import MemoryRoleFactCache  # noqa: E402
from voltedge.workers import email_tasks  # noqa: E402

PASSWORD = "password123"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'voltedge.db'}")

    # pysqlite/aiosqlite transaction handling breaks SAVEPOINT; take it over
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache(session_factory) -> MemoryRoleFactCache:
    return MemoryRoleFactCache(session_factory)


@pytest.fixture
async def redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch) -> list[dict]:
    """Capture invite emails instead of queueing Celery tasks."""
    sent: list[dict] = []
    monkeypatch.setattr(email_tasks.send_invite_email, "delay", lambda **kwargs: sent.append(kwargs))
    return sent


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(db, redis, cache) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        try:
            yield db
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_role_cache] = lambda: cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def _make_user(
        email: str | None = None,
        onboarding_complete: bool = True,
        account_type: AccountType = AccountType.individual,
    ) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            password_hash=hash_password(PASSWORD),
            display_name=f"User {counter['n']}",
            onboarding_complete=onboarding_complete,
            account_type=account_type,
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


@pytest.fixture
def make_team(db):
    async def _make_team(
        admin: User, *members: User, org: Organization | None = None, name: str = "Team"
    ) -> Team:
        team = Team(name=name, org_id=org.id if org else None)
        db.add(team)
        await db.flush()
        db.add(TeamMember(team_id=team.id, user_id=admin.id, role=TeamRole.admin))
        for member in members:
            db.add(TeamMember(team_id=team.id, user_id=member.id, role=TeamRole.member))
        await db.commit()
        return team

    return _make_team


@pytest.fixture
def make_org(db):
    async def _make_org(admin: User, name: str = "Acme Labs", slug: str | None = None) -> Organization:
        org = Organization(name=name, slug=slug or f"{name.lower().replace(' ', '-')}-t3st")
        db.add(org)
        await db.flush()
        db.add(OrgMember(org_id=org.id, user_id=admin.id, role=OrgRole.business_admin))
        await db.commit()
        return org

    return _make_org


@pytest.fixture
def make_idea(db):
    async def _make_idea(owner: User, team: Team | None = None, title: str = "Solid-state relay") -> Idea:
        idea = Idea(user_id=owner.id, team_id=team.id if team else None, title=title)
        db.add(idea)
        await db.commit()
        return idea

    return _make_idea


@pytest.fixture
def make_sprint(db):
    async def _make_sprint(
        owner: User, team: Team | None = None, participants: tuple[User, ...] = ()
    ) -> Sprint:
        sprint = Sprint(owner_id=owner.id, team_id=team.id if team else None, name="Q3 sprint")
        db.add(sprint)
        await db.flush()
        for participant in participants:
            db.add(SprintMember(sprint_id=sprint.id, user_id=participant.id))
        await db.commit()
        return sprint

    return _make_sprint


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def guard_for(db):
    def _guard_for(user: User | None) -> AccessGuard:
        return AccessGuard(db, user.id if user else None)

    return _guard_for


@pytest.fixture
def auth_headers(cache):
    async def _auth_headers(user: User) -> dict[str, str]:
        facts = await cache.get(user.id)
        token = create_access_token(str(user.id), facts.token_claims())
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


class Clock:
    """Controllable wall clock for invite expiry."""

    def __init__(self) -> None:
        self.current = utcnow()

    def __call__(self):
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock()
