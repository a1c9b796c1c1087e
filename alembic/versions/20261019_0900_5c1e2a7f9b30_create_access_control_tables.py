"""create_access_control_tables

Revision ID: 5c1e2a7f9b30
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "5c1e2a7f9b30"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _role(*values: str, name: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("auth_provider", sa.String(length=50), nullable=True),
        sa.Column("auth_subject", sa.String(length=255), nullable=True),
        sa.Column("onboarding_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "account_type",
            _role("individual", "business", name="account_type"),
            nullable=False,
            server_default="individual",
        ),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_auth_subject", "users", ["auth_subject"], unique=True)

    # Organizations
    op.create_table(
        "organizations",
        _id(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=True, unique=True),
        *_timestamps(),
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    # One organization per user: unique(user_id)
    op.create_table(
        "org_members",
        _id(),
        sa.Column("org_id", UUID(as_uuid=True), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", _role("business_admin", "team_admin", "member", name="org_role"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
        sa.UniqueConstraint("user_id", name="uq_org_members_user"),
    )
    op.create_index("ix_org_members_org_id", "org_members", ["org_id"])

    # Teams
    op.create_table(
        "teams",
        _id(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("org_id", UUID(as_uuid=True), sa.ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_teams_org_id", "teams", ["org_id"])

    op.create_table(
        "team_members",
        _id(),
        sa.Column("team_id", UUID(as_uuid=True), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", _role("admin", "member", name="team_role"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )
    op.create_index("ix_team_members_team_id", "team_members", ["team_id"])
    op.create_index("ix_team_members_user_id", "team_members", ["user_id"])

    # Invites (same layout for both scopes)
    for table, scope_column, scope_table, role in (
        ("team_invites", "team_id", "teams", _role("admin", "member", name="team_role")),
        (
            "org_invites",
            "org_id",
            "organizations",
            _role("business_admin", "team_admin", "member", name="org_role"),
        ),
    ):
        op.create_table(
            table,
            _id(),
            sa.Column(scope_column, UUID(as_uuid=True), sa.ForeignKey(f"{scope_table}.id", ondelete="CASCADE"), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("role", role, nullable=False),
            sa.Column("code", sa.String(length=8), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_by", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index(f"ix_{table}_code", table, ["code"], unique=True)
        op.create_index(f"ix_{table}_{scope_column}", table, [scope_column])
        op.create_index(f"ix_{table}_expires_at", table, ["expires_at"])

    # Sprints
    op.create_table(
        "sprints",
        _id(),
        sa.Column("owner_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_id", UUID(as_uuid=True), sa.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("status", _role("active", "paused", "completed", name="sprint_status"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_sprints_owner_id", "sprints", ["owner_id"])
    op.create_index("ix_sprints_team_id", "sprints", ["team_id"])

    op.create_table(
        "sprint_members",
        _id(),
        sa.Column("sprint_id", UUID(as_uuid=True), sa.ForeignKey("sprints.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", _role("member", "data_minister", name="sprint_member_role"), nullable=False),
        sa.UniqueConstraint("sprint_id", "user_id", name="uq_sprint_members_sprint_user"),
    )
    op.create_index("ix_sprint_members_sprint_id", "sprint_members", ["sprint_id"])
    op.create_index("ix_sprint_members_user_id", "sprint_members", ["user_id"])

    # Ideas
    op.create_table(
        "ideas",
        _id(),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_id", UUID(as_uuid=True), sa.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True),
        sa.Column("sprint_id", UUID(as_uuid=True), sa.ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("problem_statement", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "status",
            _role("draft", "developing", "scored", "submitted", "archived", name="idea_status"),
            nullable=False,
        ),
        *_timestamps(),
    )
    op.create_index("ix_ideas_user_id", "ideas", ["user_id"])
    op.create_index("ix_ideas_team_id", "ideas", ["team_id"])
    op.create_index("ix_ideas_sprint_id", "ideas", ["sprint_id"])


def downgrade() -> None:
    op.drop_table("ideas")
    op.drop_table("sprint_members")
    op.drop_table("sprints")
    op.drop_table("org_invites")
    op.drop_table("team_invites")
    op.drop_table("team_members")
    op.drop_table("teams")
    op.drop_table("org_members")
    op.drop_table("organizations")
    op.drop_table("users")
