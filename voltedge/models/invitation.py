"""
Invite ORM models.

Team invites and organization invites share one column layout
(InviteMixin); only the scope foreign key and the role enum differ.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Enum, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, synonym

from voltedge.models.base import Base, UUIDMixin, utcnow
from voltedge.models.member import OrgRole
from voltedge.models.team import TeamRole

if TYPE_CHECKING:
    from voltedge.models.organization import Organization
    from voltedge.models.team import Team

INVITE_CODE_LENGTH = 8


class InviteMixin(UUIDMixin):
    """Columns and lifecycle predicates common to every invite scope."""

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    code: Mapped[str] = mapped_column(
        String(INVITE_CODE_LENGTH), nullable=False, unique=True, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def is_active(self, now: datetime) -> bool:
        return not self.used and not self.is_expired(now)


class TeamInvite(InviteMixin, Base):
    """Time-limited code granting membership of a team."""

    __tablename__ = "team_invites"

    team_id: Mapped[UUID] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[TeamRole] = mapped_column(
        Enum(TeamRole, name="team_role", native_enum=False), nullable=False
    )

    scope_id = synonym("team_id")

    team: Mapped[Team] = relationship("Team", back_populates="invites")

    def __repr__(self) -> str:
        return f"<TeamInvite id={self.id} team_id={self.team_id} used={self.used}>"


class OrgInvite(InviteMixin, Base):
    """Time-limited code granting membership of an organization."""

    __tablename__ = "org_invites"

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[OrgRole] = mapped_column(
        Enum(OrgRole, name="org_role", native_enum=False), nullable=False
    )

    scope_id = synonym("org_id")

    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="invites"
    )

    def __repr__(self) -> str:
        return f"<OrgInvite id={self.id} org_id={self.org_id} used={self.used}>"
