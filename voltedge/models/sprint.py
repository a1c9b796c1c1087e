"""
Sprint ORM models.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voltedge.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from voltedge.models.team import Team


class SprintStatus(str, enum.Enum):
    active = "active"
    paused = "paused"
    completed = "completed"


class SprintMemberRole(str, enum.Enum):
    member = "member"
    data_minister = "data_minister"


class Sprint(Base, UUIDMixin, TimestampMixin):
    """An ideation sprint owned by one user, optionally scoped to a team."""

    __tablename__ = "sprints"

    owner_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[SprintStatus] = mapped_column(
        Enum(SprintStatus, name="sprint_status", native_enum=False),
        nullable=False,
        default=SprintStatus.active,
    )

    # Relationships
    team: Mapped[Team | None] = relationship("Team")
    members: Mapped[list[SprintMember]] = relationship(
        "SprintMember", back_populates="sprint", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Sprint id={self.id} name={self.name!r} status={self.status}>"


class SprintMember(Base, UUIDMixin):
    """Explicit sprint participant; need not belong to the sprint's team."""

    __tablename__ = "sprint_members"
    __table_args__ = (
        UniqueConstraint("sprint_id", "user_id", name="uq_sprint_members_sprint_user"),
    )

    sprint_id: Mapped[UUID] = mapped_column(
        ForeignKey("sprints.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[SprintMemberRole] = mapped_column(
        Enum(SprintMemberRole, name="sprint_member_role", native_enum=False),
        nullable=False,
        default=SprintMemberRole.member,
    )

    sprint: Mapped[Sprint] = relationship("Sprint", back_populates="members")

    def __repr__(self) -> str:
        return f"<SprintMember sprint_id={self.sprint_id} user_id={self.user_id}>"
