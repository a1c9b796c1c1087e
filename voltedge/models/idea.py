"""
Idea ORM model.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voltedge.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from voltedge.models.team import Team


class IdeaStatus(str, enum.Enum):
    draft = "draft"
    developing = "developing"
    scored = "scored"
    submitted = "submitted"
    archived = "archived"


class Idea(Base, UUIDMixin, TimestampMixin):
    """An invention idea owned by one user, optionally shared with a team."""

    __tablename__ = "ideas"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )
    sprint_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    problem_statement: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[IdeaStatus] = mapped_column(
        Enum(IdeaStatus, name="idea_status", native_enum=False),
        nullable=False,
        default=IdeaStatus.draft,
    )

    team: Mapped[Team | None] = relationship("Team")

    def __repr__(self) -> str:
        return f"<Idea id={self.id} title={self.title!r}>"
