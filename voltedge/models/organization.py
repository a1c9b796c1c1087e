"""
Organization ORM model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voltedge.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from voltedge.models.invitation import OrgInvite
    from voltedge.models.member import OrgMember
    from voltedge.models.team import Team


class Organization(Base, UUIDMixin, TimestampMixin):
    """Represents a tenant organization."""

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True, index=True)
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    # Relationships
    members: Mapped[list[OrgMember]] = relationship(
        "OrgMember", back_populates="organization", cascade="all, delete-orphan"
    )
    invites: Mapped[list[OrgInvite]] = relationship(
        "OrgInvite", back_populates="organization", cascade="all, delete-orphan"
    )
    teams: Mapped[list[Team]] = relationship("Team", back_populates="organization")

    def __repr__(self) -> str:
        return f"<Organization id={self.id} slug={self.slug!r}>"
