"""
OrgMember ORM model.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Enum, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voltedge.models.base import Base, UUIDMixin, utcnow

if TYPE_CHECKING:
    from voltedge.models.organization import Organization
    from voltedge.models.user import User


class OrgRole(str, enum.Enum):
    """Organization member role enumeration."""

    business_admin = "business_admin"
    team_admin = "team_admin"
    member = "member"


class OrgMember(Base, UUIDMixin):
    """Join table linking users to organizations with a role."""

    __tablename__ = "org_members"
    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
        # A user belongs to at most one organization
        UniqueConstraint("user_id", name="uq_org_members_user"),
    )

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[OrgRole] = mapped_column(
        Enum(OrgRole, name="org_role", native_enum=False), nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="members"
    )
    user: Mapped[User] = relationship(
        "User", back_populates="org_membership"
    )

    def __repr__(self) -> str:
        return f"<OrgMember org_id={self.org_id} user_id={self.user_id} role={self.role}>"
