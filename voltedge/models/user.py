"""
User ORM model.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voltedge.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from voltedge.models.member import OrgMember
    from voltedge.models.team import TeamMember


class AccountType(str, enum.Enum):
    """How the user signed up: on their own or on behalf of a business."""

    individual = "individual"
    business = "business"


class User(Base, UUIDMixin, TimestampMixin):
    """Represents an authenticated user (email/password or external identity)."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # External identity provider
    auth_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    auth_subject: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True, index=True
    )

    onboarding_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    account_type: Mapped[AccountType] = mapped_column(
        Enum(AccountType, name="account_type", native_enum=False),
        nullable=False,
        default=AccountType.individual,
    )

    # Relationships
    org_membership: Mapped[OrgMember | None] = relationship(
        "OrgMember", back_populates="user", cascade="all, delete-orphan", uselist=False
    )
    team_memberships: Mapped[list[TeamMember]] = relationship(
        "TeamMember", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"
