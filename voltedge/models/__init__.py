"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
Import order matters: base models before dependent models.
"""

from voltedge.models.base import Base, TimestampMixin, UUIDMixin
from voltedge.models.user import AccountType, User
from voltedge.models.member import OrgMember, OrgRole
from voltedge.models.organization import Organization
from voltedge.models.team import Team, TeamMember, TeamRole
from voltedge.models.invitation import InviteMixin, OrgInvite, TeamInvite
from voltedge.models.sprint import Sprint, SprintMember, SprintMemberRole, SprintStatus
from voltedge.models.idea import Idea, IdeaStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "AccountType",
    "User",
    "OrgMember",
    "OrgRole",
    "Organization",
    "Team",
    "TeamMember",
    "TeamRole",
    "InviteMixin",
    "OrgInvite",
    "TeamInvite",
    "Sprint",
    "SprintMember",
    "SprintMemberRole",
    "SprintStatus",
    "Idea",
    "IdeaStatus",
]
