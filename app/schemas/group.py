from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

from app.core.enums import GroupMemberAction, GroupRole
from app.models.group import GroupBase
from app.schemas.user import UserSummary

__all__ = [
    "GroupMemberAdd",
    "GroupMemberRoleUpdate",
    "GroupMemberPublic",
    "GroupMemberHistoryPublic",
    "GroupPublic",
]


class GroupMemberAdd(SQLModel):
    user_id: UUID
    role: GroupRole = GroupRole.MEMBER


class GroupMemberRoleUpdate(SQLModel):
    role: GroupRole


class GroupMemberPublic(SQLModel):
    group_id: int
    user_id: UUID
    role: GroupRole
    joined_at: datetime
    user: UserSummary | None = None


class GroupMemberHistoryPublic(SQLModel):
    id: int
    group_id: int
    user_id: UUID
    action: GroupMemberAction
    actor_id: UUID | None
    previous_role: GroupRole | None
    new_role: GroupRole | None
    timestamp: datetime


class GroupPublic(GroupBase):
    id: int
    created_by_id: UUID
    created_at: datetime
    updated_at: datetime
    members: list[GroupMemberPublic]
    member_count: int
