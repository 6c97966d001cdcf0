from datetime import datetime
from uuid import UUID

from sqlmodel import Field, SQLModel

from app.core.enums import GroupMemberAction, GroupRole
from app.utils import now_utc_naive

__all__ = [
    "GroupBase",
    "GroupCreate",
    "GroupUpdate",
    "Group",
    "GroupMember",
    "GroupMemberHistory",
]


# Shared properties
class GroupBase(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)


# Properties to receive on group creation
class GroupCreate(GroupBase):
    pass


# Properties to receive on group update, all optional
class GroupUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)


# Database model, database table inferred from class name
class Group(GroupBase, table=True):
    id: int | None = Field(default=None, primary_key=True)
    created_by_id: UUID = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=now_utc_naive, nullable=False)
    updated_at: datetime = Field(default_factory=now_utc_naive, nullable=False)
    is_deleted: bool = Field(default=False, nullable=False, index=True)
    deleted_at: datetime | None = None


class GroupMember(SQLModel, table=True):
    group_id: int = Field(
        foreign_key="group.id",
        primary_key=True,
        ondelete="CASCADE",
    )
    user_id: UUID = Field(
        foreign_key="user.id",
        primary_key=True,
        index=True,
    )
    role: GroupRole = Field(default=GroupRole.MEMBER, nullable=False)
    joined_at: datetime = Field(default_factory=now_utc_naive, nullable=False)


# Append-only audit trail, one row per membership transition
class GroupMemberHistory(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    group_id: int = Field(foreign_key="group.id", index=True, ondelete="CASCADE")
    user_id: UUID = Field(foreign_key="user.id")
    action: GroupMemberAction
    actor_id: UUID | None = Field(
        default=None,
        foreign_key="user.id",
        description="None when the transition was made by the account cleanup job",
    )
    previous_role: GroupRole | None = None
    new_role: GroupRole | None = None
    timestamp: datetime = Field(default_factory=now_utc_naive, nullable=False)
