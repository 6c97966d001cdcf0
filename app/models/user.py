import uuid
from datetime import datetime
from typing import Any

from pydantic import EmailStr
from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

from app.utils import now_utc_naive

__all__ = [
    "UserBase",
    "PrivacySettingsUpdate",
    "User",
]


# Shared properties
class UserBase(SQLModel):
    email: EmailStr = Field(unique=True, index=True, max_length=255)
    display_name: str | None = Field(default=None, max_length=255)
    is_premium: bool = Field(default=False)


# Partial update of the sharing toggles, unset fields are left alone
class PrivacySettingsUpdate(SQLModel):
    share_watches: bool | None = None
    share_ratings: bool | None = None
    share_notes: bool | None = None


# Database model, database table inferred from class name
class User(UserBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    share_watches: bool = Field(default=False, nullable=False)
    share_ratings: bool = Field(default=False, nullable=False)
    share_notes: bool = Field(default=False, nullable=False)

    is_deleted: bool = Field(default=False, nullable=False, index=True)
    deleted_at: datetime | None = None
    is_deactivated: bool = Field(default=False, nullable=False)
    deactivated_at: datetime | None = None
    pending_group_actions: list[dict[str, Any]] | None = Field(
        default=None,
        sa_column=Column(JSON(none_as_null=True), nullable=True),
        description="Serialized PendingGroupAction list, executed by the cleanup job",
    )

    created_at: datetime = Field(default_factory=now_utc_naive, nullable=False)
    updated_at: datetime = Field(default_factory=now_utc_naive, nullable=False)
