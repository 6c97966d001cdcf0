from uuid import UUID

from sqlmodel import SQLModel

from app.models.user import UserBase

__all__ = [
    "UserPublic",
    "UserSummary",
    "PrivacySettingsPublic",
]


class UserPublic(UserBase):
    id: UUID
    is_deactivated: bool
    share_watches: bool
    share_ratings: bool
    share_notes: bool


class UserSummary(SQLModel):
    id: UUID
    display_name: str | None
    is_premium: bool
    is_deactivated: bool


class PrivacySettingsPublic(SQLModel):
    share_watches: bool
    share_ratings: bool
    share_notes: bool
