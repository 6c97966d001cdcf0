from datetime import datetime
from uuid import UUID

from sqlmodel import Field, SQLModel

from app.core.enums import WatchGroupOperation
from app.utils import now_utc_naive

__all__ = [
    "WatchBase",
    "WatchCreate",
    "WatchUpdate",
    "WatchBulkUpdate",
    "Watch",
    "WatchGroup",
]


# Shared properties
class WatchBase(SQLModel):
    watched_date: datetime
    rating: int | None = Field(default=None, ge=1, le=10)
    notes: str | None = None
    watch_location: str | None = Field(default=None, max_length=100)
    watched_with: str | None = Field(default=None, max_length=255)
    is_rewatch: bool = False
    is_private: bool = False


# Properties to receive on watch creation, the movie is referenced by its catalog id
class WatchCreate(WatchBase):
    external_movie_id: int
    group_ids: list[int] = Field(default_factory=list)


# Properties to receive on watch update, all optional
class WatchUpdate(SQLModel):
    watched_date: datetime | None = None
    rating: int | None = Field(default=None, ge=1, le=10)
    notes: str | None = None
    watch_location: str | None = Field(default=None, max_length=100)
    watched_with: str | None = Field(default=None, max_length=255)
    is_rewatch: bool | None = None
    is_private: bool | None = None
    group_ids: list[int] | None = None


# Privacy and sharing applied to several of a user's watches at once
class WatchBulkUpdate(SQLModel):
    watch_ids: list[int] = Field(min_length=1)
    is_private: bool
    group_ids: list[int] = Field(default_factory=list)
    group_operation: WatchGroupOperation = WatchGroupOperation.ADD


# Database model, database table inferred from class name
class Watch(WatchBase, table=True):
    id: int | None = Field(default=None, primary_key=True)
    user_id: UUID = Field(foreign_key="user.id", index=True)
    movie_id: int = Field(foreign_key="movie.id", index=True)
    created_at: datetime = Field(default_factory=now_utc_naive, nullable=False)
    is_deleted: bool = Field(default=False, nullable=False)
    deleted_at: datetime | None = None


class WatchGroup(SQLModel, table=True):
    watch_id: int = Field(
        foreign_key="watch.id",
        primary_key=True,
        ondelete="CASCADE",
    )
    group_id: int = Field(
        foreign_key="group.id",
        primary_key=True,
        index=True,
        ondelete="CASCADE",
    )
    shared_at: datetime = Field(default_factory=now_utc_naive, nullable=False)
