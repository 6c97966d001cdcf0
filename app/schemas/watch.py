from uuid import UUID

from sqlmodel import Field, SQLModel

from app.models.watch import WatchBase
from app.schemas.movie import MovieSummary

__all__ = [
    "WatchPublic",
    "GroupedWatches",
    "PaginatedGroupedWatches",
    "WatchBulkUpdateResult",
]


class WatchPublic(WatchBase):
    id: int
    user_id: UUID
    movie_id: int
    group_ids: list[int] = Field(default_factory=list)


class GroupedWatches(SQLModel):
    movie: MovieSummary
    watch_count: int
    average_rating: float | None
    latest_rating: int | None
    watches: list[WatchPublic]


class PaginatedGroupedWatches(SQLModel):
    items: list[GroupedWatches]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    has_more: bool


class WatchBulkUpdateResult(SQLModel):
    success: bool
    updated: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
