# app/inputs/watch.py

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.enums import GroupedWatchesSort


class GroupedWatchesFilters(BaseModel):
    user_id: UUID
    search: str | None = None
    group_id: int | None = None
    watched_from: datetime | None = None
    watched_to: datetime | None = None
    rating_min: float | None = Field(default=None, ge=1, le=10)
    rating_max: float | None = Field(default=None, ge=1, le=10)
    rewatch_only: bool = False
    unrated_only: bool = False
    sort_by: GroupedWatchesSort = GroupedWatchesSort.RECENTLY_WATCHED
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @model_validator(mode="after")
    def check_ranges(self) -> "GroupedWatchesFilters":
        if (
            self.rating_min is not None
            and self.rating_max is not None
            and self.rating_min > self.rating_max
        ):
            raise ValueError("rating_min must not be greater than rating_max")
        if (
            self.watched_from is not None
            and self.watched_to is not None
            and self.watched_from > self.watched_to
        ):
            raise ValueError("watched_from must not be after watched_to")
        return self
