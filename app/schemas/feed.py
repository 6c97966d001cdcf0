from sqlmodel import Field, SQLModel

from app.core.enums import AccessOutcome
from app.schemas.movie import MovieSummary
from app.schemas.watch import WatchPublic

__all__ = [
    "GroupFeedItem",
    "MovieWatchStats",
    "GroupFeedStats",
]


class GroupFeedItem(WatchPublic):
    display_name: str | None
    owner_is_deactivated: bool
    movie_title: str
    poster_link: str | None


class MovieWatchStats(SQLModel):
    movie_id: int
    movie: MovieSummary
    watch_count: int
    average_rating: float | None
    watched_by: list[str]


class GroupFeedStats(SQLModel):
    """
    Aggregates over the watches of one group that the requester may see.
    Anything but AccessOutcome.OK comes with empty collections and no group name.
    """

    outcome: AccessOutcome
    group_id: int
    group_name: str | None = None
    total_watches: int = 0
    unique_movies: int = 0
    active_members: int = 0
    average_group_rating: float | None = None
    top_movies: list[MovieWatchStats] = Field(default_factory=list)
    watches: list[GroupFeedItem] = Field(default_factory=list)
