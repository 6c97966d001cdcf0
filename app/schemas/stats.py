from sqlmodel import SQLModel

from app.schemas.movie import MovieSummary

__all__ = [
    "RatingBucket",
    "MonthBucket",
    "YearBucket",
    "DecadeBucket",
    "LocationBucket",
    "TopRewatchedMovie",
    "UserStats",
]


class RatingBucket(SQLModel):
    rating: int
    count: int


class MonthBucket(SQLModel):
    month: int
    month_name: str
    count: int


class YearBucket(SQLModel):
    year: int
    count: int


class DecadeBucket(SQLModel):
    decade: str
    count: int


class LocationBucket(SQLModel):
    location: str
    count: int


class TopRewatchedMovie(SQLModel):
    movie: MovieSummary
    watch_count: int


class UserStats(SQLModel):
    total_watches: int
    total_movies: int
    total_rewatches: int
    average_rating: float | None
    ratings_distribution: list[RatingBucket]
    watches_by_month: list[MonthBucket]
    watches_by_year: list[YearBucket]
    watches_by_decade: list[DecadeBucket]
    watches_by_location: list[LocationBucket]
    top_rewatched: list[TopRewatchedMovie]
