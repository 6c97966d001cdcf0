from collections import Counter
from datetime import date
from uuid import UUID

from sqlmodel import Session

from app.converters import movie as movie_converters
from app.core.config import settings
from app.crud import watch as watch_crud
from app.schemas.stats import (
    DecadeBucket,
    LocationBucket,
    MonthBucket,
    RatingBucket,
    TopRewatchedMovie,
    UserStats,
    YearBucket,
)
from app.utils import now_utc_naive

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
UNKNOWN_LOCATION = "Unknown"


def get_user_stats(
    *,
    session: Session,
    user_id: UUID,
    today: date | None = None,
) -> UserStats:
    """
    Compute the watch statistics of a user over their non-deleted watches.

    The rating and month histograms always have 10 and 12 buckets, zero-filled.
    Months cover the current year only. Year, decade and location histograms
    only contain the values that occur.

    Parameters:
        session (Session): Database session.
        user_id (UUID): ID of the user.
        today (date | None): Reference day for the current year, defaults to now in UTC.
    Returns:
        UserStats: The computed statistics.
    """
    current_year = (today or now_utc_naive().date()).year
    rows = watch_crud.get_user_watches_with_movies(session=session, user_id=user_id)
    watches = [watch for watch, _ in rows]
    movies = {movie.id: movie for _, movie in rows}

    ratings = [watch.rating for watch in watches if watch.rating is not None]
    average_rating = round(sum(ratings) / len(ratings), 1) if ratings else None

    rating_counts = Counter(ratings)
    month_counts = Counter(
        watch.watched_date.month for watch in watches if watch.watched_date.year == current_year
    )
    year_counts = Counter(watch.watched_date.year for watch in watches)
    decade_counts = Counter(
        movie.release_year // 10 * 10
        for _, movie in rows
        if movie.release_year is not None
    )
    location_counts = Counter(
        watch.watch_location if watch.watch_location else UNKNOWN_LOCATION
        for watch in watches
    )
    movie_counts = Counter(watch.movie_id for watch in watches)

    top_rewatched = [
        TopRewatchedMovie(
            movie=movie_converters.to_summary(movies[movie_id]),
            watch_count=count,
        )
        for movie_id, count in movie_counts.most_common()
        if count > 1
    ][: settings.TOP_REWATCHED_LIMIT]

    return UserStats(
        total_watches=len(watches),
        total_movies=len(movie_counts),
        total_rewatches=sum(1 for watch in watches if watch.is_rewatch),
        average_rating=average_rating,
        ratings_distribution=[
            RatingBucket(rating=rating, count=rating_counts.get(rating, 0))
            for rating in range(1, 11)
        ],
        watches_by_month=[
            MonthBucket(month=month, month_name=MONTH_NAMES[month - 1], count=month_counts.get(month, 0))
            for month in range(1, 13)
        ],
        watches_by_year=[
            YearBucket(year=year, count=count) for year, count in sorted(year_counts.items())
        ],
        watches_by_decade=[
            DecadeBucket(decade=f"{decade}s", count=count)
            for decade, count in sorted(decade_counts.items())
        ],
        watches_by_location=[
            LocationBucket(location=location, count=count)
            for location, count in location_counts.most_common()
        ],
        top_rewatched=top_rewatched,
    )
