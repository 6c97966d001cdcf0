from logging import getLogger
from uuid import UUID

from sqlmodel import Session

from app.converters import movie as movie_converters
from app.converters import watch as watch_converters
from app.core.config import settings
from app.core.enums import AccessOutcome
from app.crud import group as group_crud
from app.crud import watch as watch_crud
from app.models.movie import Movie
from app.models.user import User
from app.models.watch import Watch
from app.schemas.feed import GroupFeedItem, GroupFeedStats, MovieWatchStats
from app.services.privacy import field_access_for_owner

logger = getLogger(__name__)


def _clamp_take(take: int | None) -> int:
    if take is None:
        return settings.FEED_DEFAULT_TAKE
    return max(0, min(take, settings.FEED_MAX_TAKE))


def _average(ratings: list[int]) -> float | None:
    if not ratings:
        return None
    return round(sum(ratings) / len(ratings), 1)


def _to_feed_items(
    *,
    session: Session,
    rows: list[tuple[Watch, User, Movie]],
    viewer_id: UUID,
) -> list[GroupFeedItem]:
    group_ids = watch_crud.get_group_ids_for_watches(
        session=session,
        watch_ids=[watch.id for watch, _, _ in rows],  # type: ignore[misc]
    )
    items = []
    for watch, owner, movie in rows:
        access = field_access_for_owner(owner=owner, viewer_id=viewer_id)
        items.append(
            watch_converters.to_feed_item(
                watch,
                owner=owner,
                movie=movie,
                group_ids=group_ids.get(watch.id, []),  # type: ignore[arg-type]
                hide_rating=not access.rating,
                hide_notes=not access.notes,
            )
        )
    return items


def get_group_feed(
    *,
    session: Session,
    group_id: int,
    requester_id: UUID,
    skip: int = 0,
    take: int | None = None,
) -> list[GroupFeedItem]:
    """
    Get the watches shared into a group that the requester may see, newest first.

    Parameters:
        session (Session): Database session.
        group_id (int): ID of the group.
        requester_id (UUID): ID of the user reading the feed.
        skip (int): Number of visible watches to skip.
        take (int | None): Page size, capped at FEED_MAX_TAKE.
    Returns:
        list[GroupFeedItem]: The page of the feed, empty if the requester is not a member.
    """
    if not group_crud.is_member(session=session, group_id=group_id, user_id=requester_id):
        logger.warning("User %s requested feed of group %s without being a member", requester_id, group_id)
        return []

    rows = watch_crud.get_visible_watches_in_groups(
        session=session,
        group_ids=[group_id],
        viewer_id=requester_id,
        skip=max(skip, 0),
        take=_clamp_take(take),
    )
    return _to_feed_items(session=session, rows=rows, viewer_id=requester_id)


def get_combined_feed(
    *,
    session: Session,
    requester_id: UUID,
    skip: int = 0,
    take: int | None = None,
) -> list[GroupFeedItem]:
    """
    Get one feed across every group the requester belongs to. A watch shared
    into several of those groups appears once.

    Parameters:
        session (Session): Database session.
        requester_id (UUID): ID of the user reading the feed.
        skip (int): Number of visible watches to skip.
        take (int | None): Page size, capped at FEED_MAX_TAKE.
    Returns:
        list[GroupFeedItem]: The page of the feed, empty if the requester has no groups.
    """
    group_ids = group_crud.get_group_ids_for_user(session=session, user_id=requester_id)
    if not group_ids:
        return []

    rows = watch_crud.get_visible_watches_in_groups(
        session=session,
        group_ids=group_ids,
        viewer_id=requester_id,
        skip=max(skip, 0),
        take=_clamp_take(take),
    )
    return _to_feed_items(session=session, rows=rows, viewer_id=requester_id)


def _top_movies(
    items: list[GroupFeedItem],
    movies: dict[int, Movie],
) -> list[MovieWatchStats]:
    # dicts keep first-occurrence order, sorted() is stable
    per_movie: dict[int, list[GroupFeedItem]] = {}
    for item in items:
        per_movie.setdefault(item.movie_id, []).append(item)

    ranked = sorted(per_movie.items(), key=lambda entry: len(entry[1]), reverse=True)
    top_movies = []
    for movie_id, movie_items in ranked[: settings.TOP_MOVIES_LIMIT]:
        watched_by: list[str] = []
        for item in movie_items:
            name = item.display_name or "Unknown"
            if name not in watched_by:
                watched_by.append(name)
        top_movies.append(
            MovieWatchStats(
                movie_id=movie_id,
                movie=movie_converters.to_summary(movies[movie_id]),
                watch_count=len(movie_items),
                average_rating=_average(
                    [item.rating for item in movie_items if item.rating is not None]
                ),
                watched_by=watched_by,
            )
        )
    return top_movies


def get_feed_with_stats(
    *,
    session: Session,
    group_id: int,
    requester_id: UUID,
) -> GroupFeedStats:
    """
    Get the visible watches of a group together with aggregates over them.
    Ratings the owners do not share are left out of every average.

    Parameters:
        session (Session): Database session.
        group_id (int): ID of the group.
        requester_id (UUID): ID of the user reading the stats.
    Returns:
        GroupFeedStats: The stats, tagged NOT_MEMBER when the requester has no
        membership in the group and NOT_FOUND when the group no longer exists.
    """
    membership = group_crud.get_membership(session=session, group_id=group_id, user_id=requester_id)
    if membership is None:
        logger.warning("User %s requested stats of group %s without being a member", requester_id, group_id)
        return GroupFeedStats(outcome=AccessOutcome.NOT_MEMBER, group_id=group_id)

    group = group_crud.get_group_by_id(session=session, group_id=group_id)
    if group is None:
        return GroupFeedStats(outcome=AccessOutcome.NOT_FOUND, group_id=group_id)

    rows = watch_crud.get_visible_watches_in_groups(
        session=session,
        group_ids=[group_id],
        viewer_id=requester_id,
    )
    items = _to_feed_items(session=session, rows=rows, viewer_id=requester_id)
    movies = {movie.id: movie for _, _, movie in rows}

    return GroupFeedStats(
        outcome=AccessOutcome.OK,
        group_id=group_id,
        group_name=group.name,
        total_watches=len(items),
        unique_movies=len({item.movie_id for item in items}),
        active_members=len({item.user_id for item in items}),
        average_group_rating=_average(
            [item.rating for item in items if item.rating is not None]
        ),
        top_movies=_top_movies(items, movies),  # type: ignore[arg-type]
        watches=items,
    )
