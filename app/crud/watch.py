from collections import defaultdict
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, case, func, or_
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col, select

from app.core.enums import GroupedWatchesSort
from app.crud.group import shares_group_with
from app.inputs.watch import GroupedWatchesFilters
from app.models.movie import Movie
from app.models.user import User
from app.models.watch import Watch, WatchCreate, WatchGroup, WatchUpdate


def is_watch_visible_to_viewer(*, viewer_id_value: Any) -> ColumnElement[bool]:
    """
    Row-level visibility of a watch for a viewer, to be used in a query that
    joins Watch with its owner User.

    The owner always sees their own watches. Anyone else needs the watch to be
    public, the owner to share watches and still exist, and a common non-deleted
    group with the owner.
    """
    return or_(
        col(Watch.user_id) == viewer_id_value,
        and_(
            col(Watch.is_private).is_(False),
            col(User.share_watches).is_(True),
            col(User.is_deleted).is_(False),
            shares_group_with(
                user_id_value=Watch.user_id,
                other_user_id_value=viewer_id_value,
            ),
        ),
    )


def get_watch_by_id(
    *,
    session: Session,
    watch_id: int,
    include_deleted: bool = False,
) -> Watch | None:
    """
    Get a watch by its ID.

    Parameters:
        session (Session): The database session.
        watch_id (int): The ID of the watch.
        include_deleted (bool): Also return soft-deleted watches.
    Returns:
        Watch | None: The watch if found, otherwise None.
    """
    watch = session.get(Watch, watch_id)
    if watch is None or (watch.is_deleted and not include_deleted):
        return None
    return watch


def get_watches_by_ids(*, session: Session, watch_ids: list[int]) -> list[Watch]:
    """
    Get the non-deleted watches with the given IDs, in ID order. Unknown IDs
    are left out.
    """
    if not watch_ids:
        return []
    stmt = (
        select(Watch)
        .where(
            col(Watch.id).in_(watch_ids),
            col(Watch.is_deleted).is_(False),
        )
        .order_by(col(Watch.id))
    )
    return list(session.exec(stmt).all())


def create_watch(
    *,
    session: Session,
    owner_id: UUID,
    movie_id: int,
    watch_in: WatchCreate,
) -> Watch:
    """
    Insert a watch for a resolved movie. Group sharing is handled separately.

    Raises:
        IntegrityError: If the owner or movie does not exist.
    """
    watch_data = watch_in.model_dump(exclude={"external_movie_id", "group_ids"})
    db_obj = Watch(**watch_data, user_id=owner_id, movie_id=movie_id)
    session.add(db_obj)
    session.flush()
    return db_obj


def set_watch_privacy(*, session: Session, db_watch: Watch, is_private: bool) -> Watch:
    db_watch.is_private = is_private
    session.add(db_watch)
    session.flush()
    return db_watch


# Columns that cannot be cleared through an update
_NON_NULLABLE_WATCH_FIELDS = {"watched_date", "is_rewatch", "is_private"}


def update_watch(*, session: Session, db_watch: Watch, watch_in: WatchUpdate) -> Watch:
    """
    Apply the fields set on watch_in to a watch. Explicit None clears an
    optional field and is ignored for the others. Group sharing is handled
    separately.
    """
    watch_data = {
        key: value
        for key, value in watch_in.model_dump(exclude_unset=True, exclude={"group_ids"}).items()
        if value is not None or key not in _NON_NULLABLE_WATCH_FIELDS
    }
    db_watch.sqlmodel_update(watch_data)
    session.add(db_watch)
    session.flush()
    return db_watch


def soft_delete_watch(*, session: Session, db_watch: Watch, now: datetime) -> Watch:
    db_watch.is_deleted = True
    db_watch.deleted_at = now
    session.add(db_watch)
    session.flush()
    return db_watch


def set_watch_groups(
    *,
    session: Session,
    watch_id: int,
    group_ids: list[int],
    now: datetime,
) -> list[int]:
    """
    Replace the set of groups a watch is shared into. Rows for groups that stay
    keep their original shared_at.

    Parameters:
        session (Session): The database session.
        watch_id (int): The watch to share.
        group_ids (list[int]): The complete new set of groups.
        now (datetime): shared_at for newly added groups.
    Returns:
        list[int]: The sorted group ids the watch is now shared into.
    """
    wanted = set(group_ids)
    existing_rows = list(
        session.exec(select(WatchGroup).where(WatchGroup.watch_id == watch_id)).all()
    )
    existing = {row.group_id for row in existing_rows}

    for row in existing_rows:
        if row.group_id not in wanted:
            session.delete(row)
    for group_id in sorted(wanted - existing):
        session.add(WatchGroup(watch_id=watch_id, group_id=group_id, shared_at=now))
    session.flush()
    return sorted(wanted)


def get_group_ids_for_watches(
    *,
    session: Session,
    watch_ids: list[int],
) -> dict[int, list[int]]:
    if not watch_ids:
        return {}
    stmt = (
        select(WatchGroup.watch_id, WatchGroup.group_id)
        .where(col(WatchGroup.watch_id).in_(watch_ids))
        .order_by(col(WatchGroup.group_id))
    )
    group_ids: dict[int, list[int]] = defaultdict(list)
    for watch_id, group_id in session.exec(stmt).all():
        group_ids[watch_id].append(group_id)
    return dict(group_ids)


def get_visible_watches_in_groups(
    *,
    session: Session,
    group_ids: list[int],
    viewer_id: UUID,
    skip: int = 0,
    take: int | None = None,
) -> list[tuple[Watch, User, Movie]]:
    """
    Get the watches shared into any of the given groups that the viewer may see,
    newest first. A watch shared into several of the groups appears once.
    Pagination is applied after the visibility filter.

    Parameters:
        session (Session): The database session.
        group_ids (list[int]): Groups whose shared watches to read.
        viewer_id (UUID): The user the feed is built for.
        skip (int): Number of visible watches to skip.
        take (int | None): Maximum number of watches, None for all.
    Returns:
        list[tuple[Watch, User, Movie]]: Each watch with its owner and movie.
    """
    if not group_ids:
        return []

    shared_watch_ids = select(WatchGroup.watch_id).where(
        col(WatchGroup.group_id).in_(group_ids)
    )
    stmt = (
        select(Watch, User, Movie)
        .join(User, col(User.id) == col(Watch.user_id))
        .join(Movie, col(Movie.id) == col(Watch.movie_id))
        .where(
            col(Watch.is_deleted).is_(False),
            col(Watch.id).in_(shared_watch_ids),
            is_watch_visible_to_viewer(viewer_id_value=viewer_id),
        )
        .order_by(col(Watch.watched_date).desc(), col(Watch.id).desc())
        .offset(skip)
    )
    if take is not None:
        stmt = stmt.limit(take)
    return [(watch, user, movie) for watch, user, movie in session.exec(stmt).all()]


def _grouped_watch_conditions(filters: GroupedWatchesFilters) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = [
        col(Watch.user_id) == filters.user_id,
        col(Watch.is_deleted).is_(False),
    ]
    if filters.search and filters.search.strip():
        conditions.append(col(Movie.title).ilike(f"%{filters.search.strip()}%"))
    if filters.group_id is not None:
        conditions.append(
            col(Watch.id).in_(
                select(WatchGroup.watch_id).where(WatchGroup.group_id == filters.group_id)
            )
        )
    if filters.watched_from is not None:
        conditions.append(col(Watch.watched_date) >= filters.watched_from)
    if filters.watched_to is not None:
        conditions.append(col(Watch.watched_date) <= filters.watched_to)
    return conditions


def get_grouped_watch_page(
    *,
    session: Session,
    filters: GroupedWatchesFilters,
) -> tuple[int, list[int]]:
    """
    Group a user's watches per movie, filter and sort the groups in the database
    and return one page of movie ids.

    Parameters:
        session (Session): The database session.
        filters (GroupedWatchesFilters): Filters, sort mode and page.
    Returns:
        tuple[int, list[int]]: Total number of matching movies and the movie ids
        of the requested page, in sort order.
    """
    max_watched_date = func.max(Watch.watched_date)
    avg_rating = func.avg(Watch.rating)
    watch_count = func.count(Watch.id)
    has_rewatch = func.max(case((col(Watch.is_rewatch).is_(True), 1), else_=0))

    stmt = (
        select(Watch.movie_id)
        .join(Movie, col(Movie.id) == col(Watch.movie_id))
        .where(*_grouped_watch_conditions(filters))
        .group_by(col(Watch.movie_id), col(Movie.title))
    )

    if filters.rewatch_only:
        stmt = stmt.having(has_rewatch == 1)
    if filters.unrated_only:
        stmt = stmt.having(avg_rating.is_(None))
    if filters.rating_min is not None:
        stmt = stmt.having(avg_rating >= filters.rating_min)
    if filters.rating_max is not None:
        stmt = stmt.having(avg_rating <= filters.rating_max)

    total_count = session.exec(
        select(func.count()).select_from(stmt.subquery())
    ).one()

    if filters.sort_by == GroupedWatchesSort.TITLE:
        stmt = stmt.order_by(col(Movie.title), col(Watch.movie_id))
    elif filters.sort_by == GroupedWatchesSort.HIGHEST_RATED:
        stmt = stmt.order_by(
            avg_rating.desc().nulls_last(),
            max_watched_date.desc(),
            col(Watch.movie_id),
        )
    elif filters.sort_by == GroupedWatchesSort.MOST_WATCHED:
        stmt = stmt.order_by(
            watch_count.desc(),
            max_watched_date.desc(),
            col(Watch.movie_id),
        )
    else:
        stmt = stmt.order_by(max_watched_date.desc(), col(Watch.movie_id))

    stmt = stmt.offset((filters.page - 1) * filters.page_size).limit(filters.page_size)
    return total_count, list(session.exec(stmt).all())


def get_grouped_watch_details(
    *,
    session: Session,
    filters: GroupedWatchesFilters,
    movie_ids: list[int],
) -> list[Watch]:
    """
    Get the watches behind a page of grouped movies, newest first, with the
    same watch-level filters the page was built with.
    """
    if not movie_ids:
        return []
    stmt = (
        select(Watch)
        .join(Movie, col(Movie.id) == col(Watch.movie_id))
        .where(
            *_grouped_watch_conditions(filters),
            col(Watch.movie_id).in_(movie_ids),
        )
        .order_by(col(Watch.watched_date).desc(), col(Watch.id).desc())
    )
    return list(session.exec(stmt).all())


def get_user_watches_with_movies(
    *,
    session: Session,
    user_id: UUID,
) -> list[tuple[Watch, Movie]]:
    """
    Get every non-deleted watch of a user with its movie, oldest first.
    """
    stmt = (
        select(Watch, Movie)
        .join(Movie, col(Movie.id) == col(Watch.movie_id))
        .where(
            Watch.user_id == user_id,
            col(Watch.is_deleted).is_(False),
        )
        .order_by(col(Watch.watched_date), col(Watch.id))
    )
    return [(watch, movie) for watch, movie in session.exec(stmt).all()]
