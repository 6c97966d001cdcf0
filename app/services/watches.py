import math
from logging import getLogger
from uuid import UUID

from sqlmodel import Session

from app.converters import movie as movie_converters
from app.converters import watch as watch_converters
from app.core.enums import WatchGroupOperation
from app.crud import group as group_crud
from app.crud import movie as movies_crud
from app.crud import user as user_crud
from app.crud import watch as watch_crud
from app.exceptions.base import AppError
from app.exceptions.user_exceptions import UserNotFound
from app.inputs.watch import GroupedWatchesFilters
from app.models.watch import Watch, WatchBulkUpdate, WatchCreate, WatchUpdate
from app.schemas.watch import (
    GroupedWatches,
    PaginatedGroupedWatches,
    WatchBulkUpdateResult,
    WatchPublic,
)
from app.services.movies import MovieResolver, resolve_movie
from app.utils import now_utc_naive

logger = getLogger(__name__)


def _average_rating(watches: list[Watch]) -> float | None:
    ratings = [watch.rating for watch in watches if watch.rating is not None]
    if not ratings:
        return None
    return round(sum(ratings) / len(ratings), 1)


def get_grouped_watches(
    *,
    session: Session,
    filters: GroupedWatchesFilters,
) -> PaginatedGroupedWatches:
    """
    Get a user's own watches grouped per movie, one page at a time.
    Filtering, sorting and paging happen in the database; only the watches of
    the movies on the requested page are loaded.

    Parameters:
        session (Session): Database session.
        filters (GroupedWatchesFilters): Owner, filters, sort mode and page.
    Returns:
        PaginatedGroupedWatches: The page of grouped watches with paging info.
    """
    total_count, movie_ids = watch_crud.get_grouped_watch_page(
        session=session,
        filters=filters,
    )
    total_pages = math.ceil(total_count / filters.page_size)

    watches = watch_crud.get_grouped_watch_details(
        session=session,
        filters=filters,
        movie_ids=movie_ids,
    )
    movies = movies_crud.get_movies_by_ids(session=session, movie_ids=movie_ids)
    group_ids = watch_crud.get_group_ids_for_watches(
        session=session,
        watch_ids=[watch.id for watch in watches],  # type: ignore[misc]
    )

    watches_per_movie: dict[int, list[Watch]] = {movie_id: [] for movie_id in movie_ids}
    for watch in watches:
        watches_per_movie[watch.movie_id].append(watch)

    items = []
    for movie_id in movie_ids:
        movie_watches = watches_per_movie[movie_id]
        items.append(
            GroupedWatches(
                movie=movie_converters.to_summary(movies[movie_id]),
                watch_count=len(movie_watches),
                average_rating=_average_rating(movie_watches),
                latest_rating=movie_watches[0].rating if movie_watches else None,
                watches=[
                    watch_converters.to_public(
                        watch,
                        group_ids=group_ids.get(watch.id, []),  # type: ignore[arg-type]
                    )
                    for watch in movie_watches
                ],
            )
        )

    return PaginatedGroupedWatches(
        items=items,
        total_count=total_count,
        page=filters.page,
        page_size=filters.page_size,
        total_pages=total_pages,
        has_more=filters.page < total_pages,
    )


def _shareable_group_ids(
    *,
    session: Session,
    owner_id: UUID,
    group_ids: list[int],
) -> list[int]:
    member_of = set(group_crud.get_group_ids_for_user(session=session, user_id=owner_id))
    skipped = sorted(set(group_ids) - member_of)
    if skipped:
        logger.warning("User %s cannot share into groups %s, skipping them", owner_id, skipped)
    return sorted(set(group_ids) & member_of)


def log_watch(
    *,
    session: Session,
    owner_id: UUID,
    watch_in: WatchCreate,
    resolver: MovieResolver,
) -> WatchPublic:
    """
    Log a watch for a user and share it into the requested groups.

    Parameters:
        session (Session): Database session.
        owner_id (UUID): ID of the user who watched the movie.
        watch_in (WatchCreate): The watch, referencing the movie by catalog id.
        resolver (MovieResolver): Catalog used to resolve the movie.
    Returns:
        WatchPublic: The logged watch.
    Raises:
        UserNotFound: If the owner does not exist.
        MovieNotFoundError: If the catalog does not know the movie.
        AppError: For other unexpected errors.
    """
    if user_crud.get_user_by_id(session=session, user_id=owner_id) is None:
        raise UserNotFound(owner_id)

    movie = resolve_movie(resolver=resolver, external_id=watch_in.external_movie_id)
    group_ids = _shareable_group_ids(
        session=session,
        owner_id=owner_id,
        group_ids=watch_in.group_ids,
    )

    try:
        watch = watch_crud.create_watch(
            session=session,
            owner_id=owner_id,
            movie_id=movie.id,  # type: ignore[arg-type]
            watch_in=watch_in,
        )
        shared = watch_crud.set_watch_groups(
            session=session,
            watch_id=watch.id,  # type: ignore[arg-type]
            group_ids=group_ids,
            now=now_utc_naive(),
        )
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    return watch_converters.to_public(watch, group_ids=shared)


def share_watch_with_groups(
    *,
    session: Session,
    watch_id: int,
    owner_id: UUID,
    group_ids: list[int],
) -> WatchPublic | None:
    """
    Replace the groups a watch is shared into. Groups the owner is not a member
    of are skipped.

    Returns:
        WatchPublic | None: The watch, or None if it does not exist or is not owned by owner_id.
    Raises:
        AppError: For unexpected errors.
    """
    watch = watch_crud.get_watch_by_id(session=session, watch_id=watch_id)
    if watch is None or watch.user_id != owner_id:
        logger.warning("User %s attempted to share watch %s they do not own", owner_id, watch_id)
        return None

    allowed = _shareable_group_ids(session=session, owner_id=owner_id, group_ids=group_ids)
    try:
        shared = watch_crud.set_watch_groups(
            session=session,
            watch_id=watch_id,
            group_ids=allowed,
            now=now_utc_naive(),
        )
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    return watch_converters.to_public(watch, group_ids=shared)


def set_watch_privacy(
    *,
    session: Session,
    watch_id: int,
    owner_id: UUID,
    is_private: bool,
) -> WatchPublic | None:
    watch = watch_crud.get_watch_by_id(session=session, watch_id=watch_id)
    if watch is None or watch.user_id != owner_id:
        logger.warning("User %s attempted to change privacy of watch %s they do not own", owner_id, watch_id)
        return None

    try:
        watch_crud.set_watch_privacy(session=session, db_watch=watch, is_private=is_private)
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    group_ids = watch_crud.get_group_ids_for_watches(session=session, watch_ids=[watch_id])
    return watch_converters.to_public(watch, group_ids=group_ids.get(watch_id, []))


def update_watch(
    *,
    session: Session,
    watch_id: int,
    owner_id: UUID,
    watch_in: WatchUpdate,
) -> WatchPublic | None:
    """
    Update a watch owned by owner_id. When group_ids is set the watch's sharing
    is replaced by it, skipping groups the owner is not a member of.

    Parameters:
        session (Session): Database session.
        watch_id (int): ID of the watch to update.
        owner_id (UUID): ID of the requesting user.
        watch_in (WatchUpdate): The fields to change.
    Returns:
        WatchPublic | None: The updated watch, or None if it does not exist or is not owned by owner_id.
    Raises:
        AppError: For unexpected errors.
    """
    watch = watch_crud.get_watch_by_id(session=session, watch_id=watch_id)
    if watch is None or watch.user_id != owner_id:
        logger.warning("User %s attempted to update watch %s they do not own", owner_id, watch_id)
        return None

    allowed = None
    if watch_in.group_ids is not None:
        allowed = _shareable_group_ids(
            session=session,
            owner_id=owner_id,
            group_ids=watch_in.group_ids,
        )

    try:
        watch_crud.update_watch(session=session, db_watch=watch, watch_in=watch_in)
        if allowed is not None:
            watch_crud.set_watch_groups(
                session=session,
                watch_id=watch_id,
                group_ids=allowed,
                now=now_utc_naive(),
            )
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    group_ids = watch_crud.get_group_ids_for_watches(session=session, watch_ids=[watch_id])
    return watch_converters.to_public(watch, group_ids=group_ids.get(watch_id, []))


def delete_watch(*, session: Session, watch_id: int, owner_id: UUID) -> bool:
    """
    Soft delete a watch owned by owner_id. Its group links are kept, deleted
    watches are left out of every feed and listing.

    Returns:
        bool: False if the watch does not exist, is already deleted or is not owned by owner_id.
    Raises:
        AppError: For unexpected errors.
    """
    watch = watch_crud.get_watch_by_id(session=session, watch_id=watch_id)
    if watch is None or watch.user_id != owner_id:
        logger.warning("User %s attempted to delete watch %s they do not own", owner_id, watch_id)
        return False

    try:
        watch_crud.soft_delete_watch(session=session, db_watch=watch, now=now_utc_naive())
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e
    return True


def bulk_update_watches(
    *,
    session: Session,
    owner_id: UUID,
    bulk_in: WatchBulkUpdate,
) -> WatchBulkUpdateResult:
    """
    Set the privacy and group sharing of several watches in one transaction.

    Watches that do not exist or belong to someone else are reported and
    counted as failed, the owner's other watches are still updated. Making
    watches private removes all their group links. Otherwise the requested
    groups are added to each watch, or replace its groups for the replace
    operation. Nothing is changed when the owner is not a member of every
    requested group.

    Parameters:
        session (Session): Database session.
        owner_id (UUID): ID of the requesting user.
        bulk_in (WatchBulkUpdate): Watches, privacy, groups and group operation.
    Returns:
        WatchBulkUpdateResult: Counts of updated and failed watches with the errors.
    Raises:
        AppError: For unexpected errors.
    """
    result = WatchBulkUpdateResult(success=True)
    requested_ids = list(dict.fromkeys(bulk_in.watch_ids))

    member_of = set(group_crud.get_group_ids_for_user(session=session, user_id=owner_id))
    invalid_group_ids = sorted(set(bulk_in.group_ids) - member_of)
    if invalid_group_ids:
        logger.warning("User %s is not a member of groups %s, bulk update refused", owner_id, invalid_group_ids)
        result.success = False
        result.errors.append(
            f"User is not a member of groups: {', '.join(map(str, invalid_group_ids))}"
        )
        return result

    watches = watch_crud.get_watches_by_ids(session=session, watch_ids=requested_ids)
    found_ids = {watch.id for watch in watches}
    missing_ids = [watch_id for watch_id in requested_ids if watch_id not in found_ids]
    if missing_ids:
        result.errors.append(f"Watches not found: {', '.join(map(str, missing_ids))}")
    unauthorized_ids = [watch.id for watch in watches if watch.user_id != owner_id]
    if unauthorized_ids:
        logger.warning("User %s attempted to bulk update watches %s they do not own", owner_id, unauthorized_ids)
        result.errors.append(
            f"Unauthorized access to watches: {', '.join(map(str, unauthorized_ids))}"
        )
    result.failed = len(missing_ids) + len(unauthorized_ids)

    owned = [watch for watch in watches if watch.user_id == owner_id]
    current_groups = watch_crud.get_group_ids_for_watches(
        session=session,
        watch_ids=[watch.id for watch in owned],  # type: ignore[misc]
    )
    now = now_utc_naive()
    try:
        for watch in owned:
            watch_crud.set_watch_privacy(session=session, db_watch=watch, is_private=bulk_in.is_private)
            if bulk_in.is_private:
                group_ids: list[int] = []
            elif bulk_in.group_operation == WatchGroupOperation.REPLACE:
                group_ids = bulk_in.group_ids
            else:
                group_ids = [*current_groups.get(watch.id, []), *bulk_in.group_ids]  # type: ignore[arg-type]
            watch_crud.set_watch_groups(
                session=session,
                watch_id=watch.id,  # type: ignore[arg-type]
                group_ids=group_ids,
                now=now,
            )
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    result.updated = len(owned)
    result.success = result.failed == 0
    logger.info("User %s bulk updated %s watches, %s failed", owner_id, result.updated, result.failed)
    return result
