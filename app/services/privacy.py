from dataclasses import dataclass, field
from logging import getLogger
from uuid import UUID

from sqlmodel import Session

from app.converters import watch as watch_converters
from app.crud import group as group_crud
from app.crud import user as user_crud
from app.crud import watch as watch_crud
from app.models.user import User
from app.models.watch import Watch
from app.schemas.watch import WatchPublic

logger = getLogger(__name__)


@dataclass(frozen=True)
class WatchAccess:
    """
    What a viewer may see of one watch. rating and notes are only ever True
    when watch is True.
    """

    watch: bool
    rating: bool
    notes: bool


NO_ACCESS = WatchAccess(watch=False, rating=False, notes=False)
FULL_ACCESS = WatchAccess(watch=True, rating=True, notes=True)


@dataclass
class _OwnerLookup:
    # Owner rows and co-membership answers, cached per owner for one call
    session: Session
    viewer_id: UUID
    owners: dict[UUID, User | None] = field(default_factory=dict)
    co_members: dict[UUID, bool] = field(default_factory=dict)

    def owner(self, owner_id: UUID) -> User | None:
        if owner_id not in self.owners:
            self.owners[owner_id] = user_crud.get_user_by_id(
                session=self.session,
                user_id=owner_id,
                include_deleted=True,
            )
        return self.owners[owner_id]

    def shares_group(self, owner_id: UUID) -> bool:
        if owner_id not in self.co_members:
            self.co_members[owner_id] = group_crud.are_users_in_same_group(
                session=self.session,
                user_id=owner_id,
                other_user_id=self.viewer_id,
            )
        return self.co_members[owner_id]


def field_access_for_owner(*, owner: User, viewer_id: UUID) -> WatchAccess:
    """
    Field access on a watch already known to be visible to the viewer.
    """
    if owner.id == viewer_id:
        return FULL_ACCESS
    return WatchAccess(watch=True, rating=owner.share_ratings, notes=owner.share_notes)


def _resolve_access(watch: Watch, lookup: _OwnerLookup) -> WatchAccess:
    if watch.is_deleted:
        return NO_ACCESS
    if watch.user_id == lookup.viewer_id:
        return FULL_ACCESS
    if watch.is_private:
        return NO_ACCESS

    owner = lookup.owner(watch.user_id)
    if owner is None or owner.is_deleted:
        return NO_ACCESS
    if not owner.share_watches:
        return NO_ACCESS
    if not lookup.shares_group(watch.user_id):
        return NO_ACCESS
    return field_access_for_owner(owner=owner, viewer_id=lookup.viewer_id)


def get_watch_access(*, session: Session, watch_id: int, viewer_id: UUID) -> WatchAccess:
    """
    Resolve what a viewer may see of a watch.

    Parameters:
        session (Session): Database session.
        watch_id (int): ID of the watch.
        viewer_id (UUID): ID of the viewing user.
    Returns:
        WatchAccess: Visibility of the watch, its rating and its notes.
    """
    watch = watch_crud.get_watch_by_id(session=session, watch_id=watch_id)
    if watch is None:
        return NO_ACCESS
    return _resolve_access(watch, _OwnerLookup(session=session, viewer_id=viewer_id))


def can_view_watch(*, session: Session, watch_id: int, viewer_id: UUID) -> bool:
    return get_watch_access(session=session, watch_id=watch_id, viewer_id=viewer_id).watch


def can_view_rating(*, session: Session, watch_id: int, viewer_id: UUID) -> bool:
    return get_watch_access(session=session, watch_id=watch_id, viewer_id=viewer_id).rating


def can_view_notes(*, session: Session, watch_id: int, viewer_id: UUID) -> bool:
    return get_watch_access(session=session, watch_id=watch_id, viewer_id=viewer_id).notes


def are_users_in_same_group(*, session: Session, user_id: UUID, other_user_id: UUID) -> bool:
    return group_crud.are_users_in_same_group(
        session=session,
        user_id=user_id,
        other_user_id=other_user_id,
    )


def filter_watches_by_privacy(
    *,
    session: Session,
    watches: list[Watch],
    viewer_id: UUID,
) -> list[WatchPublic]:
    """
    Drop the watches a viewer may not see and hide the rating and notes the
    owner does not share. Returns copies, the given rows are not modified.

    Parameters:
        session (Session): Database session.
        watches (list[Watch]): Watches to filter, order is kept.
        viewer_id (UUID): ID of the viewing user.
    Returns:
        list[WatchPublic]: The visible watches, redacted for the viewer.
    """
    lookup = _OwnerLookup(session=session, viewer_id=viewer_id)
    visible: list[tuple[Watch, WatchAccess]] = []
    for watch in watches:
        access = _resolve_access(watch, lookup)
        if access.watch:
            visible.append((watch, access))

    dropped = len(watches) - len(visible)
    if dropped:
        logger.debug("Hid %s of %s watches from viewer %s", dropped, len(watches), viewer_id)

    group_ids = watch_crud.get_group_ids_for_watches(
        session=session,
        watch_ids=[watch.id for watch, _ in visible],  # type: ignore[misc]
    )
    return [
        watch_converters.to_public(
            watch,
            group_ids=group_ids.get(watch.id, []),  # type: ignore[arg-type]
            hide_rating=not access.rating,
            hide_notes=not access.notes,
        )
        for watch, access in visible
    ]
