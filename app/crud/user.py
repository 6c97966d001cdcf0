from datetime import datetime
from typing import Any
from uuid import UUID

from sqlmodel import Session, col, select

from app.core.enums import GroupRole
from app.models.group import Group, GroupMember
from app.models.user import PrivacySettingsUpdate, User
from app.utils import now_utc_naive


def get_user_by_id(
    *,
    session: Session,
    user_id: UUID,
    include_deleted: bool = False,
) -> User | None:
    """
    Get a user by their ID.

    Parameters:
        session (Session): The database session.
        user_id (UUID): The ID of the user to retrieve.
        include_deleted (bool): Also return users whose account was removed.
    Returns:
        User | None: The user object if found, otherwise None.
    """
    user = session.get(User, user_id)
    if user is None or (user.is_deleted and not include_deleted):
        return None
    return user


def update_privacy_settings(
    *,
    session: Session,
    db_user: User,
    settings_in: PrivacySettingsUpdate,
) -> User:
    """
    Update the sharing toggles of a user. Toggles left unset or None are kept.

    Parameters:
        db_user (User): The user object to update.
        settings_in (PrivacySettingsUpdate): The toggles to change.
    Returns:
        User: The updated user object.
    """
    settings_data = {
        key: value
        for key, value in settings_in.model_dump(exclude_unset=True).items()
        if value is not None
    }
    db_user.sqlmodel_update(settings_data, update={"updated_at": now_utc_naive()})
    session.add(db_user)
    session.flush()
    return db_user


def set_deactivated(
    *,
    session: Session,
    db_user: User,
    deactivated_at: datetime | None,
) -> User:
    """
    Deactivate a user when deactivated_at is given, reactivate otherwise.
    Reactivating discards any pending group actions.
    """
    db_user.is_deactivated = deactivated_at is not None
    db_user.deactivated_at = deactivated_at
    if deactivated_at is None:
        db_user.pending_group_actions = None
    db_user.updated_at = now_utc_naive()
    session.add(db_user)
    session.flush()
    return db_user


def set_pending_group_actions(
    *,
    session: Session,
    db_user: User,
    actions: list[dict[str, Any]] | None,
) -> User:
    db_user.pending_group_actions = actions
    db_user.updated_at = now_utc_naive()
    session.add(db_user)
    session.flush()
    return db_user


def mark_deleted(*, session: Session, db_user: User, now: datetime) -> User:
    db_user.is_deleted = True
    db_user.deleted_at = now
    db_user.pending_group_actions = None
    db_user.updated_at = now
    session.add(db_user)
    session.flush()
    return db_user


def get_users_due_for_cleanup(*, session: Session, cutoff: datetime) -> list[User]:
    """
    Get deactivated users that asked for deletion and whose grace period ended.
    Users who only deactivated for a break have no pending group actions and are skipped.

    Parameters:
        session (Session): The database session.
        cutoff (datetime): Latest deactivated_at that is due.
    Returns:
        list[User]: Users to process, oldest deactivation first.
    """
    stmt = (
        select(User)
        .where(
            col(User.is_deactivated).is_(True),
            col(User.is_deleted).is_(False),
            col(User.deactivated_at).is_not(None),
            col(User.deactivated_at) <= cutoff,
            col(User.pending_group_actions).is_not(None),
        )
        .order_by(col(User.deactivated_at))
    )
    return list(session.exec(stmt).all())


def get_non_creator_group_ids(*, session: Session, user_id: UUID) -> list[int]:
    """
    Get the ids of every group, deleted or not, where the user holds a non-creator membership.
    """
    stmt = select(GroupMember.group_id).where(
        GroupMember.user_id == user_id,
        GroupMember.role != GroupRole.CREATOR,
    )
    return list(session.exec(stmt).all())


def get_eligible_transfer_members(
    *,
    session: Session,
    group: Group,
) -> list[tuple[GroupMember, User]]:
    """
    Get the members of a group that could take over ownership: everyone but the
    current creator whose account is active.

    Parameters:
        session (Session): The database session.
        group (Group): The group to inspect.
    Returns:
        list[tuple[GroupMember, User]]: Eligible memberships with their users.
    """
    stmt = (
        select(GroupMember, User)
        .join(User, col(User.id) == col(GroupMember.user_id))
        .where(
            GroupMember.group_id == group.id,
            GroupMember.user_id != group.created_by_id,
            col(User.is_deleted).is_(False),
            col(User.is_deactivated).is_(False),
        )
        .order_by(col(GroupMember.joined_at))
    )
    return [(member, user) for member, user in session.exec(stmt).all()]
