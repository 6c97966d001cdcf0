from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import exists, func
from sqlalchemy.orm import aliased
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col, select

from app.core.enums import GroupMemberAction, GroupRole
from app.models.group import Group, GroupCreate, GroupMember, GroupMemberHistory, GroupUpdate
from app.models.user import User
from app.utils import now_utc_naive


def get_group_by_id(
    *,
    session: Session,
    group_id: int,
    include_deleted: bool = False,
) -> Group | None:
    """
    Get a group by its ID.

    Parameters:
        session (Session): The database session.
        group_id (int): The ID of the group.
        include_deleted (bool): Also return soft-deleted groups.
    Returns:
        Group | None: The group if found, otherwise None.
    """
    group = session.get(Group, group_id)
    if group is None or (group.is_deleted and not include_deleted):
        return None
    return group


def create_group(
    *,
    session: Session,
    owner_id: UUID,
    group_in: GroupCreate,
) -> Group:
    """
    Insert a group row. The creator membership is added separately through
    apply_membership_transition so it gets audited.

    Raises:
        IntegrityError: If the owner does not exist.
    """
    group = Group.model_validate(group_in, update={"created_by_id": owner_id})
    session.add(group)
    session.flush()
    return group


def update_group(
    *,
    session: Session,
    db_group: Group,
    group_in: GroupUpdate,
) -> Group:
    # name cannot be cleared, an explicit None description can
    group_data = {
        key: value
        for key, value in group_in.model_dump(exclude_unset=True).items()
        if value is not None or key != "name"
    }
    db_group.sqlmodel_update(group_data, update={"updated_at": now_utc_naive()})
    session.flush()
    return db_group


def soft_delete_group(
    *,
    session: Session,
    db_group: Group,
    now: datetime,
) -> Group:
    db_group.is_deleted = True
    db_group.deleted_at = now
    db_group.updated_at = now
    session.flush()
    return db_group


def get_groups_for_user(*, session: Session, user_id: UUID) -> list[Group]:
    """
    Get the non-deleted groups a user belongs to, newest first.
    """
    stmt = (
        select(Group)
        .join(GroupMember, col(GroupMember.group_id) == col(Group.id))
        .where(
            GroupMember.user_id == user_id,
            col(Group.is_deleted).is_(False),
        )
        .order_by(col(Group.created_at).desc(), col(Group.id).desc())
    )
    return list(session.exec(stmt).all())


def get_group_ids_for_user(*, session: Session, user_id: UUID) -> list[int]:
    stmt = (
        select(GroupMember.group_id)
        .join(Group, col(Group.id) == col(GroupMember.group_id))
        .where(
            GroupMember.user_id == user_id,
            col(Group.is_deleted).is_(False),
        )
    )
    return list(session.exec(stmt).all())


def get_groups_created_by(*, session: Session, user_id: UUID) -> list[Group]:
    stmt = (
        select(Group)
        .where(
            Group.created_by_id == user_id,
            col(Group.is_deleted).is_(False),
        )
        .order_by(col(Group.id))
    )
    return list(session.exec(stmt).all())


def count_created_groups(*, session: Session, user_id: UUID) -> int:
    stmt = select(func.count()).select_from(Group).where(
        Group.created_by_id == user_id,
        col(Group.is_deleted).is_(False),
    )
    return session.exec(stmt).one()


def count_joined_groups(*, session: Session, user_id: UUID) -> int:
    """
    Count the non-deleted groups a user is in without being their creator.
    """
    stmt = (
        select(func.count())
        .select_from(GroupMember)
        .join(Group, col(Group.id) == col(GroupMember.group_id))
        .where(
            GroupMember.user_id == user_id,
            GroupMember.role != GroupRole.CREATOR,
            col(Group.is_deleted).is_(False),
        )
    )
    return session.exec(stmt).one()


def get_membership(
    *,
    session: Session,
    group_id: int,
    user_id: UUID,
) -> GroupMember | None:
    return session.get(GroupMember, (group_id, user_id))


def is_member(*, session: Session, group_id: int, user_id: UUID) -> bool:
    """
    Check if a user is a member of a non-deleted group.
    """
    stmt = (
        select(GroupMember.user_id)
        .join(Group, col(Group.id) == col(GroupMember.group_id))
        .where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
            col(Group.is_deleted).is_(False),
        )
        .limit(1)
    )
    return session.exec(stmt).first() is not None


def get_members_with_users(
    *,
    session: Session,
    group_id: int,
) -> list[tuple[GroupMember, User]]:
    stmt = (
        select(GroupMember, User)
        .join(User, col(User.id) == col(GroupMember.user_id))
        .where(GroupMember.group_id == group_id)
        .order_by(col(GroupMember.joined_at), col(User.display_name))
    )
    return [(member, user) for member, user in session.exec(stmt).all()]


def count_members(*, session: Session, group_id: int) -> int:
    stmt = select(func.count()).select_from(GroupMember).where(
        GroupMember.group_id == group_id
    )
    return session.exec(stmt).one()


def _common_groups_stmt(*, user_id_value: Any, other_user_id_value: Any):
    # Self-join on the (group_id, user_id) key, restricted to live groups
    membership = aliased(GroupMember)
    other_membership = aliased(GroupMember)
    return (
        select(membership.group_id)
        .join(
            other_membership,
            other_membership.group_id == membership.group_id,
        )
        .join(Group, col(Group.id) == membership.group_id)
        .where(
            membership.user_id == user_id_value,
            other_membership.user_id == other_user_id_value,
            col(Group.is_deleted).is_(False),
        )
    )


def shares_group_with(
    *,
    user_id_value: Any,
    other_user_id_value: Any,
) -> ColumnElement[bool]:
    """
    EXISTS clause that is true when both users hold a membership in at least one
    common non-deleted group. Accepts literal ids or correlated columns.
    """
    return exists(
        _common_groups_stmt(
            user_id_value=user_id_value,
            other_user_id_value=other_user_id_value,
        )
    )


def are_users_in_same_group(*, session: Session, user_id: UUID, other_user_id: UUID) -> bool:
    """
    Check if two users share at least one non-deleted group.

    Parameters:
        session (Session): The database session.
        user_id (UUID): The first user.
        other_user_id (UUID): The second user.
    Returns:
        bool: True if a common group exists, otherwise False.
    """
    stmt = _common_groups_stmt(
        user_id_value=user_id,
        other_user_id_value=other_user_id,
    ).limit(1)
    return session.exec(stmt).first() is not None


def apply_membership_transition(
    *,
    session: Session,
    group_id: int,
    user_id: UUID,
    action: GroupMemberAction,
    actor_id: UUID | None,
    new_role: GroupRole | None = None,
) -> GroupMember:
    """
    Apply a membership change and append its audit row in the same flush.
    Every write to GroupMember goes through here.

    Parameters:
        session (Session): The database session.
        group_id (int): The group whose membership changes.
        user_id (UUID): The member affected by the change.
        action (GroupMemberAction): ADDED inserts, REMOVED/LEFT delete, ROLE_CHANGED updates.
        actor_id (UUID | None): Who made the change, None for the cleanup job.
        new_role (GroupRole | None): Role for ADDED and ROLE_CHANGED.
    Returns:
        GroupMember: The inserted, updated or deleted membership.
    Raises:
        IntegrityError: If an ADDED membership already exists.
        NoResultFound: If the membership to remove or update does not exist.
        ValueError: If new_role is missing for ADDED or ROLE_CHANGED.
    """
    previous_role: GroupRole | None = None

    if action == GroupMemberAction.ADDED:
        if new_role is None:
            raise ValueError("new_role is required when adding a member")
        membership = GroupMember(group_id=group_id, user_id=user_id, role=new_role)
        session.add(membership)
    else:
        membership = session.exec(
            select(GroupMember).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        ).one()
        previous_role = membership.role

        if action == GroupMemberAction.ROLE_CHANGED:
            if new_role is None:
                raise ValueError("new_role is required when changing a role")
            membership.role = new_role
            session.add(membership)
        else:
            session.delete(membership)

    session.add(
        GroupMemberHistory(
            group_id=group_id,
            user_id=user_id,
            action=action,
            actor_id=actor_id,
            previous_role=previous_role,
            new_role=new_role if action != GroupMemberAction.REMOVED else None,
        )
    )
    session.flush()
    return membership


def transfer_group_ownership(
    *,
    session: Session,
    db_group: Group,
    new_owner_id: UUID,
) -> Group:
    """
    Promote new_owner_id to creator and drop the previous creator's membership.
    Both transitions are audited with no actor.

    Raises:
        NoResultFound: If either user is not a member of the group.
    """
    previous_owner_id = db_group.created_by_id

    apply_membership_transition(
        session=session,
        group_id=db_group.id,  # type: ignore[arg-type]
        user_id=new_owner_id,
        action=GroupMemberAction.ROLE_CHANGED,
        actor_id=None,
        new_role=GroupRole.CREATOR,
    )
    db_group.created_by_id = new_owner_id
    db_group.updated_at = now_utc_naive()
    session.add(db_group)

    apply_membership_transition(
        session=session,
        group_id=db_group.id,  # type: ignore[arg-type]
        user_id=previous_owner_id,
        action=GroupMemberAction.REMOVED,
        actor_id=None,
    )
    return db_group


def get_history(*, session: Session, group_id: int) -> list[GroupMemberHistory]:
    stmt = (
        select(GroupMemberHistory)
        .where(GroupMemberHistory.group_id == group_id)
        .order_by(col(GroupMemberHistory.timestamp), col(GroupMemberHistory.id))
    )
    return list(session.exec(stmt).all())
