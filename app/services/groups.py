from logging import getLogger
from uuid import UUID

from psycopg.errors import ForeignKeyViolation, UniqueViolation
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from app.converters import group as group_converters
from app.core.config import settings
from app.core.enums import GroupMemberAction, GroupRole
from app.crud import group as group_crud
from app.crud import user as user_crud
from app.exceptions.base import AppError
from app.exceptions.group_exceptions import DuplicateMember, InvalidOperation, QuotaExceeded
from app.exceptions.user_exceptions import UserNotFound
from app.models.group import GroupCreate, GroupMember, GroupUpdate
from app.schemas.group import (
    GroupMemberAdd,
    GroupMemberHistoryPublic,
    GroupMemberPublic,
    GroupMemberRoleUpdate,
    GroupPublic,
)
from app.utils import now_utc_naive

logger = getLogger(__name__)

MANAGER_ROLES = (GroupRole.CREATOR, GroupRole.ADMIN)


def _get_live_membership(
    *,
    session: Session,
    group_id: int,
    user_id: UUID,
) -> GroupMember | None:
    if group_crud.get_group_by_id(session=session, group_id=group_id) is None:
        return None
    return group_crud.get_membership(session=session, group_id=group_id, user_id=user_id)


def _is_manager(membership: GroupMember | None) -> bool:
    return membership is not None and membership.role in MANAGER_ROLES


def can_user_create_group(*, session: Session, user_id: UUID) -> bool:
    """
    Check if a user may create another group.
    Premium users are unlimited, free users may own a limited number of live groups.

    Parameters:
        session (Session): Database session.
        user_id (UUID): ID of the user.
    Returns:
        bool: True if the user may create a group, False otherwise or if the user does not exist.
    """
    user = user_crud.get_user_by_id(session=session, user_id=user_id)
    if user is None:
        return False
    if user.is_premium:
        return True
    owned = group_crud.count_created_groups(session=session, user_id=user_id)
    return owned < settings.FREE_TIER_MAX_CREATED_GROUPS


def can_user_join_group(*, session: Session, user_id: UUID) -> bool:
    """
    Check if a user may join another group they do not own.

    Parameters:
        session (Session): Database session.
        user_id (UUID): ID of the user.
    Returns:
        bool: True if the user may be added to a group, False otherwise or if the user does not exist.
    """
    user = user_crud.get_user_by_id(session=session, user_id=user_id)
    if user is None:
        return False
    if user.is_premium:
        return True
    joined = group_crud.count_joined_groups(session=session, user_id=user_id)
    return joined < settings.FREE_TIER_MAX_JOINED_GROUPS


def create_group(
    *,
    session: Session,
    owner_id: UUID,
    group_in: GroupCreate,
) -> GroupPublic:
    """
    Create a group owned by a user. The owner becomes its creator member.

    Parameters:
        session (Session): Database session.
        owner_id (UUID): ID of the user creating the group.
        group_in (GroupCreate): Name and description of the group.
    Returns:
        GroupPublic: The created group with its single member.
    Raises:
        UserNotFound: If the owner does not exist.
        QuotaExceeded: If a free user already owns the maximum number of groups.
        AppError: For other unexpected errors.
    """
    if user_crud.get_user_by_id(session=session, user_id=owner_id) is None:
        raise UserNotFound(owner_id)
    if not can_user_create_group(session=session, user_id=owner_id):
        raise QuotaExceeded(
            owner_id,
            f"free users can own at most {settings.FREE_TIER_MAX_CREATED_GROUPS} group(s)",
        )

    try:
        group = group_crud.create_group(
            session=session,
            owner_id=owner_id,
            group_in=group_in,
        )
        group_crud.apply_membership_transition(
            session=session,
            group_id=group.id,  # type: ignore[arg-type]
            user_id=owner_id,
            action=GroupMemberAction.ADDED,
            actor_id=owner_id,
            new_role=GroupRole.CREATOR,
        )
        session.commit()
    except IntegrityError as e:
        session.rollback()
        if isinstance(e.orig, ForeignKeyViolation):
            raise UserNotFound(owner_id) from e
        raise AppError from e
    except Exception as e:
        session.rollback()
        raise AppError from e

    logger.info("User %s created group %s", owner_id, group.id)
    return group_converters.to_public(group, session=session)


def get_group(
    *,
    session: Session,
    group_id: int,
    requester_id: UUID,
) -> GroupPublic | None:
    group = group_crud.get_group_by_id(session=session, group_id=group_id)
    if group is None:
        return None
    if not group_crud.is_member(session=session, group_id=group_id, user_id=requester_id):
        logger.warning("User %s requested group %s without being a member", requester_id, group_id)
        return None
    return group_converters.to_public(group, session=session)


def get_user_groups(*, session: Session, user_id: UUID) -> list[GroupPublic]:
    """
    Get the live groups a user belongs to, newest first.
    """
    groups = group_crud.get_groups_for_user(session=session, user_id=user_id)
    return [group_converters.to_public(group, session=session) for group in groups]


def get_group_members(
    *,
    session: Session,
    group_id: int,
    requester_id: UUID,
) -> list[GroupMemberPublic]:
    if not group_crud.is_member(session=session, group_id=group_id, user_id=requester_id):
        logger.warning(
            "User %s requested members of group %s without being a member",
            requester_id,
            group_id,
        )
        return []
    return [
        group_converters.to_member_public(member, user)
        for member, user in group_crud.get_members_with_users(
            session=session, group_id=group_id
        )
    ]


def get_group_history(
    *,
    session: Session,
    group_id: int,
    requester_id: UUID,
) -> list[GroupMemberHistoryPublic]:
    """
    Get the membership audit trail of a group, oldest first. Creator and admins only.
    """
    membership = _get_live_membership(session=session, group_id=group_id, user_id=requester_id)
    if not _is_manager(membership):
        logger.warning(
            "User %s requested history of group %s without permission",
            requester_id,
            group_id,
        )
        return []
    return [
        group_converters.to_history_public(entry)
        for entry in group_crud.get_history(session=session, group_id=group_id)
    ]


def update_group(
    *,
    session: Session,
    group_id: int,
    requester_id: UUID,
    group_in: GroupUpdate,
) -> GroupPublic | None:
    """
    Update the name and description of a group. Creator and admins only.

    Parameters:
        session (Session): Database session.
        group_id (int): ID of the group to update.
        requester_id (UUID): ID of the user making the change.
        group_in (GroupUpdate): The new group data.
    Returns:
        GroupPublic | None: The updated group, or None if it does not exist or the requester may not edit it.
    Raises:
        AppError: For unexpected errors.
    """
    group = group_crud.get_group_by_id(session=session, group_id=group_id)
    if group is None:
        return None
    membership = group_crud.get_membership(session=session, group_id=group_id, user_id=requester_id)
    if not _is_manager(membership):
        logger.warning("User %s attempted to update group %s without permission", requester_id, group_id)
        return None

    try:
        group_crud.update_group(session=session, db_group=group, group_in=group_in)
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    return group_converters.to_public(group, session=session)


def delete_group(
    *,
    session: Session,
    group_id: int,
    requester_id: UUID,
) -> bool:
    """
    Soft-delete a group. Only its creator may do this.

    Returns:
        bool: True if the group was deleted, False if it does not exist or the requester is not the creator.
    Raises:
        AppError: For unexpected errors.
    """
    group = group_crud.get_group_by_id(session=session, group_id=group_id)
    if group is None:
        return False
    membership = group_crud.get_membership(session=session, group_id=group_id, user_id=requester_id)
    if membership is None or membership.role != GroupRole.CREATOR:
        logger.warning("User %s attempted to delete group %s without being its creator", requester_id, group_id)
        return False

    try:
        group_crud.soft_delete_group(session=session, db_group=group, now=now_utc_naive())
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    logger.info("Group %s deleted by %s", group_id, requester_id)
    return True


def add_member(
    *,
    session: Session,
    group_id: int,
    requester_id: UUID,
    member_in: GroupMemberAdd,
) -> GroupMemberPublic | None:
    """
    Add a user to a group. Creator and admins only.

    Parameters:
        session (Session): Database session.
        group_id (int): ID of the group.
        requester_id (UUID): ID of the user adding the member.
        member_in (GroupMemberAdd): The user to add and their role.
    Returns:
        GroupMemberPublic | None: The new membership, or None if the group does not exist or the requester may not add members.
    Raises:
        InvalidOperation: If the creator role is requested.
        UserNotFound: If the user to add does not exist.
        DuplicateMember: If the user is already a member.
        QuotaExceeded: If a free user already joined the maximum number of groups.
        AppError: For other unexpected errors.
    """
    membership = _get_live_membership(session=session, group_id=group_id, user_id=requester_id)
    if not _is_manager(membership):
        logger.warning("User %s attempted to add a member to group %s without permission", requester_id, group_id)
        return None

    if member_in.role == GroupRole.CREATOR:
        raise InvalidOperation("A group has exactly one creator, the role cannot be assigned.")

    target = user_crud.get_user_by_id(session=session, user_id=member_in.user_id)
    if target is None:
        raise UserNotFound(member_in.user_id)

    if group_crud.get_membership(session=session, group_id=group_id, user_id=member_in.user_id) is not None:
        raise DuplicateMember(group_id, member_in.user_id)

    if not can_user_join_group(session=session, user_id=member_in.user_id):
        raise QuotaExceeded(
            member_in.user_id,
            f"free users can join at most {settings.FREE_TIER_MAX_JOINED_GROUPS} group(s) they do not own",
        )

    try:
        member = group_crud.apply_membership_transition(
            session=session,
            group_id=group_id,
            user_id=member_in.user_id,
            action=GroupMemberAction.ADDED,
            actor_id=requester_id,
            new_role=member_in.role,
        )
        session.commit()
    except IntegrityError as e:
        session.rollback()
        if isinstance(e.orig, UniqueViolation):
            raise DuplicateMember(group_id, member_in.user_id) from e
        elif isinstance(e.orig, ForeignKeyViolation):
            raise UserNotFound(member_in.user_id) from e
        else:
            raise AppError from e
    except Exception as e:
        session.rollback()
        raise AppError from e

    logger.info("User %s added %s to group %s as %s", requester_id, member_in.user_id, group_id, member_in.role.value)
    return group_converters.to_member_public(member, target)


def remove_member(
    *,
    session: Session,
    group_id: int,
    member_user_id: UUID,
    requester_id: UUID,
) -> bool:
    """
    Remove a member from a group, or leave it when the requester removes themself.
    The creator cannot be removed. Removing someone else needs the creator or admin role.

    Parameters:
        session (Session): Database session.
        group_id (int): ID of the group.
        member_user_id (UUID): ID of the member to remove.
        requester_id (UUID): ID of the user making the request.
    Returns:
        bool: True if the membership was removed, False if it does not exist or the requester may not remove it.
    Raises:
        InvalidOperation: If the member to remove is the creator.
        AppError: For other unexpected errors.
    """
    member = _get_live_membership(session=session, group_id=group_id, user_id=member_user_id)
    if member is None:
        return False

    if member.role == GroupRole.CREATOR:
        raise InvalidOperation("The group creator cannot be removed.")

    is_self_removal = member_user_id == requester_id
    if not is_self_removal:
        requester = group_crud.get_membership(session=session, group_id=group_id, user_id=requester_id)
        if not _is_manager(requester):
            logger.warning(
                "User %s attempted to remove %s from group %s without permission",
                requester_id,
                member_user_id,
                group_id,
            )
            return False

    action = GroupMemberAction.LEFT if is_self_removal else GroupMemberAction.REMOVED
    try:
        group_crud.apply_membership_transition(
            session=session,
            group_id=group_id,
            user_id=member_user_id,
            action=action,
            actor_id=requester_id,
        )
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    logger.info("Member %s %s group %s (actor %s)", member_user_id, action.value, group_id, requester_id)
    return True


def update_member_role(
    *,
    session: Session,
    group_id: int,
    member_user_id: UUID,
    requester_id: UUID,
    role_in: GroupMemberRoleUpdate,
) -> GroupMemberPublic | None:
    """
    Change the role of a member. Creator and admins only.

    Parameters:
        session (Session): Database session.
        group_id (int): ID of the group.
        member_user_id (UUID): ID of the member whose role changes.
        requester_id (UUID): ID of the user making the change.
        role_in (GroupMemberRoleUpdate): The new role.
    Returns:
        GroupMemberPublic | None: The updated membership, or None if it does not exist or the requester may not change it.
    Raises:
        InvalidOperation: If the member is the creator or the creator role is requested.
        AppError: For other unexpected errors.
    """
    member = _get_live_membership(session=session, group_id=group_id, user_id=member_user_id)
    if member is None:
        return None

    if member.role == GroupRole.CREATOR:
        raise InvalidOperation("The role of the group creator cannot be changed.")
    if role_in.role == GroupRole.CREATOR:
        raise InvalidOperation("A group has exactly one creator, the role cannot be assigned.")

    requester = group_crud.get_membership(session=session, group_id=group_id, user_id=requester_id)
    if not _is_manager(requester):
        logger.warning(
            "User %s attempted to change the role of %s in group %s without permission",
            requester_id,
            member_user_id,
            group_id,
        )
        return None

    try:
        member = group_crud.apply_membership_transition(
            session=session,
            group_id=group_id,
            user_id=member_user_id,
            action=GroupMemberAction.ROLE_CHANGED,
            actor_id=requester_id,
            new_role=role_in.role,
        )
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    user = user_crud.get_user_by_id(session=session, user_id=member_user_id, include_deleted=True)
    return group_converters.to_member_public(member, user)
