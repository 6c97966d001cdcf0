from logging import getLogger
from uuid import UUID

from sqlmodel import Session

from app.converters import user as user_converters
from app.core.enums import GroupRole
from app.crud import group as group_crud
from app.crud import user as user_crud
from app.exceptions.base import AppError
from app.exceptions.group_exceptions import InvalidOperation
from app.exceptions.user_exceptions import UserNotFound
from app.models.group import Group
from app.models.user import PrivacySettingsUpdate, User
from app.schemas.account import (
    EligibleTransferMember,
    GroupTransferEligibility,
    PendingGroupAction,
    TransferGroupAction,
    pending_group_actions_adapter,
)
from app.schemas.user import PrivacySettingsPublic, UserPublic
from app.utils import now_utc_naive

logger = getLogger(__name__)


def _eligible_members(*, session: Session, group: Group) -> list[EligibleTransferMember]:
    return [
        EligibleTransferMember(
            user_id=user.id,
            display_name=user.display_name,
            is_premium=user.is_premium,
            is_admin=member.role == GroupRole.ADMIN,
        )
        for member, user in user_crud.get_eligible_transfer_members(session=session, group=group)
    ]


def get_created_groups_with_transfer_eligibility(
    *,
    session: Session,
    user_id: UUID,
) -> list[GroupTransferEligibility]:
    """
    List the live groups a user created, each with the members that could take it over.

    Parameters:
        session (Session): Database session.
        user_id (UUID): ID of the group creator.
    Returns:
        list[GroupTransferEligibility]: One entry per owned group.
    """
    result = []
    for group in group_crud.get_groups_created_by(session=session, user_id=user_id):
        eligible = _eligible_members(session=session, group=group)
        result.append(
            GroupTransferEligibility(
                group_id=group.id,  # type: ignore[arg-type]
                group_name=group.name,
                member_count=group_crud.count_members(session=session, group_id=group.id),  # type: ignore[arg-type]
                eligible_members=eligible,
                can_transfer=bool(eligible),
            )
        )
    return result


def _validate_group_actions(
    *,
    session: Session,
    user_id: UUID,
    group_actions: list[PendingGroupAction],
) -> None:
    owned = {
        group.id: group
        for group in group_crud.get_groups_created_by(session=session, user_id=user_id)
    }
    seen: set[int] = set()

    for action in group_actions:
        if action.group_id not in owned:
            raise InvalidOperation(f"User {user_id} is not the creator of group {action.group_id}.")
        if action.group_id in seen:
            raise InvalidOperation(f"Group {action.group_id} has more than one action.")
        seen.add(action.group_id)

        if isinstance(action, TransferGroupAction):
            eligible_ids = {
                member.user_id
                for member in _eligible_members(session=session, group=owned[action.group_id])
            }
            if action.target_user_id not in eligible_ids:
                raise InvalidOperation(
                    f"User {action.target_user_id} is not eligible to receive group ownership "
                    f"of group {action.group_id}."
                )

    missing = sorted(set(owned) - seen)  # type: ignore[type-var]
    if missing:
        raise InvalidOperation(
            f"Every created group needs a transfer or delete action, missing: {missing}."
        )


def manage_groups_before_deletion(
    *,
    session: Session,
    user_id: UUID,
    group_actions: list[PendingGroupAction],
) -> UserPublic:
    """
    Record what happens to each group a user created once their account is removed.
    Nothing is executed until the cleanup job processes the account.

    Parameters:
        session (Session): Database session.
        user_id (UUID): ID of the user leaving.
        group_actions (list[PendingGroupAction]): Exactly one transfer or delete per owned group.
    Returns:
        UserPublic: The user with the actions stored.
    Raises:
        UserNotFound: If the user does not exist.
        InvalidOperation: If an owned group has no action or more than one, a group
            is not owned by the user, or a transfer target is not eligible.
        AppError: For other unexpected errors.
    """
    user = user_crud.get_user_by_id(session=session, user_id=user_id)
    if user is None:
        raise UserNotFound(user_id)

    _validate_group_actions(session=session, user_id=user_id, group_actions=group_actions)

    try:
        user_crud.set_pending_group_actions(
            session=session,
            db_user=user,
            actions=pending_group_actions_adapter.dump_python(group_actions, mode="json"),
        )
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    logger.info("Stored %s pending group action(s) for user %s", len(group_actions), user_id)
    return user_converters.to_public(user)


def request_account_deletion(
    *,
    session: Session,
    user_id: UUID,
    group_actions: list[PendingGroupAction],
) -> UserPublic:
    """
    Store the group actions and deactivate the account in one transaction. The
    account is removed by the cleanup job once the grace period is over, unless
    the user reactivates before that.

    Raises:
        UserNotFound: If the user does not exist.
        InvalidOperation: If the group actions are invalid.
        AppError: For other unexpected errors.
    """
    user = user_crud.get_user_by_id(session=session, user_id=user_id)
    if user is None:
        raise UserNotFound(user_id)

    _validate_group_actions(session=session, user_id=user_id, group_actions=group_actions)

    try:
        user_crud.set_deactivated(session=session, db_user=user, deactivated_at=now_utc_naive())
        user_crud.set_pending_group_actions(
            session=session,
            db_user=user,
            actions=pending_group_actions_adapter.dump_python(group_actions, mode="json"),
        )
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    logger.info("User %s requested account deletion", user_id)
    return user_converters.to_public(user)


def deactivate_account(*, session: Session, user_id: UUID) -> bool:
    user = user_crud.get_user_by_id(session=session, user_id=user_id)
    if user is None:
        return False

    try:
        user_crud.set_deactivated(session=session, db_user=user, deactivated_at=now_utc_naive())
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    logger.info("User %s deactivated their account", user_id)
    return True


def reactivate_account(*, session: Session, user_id: UUID) -> bool:
    """
    Undo a deactivation. Any pending group actions are discarded.
    """
    user = user_crud.get_user_by_id(session=session, user_id=user_id)
    if user is None:
        return False

    try:
        user_crud.set_deactivated(session=session, db_user=user, deactivated_at=None)
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    logger.info("User %s reactivated their account", user_id)
    return True


def apply_pending_group_actions(*, session: Session, user: User) -> None:
    """
    Execute the stored group actions of a user. Only flushes, the caller commits.

    A transfer whose target is no longer eligible falls back to deleting the
    group. Actions for groups that are gone or no longer owned are skipped.

    Parameters:
        session (Session): Database session.
        user (User): The user whose actions to execute.
    """
    actions = pending_group_actions_adapter.validate_python(user.pending_group_actions or [])
    now = now_utc_naive()

    for action in actions:
        group = group_crud.get_group_by_id(session=session, group_id=action.group_id)
        if group is None or group.created_by_id != user.id:
            logger.warning(
                "Skipping pending action for group %s of user %s, group is gone or not owned",
                action.group_id,
                user.id,
            )
            continue

        if isinstance(action, TransferGroupAction):
            eligible_ids = {
                member.user_id for member in _eligible_members(session=session, group=group)
            }
            if action.target_user_id in eligible_ids:
                group_crud.transfer_group_ownership(
                    session=session,
                    db_group=group,
                    new_owner_id=action.target_user_id,
                )
                logger.info(
                    "Transferred group %s from %s to %s",
                    group.id,
                    user.id,
                    action.target_user_id,
                )
                continue
            logger.warning(
                "Transfer target %s of group %s is no longer eligible, deleting the group",
                action.target_user_id,
                group.id,
            )

        group_crud.soft_delete_group(session=session, db_group=group, now=now)
        logger.info("Deleted group %s of user %s", group.id, user.id)


def execute_pending_group_actions(*, session: Session, user_id: UUID) -> bool:
    """
    Execute and clear the stored group actions of a user in one transaction.

    Returns:
        bool: True if the actions were executed, False if the user does not exist.
    Raises:
        AppError: For unexpected errors.
    """
    user = user_crud.get_user_by_id(session=session, user_id=user_id)
    if user is None:
        return False

    try:
        apply_pending_group_actions(session=session, user=user)
        user_crud.set_pending_group_actions(session=session, db_user=user, actions=None)
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e
    return True


def get_privacy_settings(*, session: Session, user_id: UUID) -> PrivacySettingsPublic | None:
    user = user_crud.get_user_by_id(session=session, user_id=user_id)
    if user is None:
        return None
    return user_converters.to_privacy_settings(user)


def update_privacy_settings(
    *,
    session: Session,
    user_id: UUID,
    settings_in: PrivacySettingsUpdate,
) -> PrivacySettingsPublic | None:
    """
    Change the sharing toggles of a user. Toggles that are not given keep their value.

    Parameters:
        session (Session): Database session.
        user_id (UUID): ID of the user.
        settings_in (PrivacySettingsUpdate): The toggles to change.
    Returns:
        PrivacySettingsPublic | None: The new settings, or None if the user does not exist.
    Raises:
        AppError: For unexpected errors.
    """
    user = user_crud.get_user_by_id(session=session, user_id=user_id)
    if user is None:
        return None

    try:
        user_crud.update_privacy_settings(session=session, db_user=user, settings_in=settings_in)
        session.commit()
    except Exception as e:
        session.rollback()
        raise AppError from e

    return user_converters.to_privacy_settings(user)
