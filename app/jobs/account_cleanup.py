from datetime import datetime, timedelta
from logging import getLogger
from uuid import UUID

from sqlmodel import Session

from app.core.config import settings
from app.core.enums import GroupMemberAction
from app.crud import group as group_crud
from app.crud import user as user_crud
from app.models.user import User
from app.services.account import apply_pending_group_actions
from app.utils import now_utc_naive

logger = getLogger(__name__)


def _remove_account(*, session: Session, user: User, now: datetime) -> None:
    apply_pending_group_actions(session=session, user=user)

    for group_id in user_crud.get_non_creator_group_ids(session=session, user_id=user.id):
        group_crud.apply_membership_transition(
            session=session,
            group_id=group_id,
            user_id=user.id,
            action=GroupMemberAction.REMOVED,
            actor_id=None,
        )

    # Groups created after the actions were stored have no action, they go too
    for group in group_crud.get_groups_created_by(session=session, user_id=user.id):
        logger.warning("Group %s of user %s had no pending action, deleting it", group.id, user.id)
        group_crud.soft_delete_group(session=session, db_group=group, now=now)

    user_crud.mark_deleted(session=session, db_user=user, now=now)


def run_account_cleanup(*, session: Session, now: datetime | None = None) -> list[UUID]:
    """
    Remove the accounts whose deletion grace period is over.

    For every deactivated user with stored group actions and a deactivation at
    least ACCOUNT_DELETION_GRACE_DAYS old: execute the group actions, drop the
    remaining non-creator memberships, mark the user deleted. Every user is
    committed on their own, a failure is rolled back and the job moves on.

    Parameters:
        session (Session): Database session.
        now (datetime | None): Reference time, defaults to now in UTC.
    Returns:
        list[UUID]: IDs of the users that were removed.
    """
    now = now or now_utc_naive()
    cutoff = now - timedelta(days=settings.ACCOUNT_DELETION_GRACE_DAYS)
    users = user_crud.get_users_due_for_cleanup(session=session, cutoff=cutoff)
    logger.info("Found %s account(s) scheduled for deletion", len(users))

    processed: list[UUID] = []
    for user in users:
        user_id = user.id
        try:
            _remove_account(session=session, user=user, now=now)
            session.commit()
        except Exception:
            session.rollback()
            logger.exception("Failed to remove account of user %s", user_id)
            continue
        logger.info("Removed account of user %s", user_id)
        processed.append(user_id)

    return processed
