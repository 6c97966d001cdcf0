from collections.abc import Callable
from datetime import timedelta

from pytest_mock import MockerFixture
from sqlmodel import Session, select

from app.core.enums import GroupMemberAction, GroupRole
from app.crud import group as group_crud
from app.jobs.account_cleanup import run_account_cleanup
from app.models.group import Group, GroupMember, GroupMemberHistory
from app.models.user import User
from app.utils import now_utc_naive


def test_run_account_cleanup_removes_due_accounts(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
    group_member_factory: Callable[..., GroupMember],
):
    now = now_utc_naive()
    leaving = user_factory(is_premium=True)
    heir = user_factory()
    transferred = group_factory(created_by_id=leaving.id)
    joined = group_factory()
    group_member_factory(group_id=transferred.id, user_id=heir.id)
    group_member_factory(group_id=joined.id, user_id=leaving.id, role=GroupRole.ADMIN)
    leaving.is_deactivated = True
    leaving.deactivated_at = now - timedelta(days=31)
    leaving.pending_group_actions = [
        {"action": "transfer", "group_id": transferred.id, "target_user_id": str(heir.id)}
    ]
    resting = user_factory(is_deactivated=True, deactivated_at=now - timedelta(days=40))
    recent = user_factory(is_deactivated=True, deactivated_at=now - timedelta(days=2), pending_group_actions=[])
    db_transaction.flush()

    processed = run_account_cleanup(session=db_transaction, now=now)

    assert processed == [leaving.id]
    assert leaving.is_deleted
    assert leaving.deleted_at == now
    assert leaving.pending_group_actions is None
    assert not resting.is_deleted
    assert not recent.is_deleted

    assert transferred.created_by_id == heir.id
    assert not transferred.is_deleted
    assert group_crud.get_membership(session=db_transaction, group_id=joined.id, user_id=leaving.id) is None
    removal = db_transaction.exec(
        select(GroupMemberHistory).where(
            GroupMemberHistory.group_id == joined.id,
            GroupMemberHistory.user_id == leaving.id,
        )
    ).one()
    assert removal.action == GroupMemberAction.REMOVED
    assert removal.actor_id is None
    assert removal.previous_role == GroupRole.ADMIN


def test_run_account_cleanup_deletes_groups_without_action(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
):
    now = now_utc_naive()
    leaving = user_factory(
        is_deactivated=True,
        deactivated_at=now - timedelta(days=30),
        pending_group_actions=[],
    )
    forgotten = group_factory(created_by_id=leaving.id)

    assert run_account_cleanup(session=db_transaction, now=now) == [leaving.id]
    assert forgotten.is_deleted


def test_run_account_cleanup_continues_after_failure(
    *,
    mocker: MockerFixture,
    db_transaction: Session,
    user_factory: Callable[..., User],
):
    now = now_utc_naive()
    broken = user_factory(
        is_deactivated=True,
        deactivated_at=now - timedelta(days=60),
        pending_group_actions=[],
    )
    fine = user_factory(
        is_deactivated=True,
        deactivated_at=now - timedelta(days=45),
        pending_group_actions=[],
    )
    broken_id = broken.id
    db_transaction.commit()

    mock_apply = mocker.patch("app.jobs.account_cleanup.apply_pending_group_actions")

    def fail_for_broken(*, session, user):
        if user.id == broken_id:
            raise RuntimeError("lock timeout")

    mock_apply.side_effect = fail_for_broken

    processed = run_account_cleanup(session=db_transaction, now=now)

    assert processed == [fine.id]
    assert mock_apply.call_count == 2
    db_transaction.refresh(broken)
    assert not broken.is_deleted
    assert fine.is_deleted
