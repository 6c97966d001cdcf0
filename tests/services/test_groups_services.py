from collections.abc import Callable
from uuid import uuid4

import pytest
from psycopg.errors import ForeignKeyViolation, UniqueViolation
from pytest_mock import MockerFixture
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.enums import GroupMemberAction, GroupRole
from app.exceptions.base import AppError
from app.exceptions.group_exceptions import DuplicateMember, InvalidOperation, QuotaExceeded
from app.exceptions.user_exceptions import UserNotFound
from app.models.group import Group, GroupCreate, GroupMember, GroupMemberHistory, GroupUpdate
from app.models.user import User
from app.schemas.group import GroupMemberAdd, GroupMemberRoleUpdate
from app.services import groups as groups_services


def _creators(session: Session, group_id: int) -> list[GroupMember]:
    return list(
        session.exec(
            select(GroupMember).where(
                GroupMember.group_id == group_id,
                GroupMember.role == GroupRole.CREATOR,
            )
        ).all()
    )


def test_create_group_success(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
):
    owner = user_factory()

    group = groups_services.create_group(
        session=db_transaction,
        owner_id=owner.id,
        group_in=GroupCreate(name="Film club", description="Sunday nights"),
    )

    assert group.name == "Film club"
    assert group.created_by_id == owner.id
    assert group.member_count == 1
    assert group.members[0].user_id == owner.id
    assert group.members[0].role == GroupRole.CREATOR
    assert [creator.user_id for creator in _creators(db_transaction, group.id)] == [owner.id]

    history = db_transaction.exec(select(GroupMemberHistory)).all()
    assert len(history) == 1
    assert history[0].action == GroupMemberAction.ADDED
    assert history[0].actor_id == owner.id
    assert history[0].new_role == GroupRole.CREATOR


def test_create_group_unknown_owner(
    *,
    db_transaction: Session,
):
    with pytest.raises(UserNotFound):
        groups_services.create_group(
            session=db_transaction,
            owner_id=uuid4(),
            group_in=GroupCreate(name="Nobody's"),
        )


def test_free_tier_quota_example(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
):
    alice = user_factory()
    bob = user_factory()
    carol = user_factory(is_premium=True)

    g1 = groups_services.create_group(
        session=db_transaction, owner_id=alice.id, group_in=GroupCreate(name="G1")
    )
    with pytest.raises(QuotaExceeded):
        groups_services.create_group(
            session=db_transaction, owner_id=alice.id, group_in=GroupCreate(name="G2")
        )

    added = groups_services.add_member(
        session=db_transaction,
        group_id=g1.id,
        requester_id=alice.id,
        member_in=GroupMemberAdd(user_id=bob.id),
    )
    assert added is not None
    assert added.role == GroupRole.MEMBER

    g2 = groups_services.create_group(
        session=db_transaction, owner_id=carol.id, group_in=GroupCreate(name="G2")
    )
    with pytest.raises(QuotaExceeded):
        groups_services.add_member(
            session=db_transaction,
            group_id=g2.id,
            requester_id=carol.id,
            member_in=GroupMemberAdd(user_id=bob.id),
        )


def test_premium_users_have_no_quota(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
):
    premium = user_factory(is_premium=True)
    group_factory(created_by_id=premium.id)

    assert groups_services.can_user_create_group(session=db_transaction, user_id=premium.id)
    assert groups_services.can_user_join_group(session=db_transaction, user_id=premium.id)
    assert not groups_services.can_user_create_group(session=db_transaction, user_id=uuid4())


def test_add_member_requires_manager_role(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
    group_member_factory: Callable[..., GroupMember],
):
    group = group_factory()
    member = user_factory()
    newcomer = user_factory()
    group_member_factory(group_id=group.id, user_id=member.id)

    result = groups_services.add_member(
        session=db_transaction,
        group_id=group.id,
        requester_id=member.id,
        member_in=GroupMemberAdd(user_id=newcomer.id),
    )

    assert result is None
    assert db_transaction.exec(select(GroupMemberHistory)).all() == []


def test_admin_can_add_member(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
    group_member_factory: Callable[..., GroupMember],
):
    group = group_factory()
    admin = user_factory()
    newcomer = user_factory()
    group_member_factory(group_id=group.id, user_id=admin.id, role=GroupRole.ADMIN)

    result = groups_services.add_member(
        session=db_transaction,
        group_id=group.id,
        requester_id=admin.id,
        member_in=GroupMemberAdd(user_id=newcomer.id, role=GroupRole.ADMIN),
    )

    assert result is not None
    assert result.role == GroupRole.ADMIN
    assert result.user is not None
    history = db_transaction.exec(select(GroupMemberHistory)).all()
    assert [(entry.user_id, entry.actor_id, entry.new_role) for entry in history] == [
        (newcomer.id, admin.id, GroupRole.ADMIN)
    ]


def test_add_member_duplicate(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
    group_member_factory: Callable[..., GroupMember],
):
    group = group_factory()
    member = user_factory()
    group_member_factory(group_id=group.id, user_id=member.id)

    with pytest.raises(DuplicateMember):
        groups_services.add_member(
            session=db_transaction,
            group_id=group.id,
            requester_id=group.created_by_id,
            member_in=GroupMemberAdd(user_id=member.id),
        )


def test_add_member_rejects_creator_role_and_unknown_user(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
):
    group = group_factory()
    newcomer = user_factory()

    with pytest.raises(InvalidOperation):
        groups_services.add_member(
            session=db_transaction,
            group_id=group.id,
            requester_id=group.created_by_id,
            member_in=GroupMemberAdd(user_id=newcomer.id, role=GroupRole.CREATOR),
        )
    with pytest.raises(UserNotFound):
        groups_services.add_member(
            session=db_transaction,
            group_id=group.id,
            requester_id=group.created_by_id,
            member_in=GroupMemberAdd(user_id=uuid4()),
        )


def test_add_member_concurrent_duplicate_maps_to_duplicate_member(
    mocker: MockerFixture,
):
    group_id = 7
    requester_id = uuid4()
    member_in = GroupMemberAdd(user_id=uuid4())

    mocker.patch("app.crud.group.get_group_by_id")
    mock_get_membership = mocker.patch("app.crud.group.get_membership")
    mock_get_membership.side_effect = [mocker.MagicMock(role=GroupRole.CREATOR), None]
    mocker.patch("app.crud.user.get_user_by_id")
    mocker.patch("app.services.groups.can_user_join_group", return_value=True)
    mock_transition = mocker.patch("app.crud.group.apply_membership_transition")
    mock_transition.side_effect = IntegrityError(
        statement="Integrity error",
        orig=UniqueViolation("Membership already exists"),
        params=None,
    )
    mock_session = mocker.MagicMock()

    with pytest.raises(DuplicateMember) as exc_info:
        groups_services.add_member(
            session=mock_session,
            group_id=group_id,
            requester_id=requester_id,
            member_in=member_in,
        )

    assert (
        str(exc_info.value)
        == f"User with id {member_in.user_id} is already a member of group {group_id}."
    )
    mock_session.rollback.assert_called_once()
    mock_session.commit.assert_not_called()


def test_add_member_foreign_key_violation_maps_to_user_not_found(
    mocker: MockerFixture,
):
    member_in = GroupMemberAdd(user_id=uuid4())

    mocker.patch("app.crud.group.get_group_by_id")
    mock_get_membership = mocker.patch("app.crud.group.get_membership")
    mock_get_membership.side_effect = [mocker.MagicMock(role=GroupRole.ADMIN), None]
    mocker.patch("app.crud.user.get_user_by_id")
    mocker.patch("app.services.groups.can_user_join_group", return_value=True)
    mock_transition = mocker.patch("app.crud.group.apply_membership_transition")
    mock_transition.side_effect = IntegrityError(
        statement="Integrity error",
        orig=ForeignKeyViolation("User vanished"),
        params=None,
    )
    mock_session = mocker.MagicMock()

    with pytest.raises(UserNotFound):
        groups_services.add_member(
            session=mock_session,
            group_id=1,
            requester_id=uuid4(),
            member_in=member_in,
        )

    mock_session.rollback.assert_called_once()


def test_create_group_unexpected_error_rolls_back(
    mocker: MockerFixture,
):
    owner_id = uuid4()
    mocker.patch("app.crud.user.get_user_by_id")
    mocker.patch("app.services.groups.can_user_create_group", return_value=True)
    mocker.patch("app.crud.group.create_group")
    mock_transition = mocker.patch("app.crud.group.apply_membership_transition")
    mock_transition.side_effect = RuntimeError("connection lost")
    mock_session = mocker.MagicMock()

    with pytest.raises(AppError) as exc_info:
        groups_services.create_group(
            session=mock_session,
            owner_id=owner_id,
            group_in=GroupCreate(name="Doomed"),
        )

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    mock_session.rollback.assert_called_once()
    mock_session.commit.assert_not_called()


def test_remove_member_by_creator_logs_removed(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
    group_member_factory: Callable[..., GroupMember],
):
    group = group_factory()
    member = user_factory()
    group_member_factory(group_id=group.id, user_id=member.id)

    removed = groups_services.remove_member(
        session=db_transaction,
        group_id=group.id,
        member_user_id=member.id,
        requester_id=group.created_by_id,
    )

    assert removed
    entry = db_transaction.exec(select(GroupMemberHistory)).one()
    assert entry.action == GroupMemberAction.REMOVED
    assert entry.actor_id == group.created_by_id
    assert entry.previous_role == GroupRole.MEMBER


def test_remove_member_self_removal_logs_left(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
    group_member_factory: Callable[..., GroupMember],
):
    group = group_factory()
    member = user_factory()
    group_member_factory(group_id=group.id, user_id=member.id)

    assert groups_services.remove_member(
        session=db_transaction,
        group_id=group.id,
        member_user_id=member.id,
        requester_id=member.id,
    )

    entry = db_transaction.exec(select(GroupMemberHistory)).one()
    assert entry.action == GroupMemberAction.LEFT
    assert entry.actor_id == member.id


def test_remove_member_cannot_remove_creator(
    *,
    db_transaction: Session,
    group_factory: Callable[..., Group],
):
    group = group_factory()

    with pytest.raises(InvalidOperation) as exc_info:
        groups_services.remove_member(
            session=db_transaction,
            group_id=group.id,
            member_user_id=group.created_by_id,
            requester_id=group.created_by_id,
        )

    assert "creator cannot be removed" in str(exc_info.value)
    assert len(_creators(db_transaction, group.id)) == 1


def test_remove_member_plain_member_cannot_remove_others(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
    group_member_factory: Callable[..., GroupMember],
):
    group = group_factory()
    member = user_factory()
    other = user_factory()
    group_member_factory(group_id=group.id, user_id=member.id)
    group_member_factory(group_id=group.id, user_id=other.id)

    assert not groups_services.remove_member(
        session=db_transaction,
        group_id=group.id,
        member_user_id=other.id,
        requester_id=member.id,
    )
    assert db_transaction.exec(select(GroupMemberHistory)).all() == []


def test_update_member_role(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
    group_member_factory: Callable[..., GroupMember],
):
    group = group_factory()
    member = user_factory()
    group_member_factory(group_id=group.id, user_id=member.id)

    updated = groups_services.update_member_role(
        session=db_transaction,
        group_id=group.id,
        member_user_id=member.id,
        requester_id=group.created_by_id,
        role_in=GroupMemberRoleUpdate(role=GroupRole.ADMIN),
    )

    assert updated is not None
    assert updated.role == GroupRole.ADMIN
    entry = db_transaction.exec(select(GroupMemberHistory)).one()
    assert (entry.previous_role, entry.new_role) == (GroupRole.MEMBER, GroupRole.ADMIN)


def test_update_member_role_creator_is_immutable(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
    group_member_factory: Callable[..., GroupMember],
):
    group = group_factory()
    admin = user_factory()
    group_member_factory(group_id=group.id, user_id=admin.id, role=GroupRole.ADMIN)

    with pytest.raises(InvalidOperation):
        groups_services.update_member_role(
            session=db_transaction,
            group_id=group.id,
            member_user_id=group.created_by_id,
            requester_id=admin.id,
            role_in=GroupMemberRoleUpdate(role=GroupRole.MEMBER),
        )
    with pytest.raises(InvalidOperation):
        groups_services.update_member_role(
            session=db_transaction,
            group_id=group.id,
            member_user_id=admin.id,
            requester_id=group.created_by_id,
            role_in=GroupMemberRoleUpdate(role=GroupRole.CREATOR),
        )
    assert len(_creators(db_transaction, group.id)) == 1


def test_update_and_delete_group_permissions(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
    group_member_factory: Callable[..., GroupMember],
):
    group = group_factory(name="Old name")
    admin = user_factory()
    group_member_factory(group_id=group.id, user_id=admin.id, role=GroupRole.ADMIN)

    updated = groups_services.update_group(
        session=db_transaction,
        group_id=group.id,
        requester_id=admin.id,
        group_in=GroupUpdate(name="New name"),
    )
    assert updated is not None
    assert updated.name == "New name"

    assert not groups_services.delete_group(
        session=db_transaction, group_id=group.id, requester_id=admin.id
    )
    assert groups_services.delete_group(
        session=db_transaction, group_id=group.id, requester_id=group.created_by_id
    )
    assert groups_services.get_group(
        session=db_transaction, group_id=group.id, requester_id=group.created_by_id
    ) is None


def test_group_reads_for_non_members(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
    group_factory: Callable[..., Group],
):
    group = group_factory()
    outsider = user_factory()

    assert groups_services.get_group(session=db_transaction, group_id=group.id, requester_id=outsider.id) is None
    assert groups_services.get_group_members(session=db_transaction, group_id=group.id, requester_id=outsider.id) == []
    assert groups_services.get_group_history(session=db_transaction, group_id=group.id, requester_id=outsider.id) == []


def test_get_group_history_for_creator(
    *,
    db_transaction: Session,
    user_factory: Callable[..., User],
):
    owner = user_factory()
    member = user_factory()
    group = groups_services.create_group(
        session=db_transaction, owner_id=owner.id, group_in=GroupCreate(name="Audit")
    )
    groups_services.add_member(
        session=db_transaction,
        group_id=group.id,
        requester_id=owner.id,
        member_in=GroupMemberAdd(user_id=member.id),
    )
    groups_services.remove_member(
        session=db_transaction,
        group_id=group.id,
        member_user_id=member.id,
        requester_id=member.id,
    )

    history = groups_services.get_group_history(
        session=db_transaction, group_id=group.id, requester_id=owner.id
    )

    assert [entry.action for entry in history] == [
        GroupMemberAction.ADDED,
        GroupMemberAction.ADDED,
        GroupMemberAction.LEFT,
    ]
    user_groups = groups_services.get_user_groups(session=db_transaction, user_id=owner.id)
    assert [user_group.id for user_group in user_groups] == [group.id]
    assert user_groups[0].member_count == 1
