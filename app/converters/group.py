from sqlmodel import Session

from app.converters import user as user_converters
from app.crud import group as group_crud
from app.models.group import Group, GroupMember, GroupMemberHistory
from app.models.user import User
from app.schemas.group import GroupMemberHistoryPublic, GroupMemberPublic, GroupPublic


def to_member_public(member: GroupMember, user: User | None = None) -> GroupMemberPublic:
    return GroupMemberPublic(
        group_id=member.group_id,
        user_id=member.user_id,
        role=member.role,
        joined_at=member.joined_at,
        user=user_converters.to_summary(user) if user is not None else None,
    )


def to_history_public(entry: GroupMemberHistory) -> GroupMemberHistoryPublic:
    return GroupMemberHistoryPublic.model_validate(entry)


def to_public(group: Group, *, session: Session) -> GroupPublic:
    """
    Convert a Group object to a GroupPublic schema, including its members.

    Parameters:
        group (Group): The Group object to convert.
        session (Session): The database session.
    Returns:
        GroupPublic: The group with every member and their user summary.
    Raises:
        ValidationError: If the group data is invalid.
    """
    Group.model_validate(group)
    members = [
        to_member_public(member, user)
        for member, user in group_crud.get_members_with_users(
            session=session,
            group_id=group.id,  # type: ignore[arg-type]
        )
    ]
    return GroupPublic(
        **group.model_dump(),
        members=members,
        member_count=len(members),
    )
