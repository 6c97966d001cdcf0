from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter
from sqlmodel import SQLModel

__all__ = [
    "TransferGroupAction",
    "DeleteGroupAction",
    "PendingGroupAction",
    "pending_group_actions_adapter",
    "EligibleTransferMember",
    "GroupTransferEligibility",
]


class TransferGroupAction(BaseModel):
    action: Literal["transfer"] = "transfer"
    group_id: int
    target_user_id: UUID


class DeleteGroupAction(BaseModel):
    action: Literal["delete"] = "delete"
    group_id: int


PendingGroupAction = Annotated[
    TransferGroupAction | DeleteGroupAction,
    Field(discriminator="action"),
]

# (De)serializes User.pending_group_actions
pending_group_actions_adapter: TypeAdapter[list[PendingGroupAction]] = TypeAdapter(
    list[PendingGroupAction]
)


class EligibleTransferMember(SQLModel):
    user_id: UUID
    display_name: str | None
    is_premium: bool
    is_admin: bool


class GroupTransferEligibility(SQLModel):
    group_id: int
    group_name: str
    member_count: int
    eligible_members: list[EligibleTransferMember]
    can_transfer: bool
