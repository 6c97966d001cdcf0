from uuid import UUID

from fastapi import status

from .base import AppError


class QuotaExceeded(AppError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, user_id: UUID, reason: str):
        self.user_id = user_id
        detail = f"Free tier limit reached for user {user_id}: {reason}. Upgrade to premium to continue."
        super().__init__(detail)


class DuplicateMember(AppError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, group_id: int, user_id: UUID):
        detail = f"User with id {user_id} is already a member of group {group_id}."
        super().__init__(detail)


class InvalidOperation(AppError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
