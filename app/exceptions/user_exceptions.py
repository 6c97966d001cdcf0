from uuid import UUID

from fastapi import status

from .base import AppError


class UserNotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, user_id: UUID):
        detail = f"User with id {user_id} not found."
        super().__init__(detail)

