from fastapi import status

from .base import AppError


class MovieNotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, external_id: int):
        self.external_id = external_id
        detail = f"Movie with external ID {external_id} could not be resolved from the catalog."
        super().__init__(detail)
