from fastapi import status


class AppError(Exception):
    """
    Base for every failure the core raises on purpose.
    Authorization negatives are never raised, they come back as None/[]/False.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "An unexpected error occurred"

    def __init__(self, detail: str | None = None):
        if detail:
            self.detail = detail
        super().__init__(self.detail)
