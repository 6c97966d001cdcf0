from app.models.movie import MovieBase

__all__ = [
    "MovieSummary",
]


class MovieSummary(MovieBase):
    id: int
