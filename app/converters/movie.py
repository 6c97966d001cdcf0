from app.models.movie import Movie
from app.schemas.movie import MovieSummary


def to_summary(movie: Movie) -> MovieSummary:
    return MovieSummary.model_validate(movie)
