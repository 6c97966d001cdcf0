from typing import Protocol

from sqlmodel import Session

from app.crud import movie as movies_crud
from app.exceptions.movie_exceptions import MovieNotFoundError
from app.models.movie import Movie


class MovieResolver(Protocol):
    """
    Looks a movie up by its external catalog id, creating the local row when
    the catalog knows it. Returns None when the catalog does not.
    """

    def get_or_create_from_external_source(self, external_id: int) -> Movie | None: ...


class LocalMovieResolver:
    """
    Resolver backed by the movies already stored locally. Never creates rows.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_or_create_from_external_source(self, external_id: int) -> Movie | None:
        return movies_crud.get_movie_by_external_id(
            session=self.session,
            external_id=external_id,
        )


def resolve_movie(*, resolver: MovieResolver, external_id: int) -> Movie:
    """
    Resolve a movie through the catalog.

    Parameters:
        resolver (MovieResolver): The catalog collaborator.
        external_id (int): The catalog id of the movie.
    Returns:
        Movie: The resolved movie.
    Raises:
        MovieNotFoundError: If the catalog does not know the movie.
    """
    movie = resolver.get_or_create_from_external_source(external_id)
    if movie is None:
        raise MovieNotFoundError(external_id)
    return movie
