from sqlmodel import Session, col, select

from app.models.movie import Movie


def get_movie_by_external_id(*, session: Session, external_id: int) -> Movie | None:
    """
    Retrieve a movie by its catalog id.

    Parameters:
        session (Session): The database session.
        external_id (int): The id of the movie in the external catalog.
    Returns:
        Movie | None: The movie object if found, otherwise None.
    """
    stmt = select(Movie).where(
        col(Movie.external_id) == external_id,
        col(Movie.is_deleted).is_(False),
    )
    return session.exec(stmt).one_or_none()


def get_movies_by_ids(*, session: Session, movie_ids: list[int]) -> dict[int, Movie]:
    if not movie_ids:
        return {}
    stmt = select(Movie).where(col(Movie.id).in_(movie_ids))
    return {movie.id: movie for movie in session.exec(stmt).all()}  # type: ignore[misc]
