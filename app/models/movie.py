from datetime import datetime

from sqlmodel import Field, SQLModel

__all__ = [
    "MovieBase",
    "Movie",
]


# Shared properties
class MovieBase(SQLModel):
    title: str = Field(index=True)
    original_title: str | None = None
    release_year: int | None = None
    poster_link: str | None = None
    external_id: int | None = Field(default=None, unique=True, index=True)


# Database model, database table inferred from class name
class Movie(MovieBase, table=True):
    id: int | None = Field(default=None, primary_key=True)
    is_deleted: bool = Field(default=False, nullable=False)
    deleted_at: datetime | None = None
