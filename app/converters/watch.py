from app.models.movie import Movie
from app.models.user import User
from app.models.watch import Watch
from app.schemas.feed import GroupFeedItem
from app.schemas.watch import WatchPublic


def to_public(
    watch: Watch,
    *,
    group_ids: list[int] | None = None,
    hide_rating: bool = False,
    hide_notes: bool = False,
) -> WatchPublic:
    """
    Convert a Watch object to a WatchPublic schema. Hidden fields are nulled on
    the returned copy, the Watch row itself is left untouched.

    Parameters:
        watch (Watch): The Watch object to convert.
        group_ids (list[int] | None): Groups the watch is shared into.
        hide_rating (bool): Null the rating for this viewer.
        hide_notes (bool): Null the notes for this viewer.
    Returns:
        WatchPublic: The converted WatchPublic schema.
    """
    hidden: dict[str, None] = {}
    if hide_rating:
        hidden["rating"] = None
    if hide_notes:
        hidden["notes"] = None
    return WatchPublic.model_validate(
        watch,
        update={"group_ids": group_ids or [], **hidden},
    )


def to_feed_item(
    watch: Watch,
    *,
    owner: User,
    movie: Movie,
    group_ids: list[int] | None = None,
    hide_rating: bool = False,
    hide_notes: bool = False,
) -> GroupFeedItem:
    watch_public = to_public(
        watch,
        group_ids=group_ids,
        hide_rating=hide_rating,
        hide_notes=hide_notes,
    )
    return GroupFeedItem(
        **watch_public.model_dump(),
        display_name=owner.display_name,
        owner_is_deactivated=owner.is_deactivated,
        movie_title=movie.title,
        poster_link=movie.poster_link,
    )
