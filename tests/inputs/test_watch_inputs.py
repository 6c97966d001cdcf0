from datetime import datetime
from uuid import uuid4

import pytest
from pydantic import ValidationError

from app.core.enums import GroupedWatchesSort
from app.inputs.watch import GroupedWatchesFilters


def test_grouped_watches_filters_defaults():
    filters = GroupedWatchesFilters(user_id=uuid4())

    assert filters.sort_by == GroupedWatchesSort.RECENTLY_WATCHED
    assert (filters.page, filters.page_size) == (1, 20)
    assert not filters.rewatch_only
    assert not filters.unrated_only


def test_grouped_watches_filters_reject_inverted_ranges():
    with pytest.raises(ValidationError, match="rating_min"):
        GroupedWatchesFilters(user_id=uuid4(), rating_min=8, rating_max=4)
    with pytest.raises(ValidationError, match="watched_from"):
        GroupedWatchesFilters(
            user_id=uuid4(),
            watched_from=datetime(2024, 6, 1),
            watched_to=datetime(2024, 1, 1),
        )


@pytest.mark.parametrize(
    "overrides",
    [
        {"page": 0},
        {"page_size": 0},
        {"page_size": 101},
        {"rating_min": 0},
        {"rating_max": 11},
    ],
)
def test_grouped_watches_filters_bounds(overrides):
    with pytest.raises(ValidationError):
        GroupedWatchesFilters(user_id=uuid4(), **overrides)
