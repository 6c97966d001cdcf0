from enum import Enum, unique


@unique
class GroupRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
    CREATOR = "creator"


@unique
class GroupMemberAction(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    ROLE_CHANGED = "role_changed"
    LEFT = "left"


@unique
class AccessOutcome(str, Enum):
    OK = "ok"
    NOT_MEMBER = "not_member"
    NOT_FOUND = "not_found"


@unique
class GroupedWatchesSort(str, Enum):
    RECENTLY_WATCHED = "recently_watched"
    TITLE = "title"
    HIGHEST_RATED = "highest_rated"
    MOST_WATCHED = "most_watched"


@unique
class WatchGroupOperation(str, Enum):
    ADD = "add"
    REPLACE = "replace"
