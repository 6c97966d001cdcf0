from .user import *
from .movie import *
from .group import *
from .watch import *

__all__ = [
    "User",
    "UserBase",
    "PrivacySettingsUpdate",
    "Movie",
    "MovieBase",
    "Group",
    "GroupBase",
    "GroupCreate",
    "GroupUpdate",
    "GroupMember",
    "GroupMemberHistory",
    "Watch",
    "WatchBase",
    "WatchCreate",
    "WatchUpdate",
    "WatchBulkUpdate",
    "WatchGroup",
]
