"""Database models for series-track."""

from .show import Show
from .season import Season
from .episode import Episode
from .user import User
from .tracking import UserShow, UserEpisode, SUBSCRIPTION_STATUSES, WATCH_STATUSES
from .user_list import UserList, ListShow

__all__ = [
    "Show",
    "Season",
    "Episode",
    "User",
    "UserShow",
    "UserEpisode",
    "UserList",
    "ListShow",
    "SUBSCRIPTION_STATUSES",
    "WATCH_STATUSES",
]
