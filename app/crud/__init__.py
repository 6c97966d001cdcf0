from . import group, movie, user, watch

__all__ = ["group", "movie", "user", "watch"]
