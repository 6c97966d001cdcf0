from datetime import datetime, timezone


def now_utc_naive() -> datetime:
    """
    Current UTC time without tzinfo, the format every timestamp column uses.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
