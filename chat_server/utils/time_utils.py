from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching what pymongo hands back on read."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_iso(dt):
    return dt.isoformat() if isinstance(dt, datetime) else dt
