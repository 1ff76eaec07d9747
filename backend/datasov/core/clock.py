from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(moment: datetime) -> datetime:
    """Naive datetimes coming off the wire are taken as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def to_millis(moment: datetime) -> int:
    return int(ensure_aware(moment).timestamp() * 1000)
