from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def hour_floor(moment: datetime) -> datetime:
    """Truncate a timestamp to the start of its hour."""
    return moment.replace(minute=0, second=0, microsecond=0)
