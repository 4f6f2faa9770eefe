from datetime import datetime, timezone
from typing import Optional, Protocol


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp, the format every datetime column stores."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalizes a timestamp to aware UTC.
    SQLite hands stored values back without zone information; they are UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return utcnow()


system_clock = SystemClock()
