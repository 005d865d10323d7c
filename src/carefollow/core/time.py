from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def now_utc() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def now_utc_iso() -> str:
    """Return an RFC 3339/ISO timestamp in UTC with seconds precision."""
    return now_utc().replace(microsecond=0).isoformat()


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
