from __future__ import annotations

import zoneinfo
from datetime import datetime, timezone

DEFAULT_TZ = "UTC"


def now_in_tz(tz: str = DEFAULT_TZ) -> datetime:
    return datetime.now(tz=zoneinfo.ZoneInfo(tz))


def to_utc_instant(value: str, default_tz: str = DEFAULT_TZ) -> datetime:
    """Parse an ISO timestamp; the default zone applies only when it carries no offset."""

    iso_value = value.strip().replace("Z", "+00:00")
    dt = datetime.fromisoformat(iso_value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zoneinfo.ZoneInfo(default_tz))
    return dt.astimezone(timezone.utc)
