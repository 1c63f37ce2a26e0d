from __future__ import annotations

from datetime import UTC, datetime, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Workspaces created by the older Windows-hosted deployment carry Windows zone ids.
WINDOWS_TO_IANA = {
    "UTC": "Etc/UTC",
    "GMT Standard Time": "Europe/London",
    "W. Europe Standard Time": "Europe/Berlin",
    "Romance Standard Time": "Europe/Paris",
    "Central Europe Standard Time": "Europe/Budapest",
    "E. Europe Standard Time": "Europe/Chisinau",
    "Russian Standard Time": "Europe/Moscow",
    "Eastern Standard Time": "America/New_York",
    "Central Standard Time": "America/Chicago",
    "Mountain Standard Time": "America/Denver",
    "Pacific Standard Time": "America/Los_Angeles",
    "India Standard Time": "Asia/Kolkata",
    "China Standard Time": "Asia/Shanghai",
    "Tokyo Standard Time": "Asia/Tokyo",
    "AUS Eastern Standard Time": "Australia/Sydney",
}


class NonexistentLocalTimeError(ValueError):
    pass


class TimeZoneResolver(Protocol):
    def resolve(self, time_zone_id: str) -> tzinfo | None:
        """Return the zone for an identifier, or None if it is unknown here."""
        ...


class ZoneInfoTimeZoneResolver:
    def resolve(self, time_zone_id: str) -> tzinfo | None:
        key = (time_zone_id or "").strip()
        if not key:
            return None
        key = WINDOWS_TO_IANA.get(key, key)
        try:
            return ZoneInfo(key)
        except (ZoneInfoNotFoundError, ValueError):
            return None


def local_to_utc(local: datetime, zone: tzinfo) -> datetime:
    """Interpret `local` as wall-clock time in `zone` and convert it to UTC.

    Any tzinfo on `local` is discarded. Ambiguous times (clocks going back) resolve
    to standard time; times skipped by a DST jump raise NonexistentLocalTimeError.
    """
    wall = local.replace(tzinfo=None)
    utc = wall.replace(tzinfo=zone, fold=1).astimezone(UTC)
    if utc.astimezone(zone).replace(tzinfo=None) != wall:
        raise NonexistentLocalTimeError(f"{wall.isoformat()} does not exist in this time zone")
    return utc
