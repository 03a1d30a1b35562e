"""Resolve an auction deadline, given as local wall-clock time, to a UTC instant.

Two input modes are accepted:

* ``end_date`` + ``end_time`` + ``time_zone``: the wall-clock moment in that zone.
* ``duration`` (days) + optional ``end_time`` + ``time_zone``: today's date in
  that zone plus ``duration`` days, at ``end_time`` or 23:59:59 local.

Wall-clock times that fall in a DST gap, or that occur twice in a DST
overlap, are rejected instead of being shifted to some offset.
"""
import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ValidationError
from .utils import UTC, to_aware_utc

_END_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
END_OF_DAY = time(23, 59, 59)


def get_zone(time_zone: Optional[str]) -> ZoneInfo:
    if not time_zone or not isinstance(time_zone, str):
        raise ValidationError("timeZone is required")
    try:
        return ZoneInfo(time_zone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unrecognized time zone: {time_zone}")


def parse_end_time(end_time: str) -> time:
    m = _END_TIME_RE.match(end_time.strip()) if isinstance(end_time, str) else None
    if not m:
        raise ValidationError(f"Invalid bidding end time format: {end_time!r} (expected HH:mm)")
    return time(int(m.group(1)), int(m.group(2)))


def parse_end_date(end_date: Union[str, date]) -> date:
    if isinstance(end_date, datetime):
        return end_date.date()
    if isinstance(end_date, date):
        return end_date
    try:
        # tolerate full ISO timestamps, only the calendar date matters
        return date.fromisoformat(str(end_date).strip()[:10])
    except ValueError:
        raise ValidationError(f"Invalid bidding end date: {end_date!r}")


def localize(naive: datetime, zone: ZoneInfo) -> datetime:
    """Attach ``zone`` to a naive wall-clock time, refusing gaps and overlaps."""
    local = naive.replace(tzinfo=zone)
    round_trip = local.astimezone(UTC).astimezone(zone).replace(tzinfo=None)
    if round_trip != naive:
        raise ValidationError(f"{naive.isoformat()} does not exist in {zone.key} (DST gap)")
    if local.replace(fold=0).utcoffset() != local.replace(fold=1).utcoffset():
        raise ValidationError(f"{naive.isoformat()} is ambiguous in {zone.key} (DST overlap)")
    return local


def resolve_deadline(end_date=None, end_time=None, time_zone=None, duration=None, now=None) -> datetime:
    """Return the deadline as an aware UTC datetime or raise ValidationError."""
    zone = get_zone(time_zone)
    has_date = end_date not in (None, "")
    has_duration = duration is not None

    if has_date and has_duration:
        raise ValidationError("Provide either endDate with endTime or duration, not both")

    if has_date:
        if not end_time:
            raise ValidationError("endTime is required together with endDate")
        naive = datetime.combine(parse_end_date(end_date), parse_end_time(end_time))
    elif has_duration:
        if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
            raise ValidationError(f"duration must be a non-negative whole number of days, got {duration!r}")
        current = to_aware_utc(now) if now is not None else datetime.now(UTC)
        local_today = current.astimezone(zone).date()
        time_of_day = parse_end_time(end_time) if end_time else END_OF_DAY
        naive = datetime.combine(local_today + timedelta(days=duration), time_of_day)
    else:
        raise ValidationError("Auction end requires endDate and endTime, or duration")

    return localize(naive, zone).astimezone(UTC)


def to_local(instant: datetime, time_zone: str) -> datetime:
    """Render a stored UTC instant in the listing's zone for display."""
    return to_aware_utc(instant).astimezone(get_zone(time_zone))
