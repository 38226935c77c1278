from datetime import date, datetime, time, timedelta

import pytz

from studio.errors import InvalidRequest

MINUTES_PER_DAY = 24 * 60


def parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise InvalidRequest(f"Malformed date: {value!r}, expected YYYY-MM-DD.")


def parse_minutes(value) -> int:
    """Parse "HH:MM" (or a time object) into minutes from midnight. "24:00" is allowed."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    try:
        hours, minutes = str(value).split(':')
        hours, minutes = int(hours), int(minutes)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Malformed time: {value!r}, expected HH:MM.")
    if not (0 <= minutes < 60) or not (0 <= hours <= 24) or (hours == 24 and minutes):
        raise InvalidRequest(f"Malformed time: {value!r}.")
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def at_minutes(day: date, minutes: int) -> datetime:
    """Naive wall-clock datetime for a minute offset on a day (1440 is next midnight)."""
    return datetime.combine(day, time.min) + timedelta(minutes=minutes)


def minutes_of(moment: datetime, day: date) -> int:
    return int((moment - datetime.combine(day, time.min)).total_seconds() // 60)


def studio_now(tz_name: str) -> datetime:
    """Current naive wall-clock time in the studio's timezone."""
    return datetime.now(pytz.timezone(tz_name)).replace(tzinfo=None)


def to_epoch_ms(moment: datetime, tz_name: str) -> int:
    """Convert a naive studio wall-clock datetime into UTC epoch milliseconds."""
    localized = pytz.timezone(tz_name).localize(moment)
    return int(localized.astimezone(pytz.utc).timestamp() * 1000)


def from_epoch_ms(value: int, tz_name: str) -> datetime:
    moment = datetime.fromtimestamp(int(value) / 1000, tz=pytz.utc)
    return moment.astimezone(pytz.timezone(tz_name)).replace(tzinfo=None)
