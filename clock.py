"""Wall-clock helpers.

Everything in the engine works on naive UTC datetimes. Components take a
`clock` callable so tests can pin "now".
"""

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(now: datetime) -> datetime:
    return datetime(now.year, now.month, now.day)


def start_of_week(now: datetime) -> datetime:
    """Monday 00:00 of the week containing `now`."""
    day = start_of_day(now)
    return day - timedelta(days=day.weekday())


def end_of_week(now: datetime) -> datetime:
    """Last microsecond of the Sunday closing the week of `now`."""
    return start_of_week(now) + timedelta(days=7) - timedelta(microseconds=1)


def start_of_month(now: datetime) -> datetime:
    return datetime(now.year, now.month, 1)


def start_of_next_month(now: datetime) -> datetime:
    if now.month == 12:
        return datetime(now.year + 1, 1, 1)
    return datetime(now.year, now.month + 1, 1)


def previous_days(now: datetime, count: int) -> list[date]:
    """The `count` calendar days before `now`'s day, most recent first."""
    today = now.date()
    return [today - timedelta(days=i) for i in range(1, count + 1)]


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into naive UTC. Raises ValueError."""
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
