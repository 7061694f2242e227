from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Iterable, Sequence


TIER_RELAXED = "relaxed"
TIER_APPROACHING = "approaching"
TIER_SOON = "soon"
TIER_URGENT = "urgent"
TIER_OVERDUE = "overdue"

TIERS = (TIER_RELAXED, TIER_APPROACHING, TIER_SOON, TIER_URGENT, TIER_OVERDUE)

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def parse_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if len(s) < 10:
        return None
    if len(s) > 10 and s[10] not in ("T", " "):
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def parse_moment(value: Any) -> datetime | None:
    """Parse a date or timestamp; date-only values become midnight."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    s = str(value).strip()
    if len(s) > 10:
        try:
            return datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None
    d = parse_date(s)
    if d is None:
        return None
    return datetime.combine(d, time.min)


def iso_date(value: Any) -> str | None:
    d = parse_date(value)
    return d.isoformat() if d is not None else None


def _today(now: date | datetime | str) -> date | None:
    """The calendar day of ``now``, or None when it cannot be read."""
    return parse_date(now)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def project_to_year(d: date, year: int) -> date:
    """Move ``d``'s month/day onto ``year``.

    Feb 29 rolls over to Mar 1 when ``year`` is not a leap year.
    """
    try:
        return d.replace(year=year)
    except ValueError:
        return date(year, 3, 1)


def events_on_date(events: Iterable, day: Any) -> list:
    target = iso_date(day)
    if target is None:
        return []
    return [e for e in events if iso_date(e.date) == target]


def is_today(value: Any, now: date | datetime | str) -> bool:
    d = parse_date(value)
    today = _today(now)
    return d is not None and today is not None and d == today


def is_birthday_today(value: Any, now: date | datetime | str) -> bool:
    d = parse_date(value)
    today = _today(now)
    if d is None or today is None:
        return False
    return (d.month, d.day) == (today.month, today.day)


def is_this_week(value: Any, now: date | datetime | str) -> bool:
    # Only the current year's projection counts, even when it has already passed.
    d = parse_date(value)
    today = _today(now)
    if d is None or today is None:
        return False
    diff = (project_to_year(d, today.year) - today).days
    return 0 <= diff <= 7


def is_this_month(value: Any, now: date | datetime | str) -> bool:
    d = parse_date(value)
    today = _today(now)
    return d is not None and today is not None and d.month == today.month


def age_from_birth_date(birth_date: Any, now: date | datetime | str) -> int | None:
    born = parse_date(birth_date)
    today = _today(now)
    if born is None or today is None:
        return None
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def days_remaining(target: Any, now: date | datetime | str) -> int | None:
    d = parse_date(target)
    today = _today(now)
    if d is None or today is None:
        return None
    return (d - today).days


@dataclass(frozen=True)
class TimeRemaining:
    tier: str
    days: int
    hours: int
    label: str

    def to_dict(self) -> dict:
        return {"tier": self.tier, "days": self.days, "hours": self.hours, "label": self.label}


def time_remaining(target: Any, now: date | datetime | str) -> TimeRemaining | None:
    """Band the time left until ``target`` into one display tier.

    ``> 7`` days, ``4-7`` days, ``1-3`` days, under a day (counted in hours)
    and overdue. A date-only target means midnight at the start of that day.
    """
    moment = parse_moment(target)
    current = parse_moment(now)
    if moment is None or current is None:
        return None

    delta = _as_utc(moment) - _as_utc(current)
    if delta < timedelta(0):
        days = -((-delta).days)
        return TimeRemaining(TIER_OVERDUE, days, 0, "Overdue")

    days = delta.days
    if days > 7:
        return TimeRemaining(TIER_RELAXED, days, 0, f"{days} days left")
    if days > 3:
        return TimeRemaining(TIER_APPROACHING, days, 0, f"{days} days left")
    if days > 0:
        return TimeRemaining(TIER_SOON, days, 0, f"{days} days left")

    hours = int(delta.total_seconds() // 3600)
    return TimeRemaining(TIER_URGENT, 0, hours, f"{hours} hours left")


def group_by_month(
    items: Iterable,
    now: date | datetime | str,
    key: Callable[[Any], Any] = lambda item: item,
) -> list[tuple[int, list]]:
    """Bucket ``items`` by calendar month (0-11), next month first.

    Items keep their input order inside a bucket. Items whose date cannot be
    parsed are left out, and nothing is grouped when ``now`` is unreadable.
    """
    today = _today(now)
    if today is None:
        return []

    buckets: dict[int, list] = {}
    for item in items:
        d = parse_date(key(item))
        if d is None:
            continue
        buckets.setdefault(d.month - 1, []).append(item)

    start = today.month % 12
    return [(m, buckets[m]) for m in sorted(buckets, key=lambda m: (m - start) % 12)]


@dataclass
class Classification:
    today: list = field(default_factory=list)
    this_week: list = field(default_factory=list)
    this_month: list = field(default_factory=list)
    upcoming: list = field(default_factory=list)
    overdue: list = field(default_factory=list)
    unplaced: list = field(default_factory=list)
    total: int = 0


def classify(events: Sequence, now: date | datetime | str) -> Classification:
    """Bucket events by date; ``this_month`` means the same year and month as ``now``."""
    today = _today(now)
    result = Classification(total=len(events))
    for event in events:
        d = parse_date(event.date)
        if d is None or today is None:
            result.unplaced.append(event)
            continue
        diff = (d - today).days
        if diff < 0:
            result.overdue.append(event)
        elif diff == 0:
            result.today.append(event)
        elif diff <= 7:
            result.this_week.append(event)
        elif (d.year, d.month) == (today.year, today.month):
            result.this_month.append(event)
        else:
            result.upcoming.append(event)
    return result


@dataclass
class BirthdayBoard:
    today: list = field(default_factory=list)
    this_week: list = field(default_factory=list)
    this_month: list = field(default_factory=list)
    upcoming: list = field(default_factory=list)
    total: int = 0

    def to_dict(self) -> dict:
        return {
            "today": self.today,
            "this_week": self.this_week,
            "this_month": self.this_month,
            "upcoming": [
                {"month": m, "month_name": MONTH_NAMES[m], "birthdays": rows} for m, rows in self.upcoming
            ],
            "total": self.total,
        }


def classify_birthdays(rows: Sequence[dict], now: date | datetime | str, date_field: str = "birth_date") -> BirthdayBoard:
    board = BirthdayBoard(total=len(rows))
    if _today(now) is None:
        return board

    later = []
    for row in rows:
        value = row.get(date_field)
        if parse_date(value) is None:
            continue
        entry = dict(row)
        entry["age"] = age_from_birth_date(value, now)

        this_week = is_this_week(value, now)
        if is_birthday_today(value, now):
            board.today.append(entry)
        elif this_week:
            board.this_week.append(entry)

        if is_this_month(value, now):
            if not this_week:
                board.this_month.append(entry)
        else:
            later.append(entry)

    board.upcoming = group_by_month(later, now, key=lambda e: e.get(date_field))
    return board


@dataclass
class AssignmentSplit:
    future: list = field(default_factory=list)
    past: list = field(default_factory=list)
    active_count: int = 0
    completed_count: int = 0
    total: int = 0

    def to_dict(self) -> dict:
        return {
            "future": self.future,
            "past": self.past,
            "active_count": self.active_count,
            "completed_count": self.completed_count,
            "total": self.total,
        }


def split_assignments(rows: Sequence[dict], today: date | datetime | str) -> AssignmentSplit:
    day = _today(today)
    split = AssignmentSplit(total=len(rows))
    split.active_count = sum(1 for r in rows if r.get("status") == "active")
    split.completed_count = sum(1 for r in rows if r.get("status") == "completed")
    if day is None:
        return split

    future = []
    past = []
    for row in rows:
        due = parse_date(row.get("due_date"))
        if due is None:
            continue
        status = row.get("status")
        if status == "active" and due > day:
            future.append((due, row))
        elif status == "completed" or due <= day:
            entry = dict(row)
            entry["days_ago"] = (day - due).days
            past.append((due, entry))

    split.future = [r for _, r in sorted(future, key=lambda p: p[0])]
    split.past = [r for _, r in sorted(past, key=lambda p: p[0], reverse=True)]
    return split


def group_by_status(rows: Iterable[dict], statuses: Sequence[str]) -> dict[str, list]:
    """Split ``rows`` into one list per status, dropping rows with any other status."""
    groups: dict[str, list] = {s: [] for s in statuses}
    for row in rows:
        status = row.get("status")
        if status in groups:
            groups[status].append(row)
    return groups


def on_or_after(rows: Iterable[dict], now: date | datetime | str, date_field: str) -> list[dict]:
    """Rows dated today or later, earliest first."""
    today = _today(now)
    if today is None:
        return []
    dated = []
    for row in rows:
        d = parse_date(row.get(date_field))
        if d is not None and d >= today:
            dated.append((d, row))
    return [r for _, r in sorted(dated, key=lambda p: p[0])]


def split_today(rows: Iterable[dict], now: date | datetime | str, date_field: str) -> tuple[list, list]:
    """Partition rows into those dated today and everything else.

    Rows with an unreadable date, or any row when ``now`` is unreadable, land
    in the second list.
    """
    today = []
    older = []
    for row in rows:
        if is_today(row.get(date_field), now):
            today.append(row)
        else:
            older.append(row)
    return today, older
