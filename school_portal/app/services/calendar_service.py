from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from operator import attrgetter
from typing import Callable, Iterable, Sequence

from .db_service import SourceUnavailable
from .timing_service import iso_date


logger = logging.getLogger(__name__)


KIND_EVENT = "event"
KIND_TEST = "test"
KIND_ASSIGNMENT = "assignment"
KIND_SEMINAR = "seminar"
KIND_DEADLINE = "deadline"

KINDS = (KIND_EVENT, KIND_TEST, KIND_ASSIGNMENT, KIND_SEMINAR, KIND_DEADLINE)

Fetch = Callable[[str, str], Sequence[dict]]


class MalformedRecord(Exception):
    def __init__(self, source: str, row_id, reason: str) -> None:
        super().__init__(f"{source} row {row_id}: {reason}")
        self.source = source
        self.row_id = row_id
        self.reason = reason


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    date: str
    kind: str
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    color_tag: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SourceRule:
    source: str
    prefix: str
    kind: str
    order_by: str
    color_tag: str
    mapper: Callable[["SourceRule", dict], CalendarEvent]

    def to_event(self, row: dict) -> CalendarEvent:
        return self.mapper(self, row)


@dataclass(frozen=True)
class Aggregation:
    events: tuple[CalendarEvent, ...] = ()
    provisioned: bool = True
    failures: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "events": [e.to_dict() for e in self.events],
            "provisioned": self.provisioned,
            "failures": dict(self.failures),
        }


def _text(value) -> str | None:
    if value is None:
        return None
    return str(value)


def _required_text(rule: SourceRule, row: dict, key: str) -> str:
    value = (str(row.get(key) or "")).strip()
    if not value:
        raise MalformedRecord(rule.source, row.get("id"), f"missing {key}")
    return value


def _required_date(rule: SourceRule, row: dict, key: str) -> str:
    value = iso_date(row.get(key))
    if value is None:
        raise MalformedRecord(rule.source, row.get("id"), f"missing or invalid {key}")
    return value


def _event_id(rule: SourceRule, row: dict) -> str:
    row_id = row.get("id")
    if row_id is None or str(row_id) == "":
        raise MalformedRecord(rule.source, row_id, "missing id")
    return f"{rule.prefix}{row_id}"


def _map_event(rule: SourceRule, row: dict) -> CalendarEvent:
    return CalendarEvent(
        id=_event_id(rule, row),
        title=_required_text(rule, row, "event_name"),
        date=_required_date(rule, row, "event_date"),
        kind=rule.kind,
        description=_text(row.get("description")),
        status=_text(row.get("status")),
        color_tag=rule.color_tag,
    )


def _map_exam(rule: SourceRule, row: dict) -> CalendarEvent:
    # Exams carry no date of their own; the creation date stands in for it.
    return CalendarEvent(
        id=_event_id(rule, row),
        title=_required_text(rule, row, "exam_name"),
        date=_required_date(rule, row, "created_at"),
        kind=rule.kind,
        description=_text(row.get("status")),
        color_tag=rule.color_tag,
    )


def _map_assignment(rule: SourceRule, row: dict) -> CalendarEvent:
    return CalendarEvent(
        id=_event_id(rule, row),
        title=_required_text(rule, row, "title"),
        date=_required_date(rule, row, "due_date"),
        kind=rule.kind,
        description=_text(row.get("description")),
        status=_text(row.get("status")),
        color_tag=rule.color_tag,
    )


def _map_seminar(rule: SourceRule, row: dict) -> CalendarEvent:
    speaker = (str(row.get("speaker") or "")).strip() or "TBA"
    return CalendarEvent(
        id=_event_id(rule, row),
        title=_required_text(rule, row, "title"),
        date=_required_date(rule, row, "seminar_date"),
        kind=rule.kind,
        description=f"Speaker: {speaker}",
        color_tag=rule.color_tag,
    )


def _map_record(rule: SourceRule, row: dict) -> CalendarEvent:
    subject = _required_text(rule, row, "subject")
    return CalendarEvent(
        id=_event_id(rule, row),
        title=f"{subject} Record",
        date=_required_date(rule, row, "record_date"),
        kind=rule.kind,
        description=_text(row.get("description")),
        color_tag=rule.color_tag,
    )


def _map_deadline(rule: SourceRule, row: dict) -> CalendarEvent:
    return CalendarEvent(
        id=_event_id(rule, row),
        title=_required_text(rule, row, "title"),
        date=_required_date(rule, row, "deadline_date"),
        kind=rule.kind,
        description=_text(row.get("description")),
        priority=_text(row.get("priority")),
        color_tag=rule.color_tag,
    )


SOURCES: tuple[SourceRule, ...] = (
    SourceRule("events", "event-", KIND_EVENT, "event_date", "bg-cyan-500", _map_event),
    SourceRule("exams", "exam-", KIND_TEST, "created_at", "bg-red-500", _map_exam),
    SourceRule("assignments", "assignment-", KIND_ASSIGNMENT, "due_date", "bg-blue-500", _map_assignment),
    SourceRule("seminars", "seminar-", KIND_SEMINAR, "seminar_date", "bg-purple-500", _map_seminar),
    SourceRule("records", "record-", KIND_DEADLINE, "record_date", "bg-green-500", _map_record),
    SourceRule("deadlines", "deadline-", KIND_DEADLINE, "deadline_date", "bg-rose-600", _map_deadline),
)

SOURCES_BY_NAME: dict[str, SourceRule] = {rule.source: rule for rule in SOURCES}

STUDENT_SOURCES: tuple[SourceRule, ...] = tuple(
    SOURCES_BY_NAME[name] for name in ("assignments", "records", "seminars", "events")
)


async def _fetch_one(
    loop: asyncio.AbstractEventLoop,
    pool: ThreadPoolExecutor,
    fetch: Fetch,
    rule: SourceRule,
    timeout: float | None,
) -> Sequence[dict] | SourceUnavailable:
    try:
        future = loop.run_in_executor(pool, fetch, rule.source, rule.order_by)
        if timeout is None:
            return await future
        return await asyncio.wait_for(future, timeout)
    except SourceUnavailable as e:
        return e
    except asyncio.TimeoutError:
        return SourceUnavailable(rule.source, f"timed out after {timeout}s")
    except Exception as e:
        logger.exception("Unexpected error fetching %s", rule.source)
        return SourceUnavailable(rule.source, str(e))


async def _fetch_sources(
    fetch: Fetch,
    sources: Sequence[SourceRule],
    timeout: float | None,
) -> list[Sequence[dict] | SourceUnavailable]:
    loop = asyncio.get_running_loop()
    pool = ThreadPoolExecutor(max_workers=max(len(sources), 1), thread_name_prefix="calendar-fetch")
    try:
        # gather keeps the declared source order whatever order fetches finish in
        return await asyncio.gather(*(_fetch_one(loop, pool, fetch, rule, timeout) for rule in sources))
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


def count_by_kind(events: Iterable[CalendarEvent]) -> dict[str, int]:
    counts = {kind: 0 for kind in KINDS}
    for event in events:
        counts[event.kind] = counts.get(event.kind, 0) + 1
    return counts


def normalize(rule: SourceRule, rows: Iterable[dict]) -> list[CalendarEvent]:
    events = []
    for row in rows:
        try:
            events.append(rule.to_event(row))
        except MalformedRecord as e:
            logger.warning("Dropping malformed %s row %s: %s", e.source, e.row_id, e.reason)
    return events


def aggregate(
    fetch: Fetch,
    sources: Sequence[SourceRule] = SOURCES,
    timeout: float | None = None,
) -> Aggregation:
    """Merge every source into one calendar, sorted by date.

    Each source is fetched concurrently and independently. A source that fails
    or times out contributes nothing. When every source failed because its
    table is missing the result is flagged as not provisioned.
    """
    if not sources:
        return Aggregation()

    results = asyncio.run(_fetch_sources(fetch, sources, timeout))

    merged: list[CalendarEvent] = []
    failures: dict[str, str] = {}
    missing_schema = 0
    for rule, result in zip(sources, results):
        if isinstance(result, SourceUnavailable):
            failures[rule.source] = result.message
            if result.missing_schema:
                missing_schema += 1
            logger.warning("Calendar source %s unavailable: %s", rule.source, result.message)
            continue
        merged.extend(normalize(rule, result))

    if missing_schema == len(sources):
        logger.error("Calendar tables are not provisioned: %s", ", ".join(failures))
        return Aggregation(events=(), provisioned=False, failures=failures)

    events = tuple(sorted(merged, key=attrgetter("date")))
    logger.debug("Aggregated %d calendar events from %d sources", len(events), len(sources) - len(failures))
    return Aggregation(events=events, provisioned=True, failures=failures)
