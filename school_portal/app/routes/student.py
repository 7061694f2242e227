from __future__ import annotations

from datetime import date
from functools import partial

from flask import Blueprint, current_app, jsonify, request

from ..services import db_service
from ..services.auth_service import login_required
from ..services.calendar_service import STUDENT_SOURCES, aggregate
from ..services.db_service import get_db, get_db_path
from ..services.timing_service import (
    classify,
    classify_birthdays,
    days_remaining,
    events_on_date,
    group_by_status,
    on_or_after,
    split_assignments,
    split_today,
)


bp = Blueprint("student", __name__, url_prefix="/student")


def _is_open(event, today_iso: str) -> bool:
    return event.date >= today_iso and event.status in (None, "active")


@bp.get("/calendar")
@login_required
def calendar():
    today = date.today()
    fetch = partial(db_service.fetch_all, db_path=get_db_path())
    result = aggregate(fetch, STUDENT_SOURCES, timeout=current_app.config["SOURCE_FETCH_TIMEOUT"])

    events = [e for e in result.events if _is_open(e, today.isoformat())]
    buckets = classify(events, today)

    payload = {
        "events": [e.to_dict() for e in events],
        "provisioned": result.provisioned,
        "failures": dict(result.failures),
        "today": [e.to_dict() for e in buckets.today],
        "this_week": [e.to_dict() for e in buckets.this_week],
        "this_month": [e.to_dict() for e in buckets.this_month],
        "upcoming": [e.to_dict() for e in buckets.upcoming],
        "total": buckets.total,
    }
    selected = (request.args.get("date") or "").strip()
    if selected:
        payload["selected_date"] = selected
        payload["selected_events"] = [e.to_dict() for e in events_on_date(events, selected)]
    return jsonify(payload)


@bp.get("/birthdays")
@login_required
def birthdays():
    rows = db_service.select(get_db(), "birthdays")
    board = classify_birthdays(rows, date.today())
    return jsonify(board.to_dict())


@bp.get("/assignments")
@login_required
def assignments():
    rows = [r for r in db_service.select(get_db(), "assignments") if r.get("status") in ("active", "completed")]
    split = split_assignments(rows, date.today())
    return jsonify(split.to_dict())


@bp.get("/homework")
@login_required
def homework():
    today = date.today()
    rows = db_service.select(get_db(), "homework")
    groups = group_by_status(rows, db_service.HOMEWORK_STATUSES)

    pending = []
    for row in groups["pending"]:
        entry = dict(row)
        entry["days_left"] = days_remaining(row.get("due_date"), today)
        pending.append(entry)

    return jsonify(
        {
            "pending": pending,
            "completed": groups["completed"],
            "total": len(pending) + len(groups["completed"]),
        }
    )


@bp.get("/updates")
@login_required
def updates():
    rows = db_service.select(get_db(), "updates")
    rows.reverse()
    todays, older = split_today(rows, date.today(), "publish_date")
    return jsonify({"today": todays, "older": older, "total": len(rows)})


@bp.get("/seminars")
@login_required
def seminars():
    rows = db_service.select(get_db(), "seminars")
    groups = group_by_status(rows, db_service.SEMINAR_STATUSES)
    return jsonify(
        {
            "upcoming": groups["scheduled"],
            "ongoing": groups["ongoing"],
            "completed": groups["completed"],
            "total": sum(len(g) for g in groups.values()),
        }
    )


@bp.get("/records")
@login_required
def records():
    rows = db_service.select(get_db(), "records")
    return jsonify({"records": on_or_after(rows, date.today(), "record_date")})
