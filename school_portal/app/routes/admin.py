from __future__ import annotations

import logging
from datetime import date, datetime
from functools import partial

from flask import Blueprint, abort, current_app, jsonify, request

from ..services import db_service
from ..services.auth_service import admin_login_required
from ..services.calendar_service import SOURCES, aggregate, count_by_kind
from ..services.db_service import get_db, get_db_path
from ..services.timing_service import (
    age_from_birth_date,
    events_on_date,
    is_birthday_today,
    is_this_week,
    parse_date,
    time_remaining,
)


logger = logging.getLogger(__name__)

bp = Blueprint("admin", __name__, url_prefix="/admin")


def _collection_or_404(collection: str) -> str:
    if collection not in db_service.COLLECTIONS:
        abort(404, description=f"Unknown collection: {collection}")
    return collection


def _form_values(collection: str) -> dict:
    values = {}
    for key in db_service.COLLECTIONS[collection]:
        if key in request.form:
            values[key] = (request.form.get(key) or "").strip() or None
    return values


@bp.get("/calendar")
@admin_login_required
def calendar():
    fetch = partial(db_service.fetch_all, db_path=get_db_path())
    result = aggregate(fetch, SOURCES, timeout=current_app.config["SOURCE_FETCH_TIMEOUT"])

    payload = result.to_dict()
    payload["counts"] = count_by_kind(result.events)
    selected = (request.args.get("date") or "").strip()
    if selected:
        payload["selected_date"] = selected
        payload["selected_events"] = [e.to_dict() for e in events_on_date(result.events, selected)]
    if not result.provisioned:
        payload["error"] = "Some database tables may not be created yet."
    return jsonify(payload)


@bp.get("/deadlines/board")
@admin_login_required
def deadlines_board():
    db = get_db()
    now = datetime.now()
    rows = db_service.select(db, "deadlines")
    items = []
    for row in rows:
        remaining = time_remaining(row.get("deadline_date"), now)
        row["time_remaining"] = remaining.to_dict() if remaining else None
        items.append(row)
    return jsonify({"deadlines": items})


@bp.post("/deadlines/<row_id>/toggle")
@admin_login_required
def deadline_toggle(row_id: str):
    db = get_db()
    rows = db_service.select(db, "deadlines", where={"id": row_id})
    if not rows:
        abort(404, description="Deadline not found.")
    new_status = "completed" if rows[0].get("status") == "active" else "active"
    db_service.update(db, "deadlines", row_id, {"status": new_status})
    return jsonify({"id": row_id, "status": new_status})


@bp.get("/birthdays/board")
@admin_login_required
def birthdays_board():
    db = get_db()
    now = datetime.now()
    rows = db_service.select(db, "birthdays")

    month_raw = (request.args.get("month") or "all").strip().lower()
    filtered = rows
    if month_raw != "all":
        try:
            month = int(month_raw)
        except ValueError:
            abort(400, description="Month must be a number between 1 and 12.")
        if not 1 <= month <= 12:
            abort(400, description="Month must be a number between 1 and 12.")
        filtered = []
        for r in rows:
            born = parse_date(r.get("birth_date"))
            if born is not None and born.month == month:
                filtered.append(r)

    def with_age(row: dict) -> dict:
        entry = dict(row)
        entry["age"] = age_from_birth_date(row.get("birth_date"), now)
        return entry

    return jsonify(
        {
            "today": [with_age(r) for r in rows if is_birthday_today(r.get("birth_date"), now)],
            "next_week": [with_age(r) for r in rows if is_this_week(r.get("birth_date"), now)],
            "birthdays": [with_age(r) for r in filtered],
            "total": len(rows),
            "students": sum(1 for r in rows if r.get("category") == "student"),
            "staff": sum(1 for r in rows if r.get("category") == "staff"),
        }
    )


@bp.get("/<collection>")
@admin_login_required
def collection_list(collection: str):
    collection = _collection_or_404(collection)
    return jsonify({collection: db_service.select(get_db(), collection)})


@bp.post("/<collection>")
@admin_login_required
def collection_create(collection: str):
    collection = _collection_or_404(collection)
    values = _form_values(collection)
    missing = [k for k in db_service.REQUIRED_FIELDS[collection] if not values.get(k)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400
    if "status" in db_service.COLLECTIONS[collection] and not values.get("status"):
        values["status"] = db_service.DEFAULT_STATUS.get(collection, "active")
    if collection == "updates" and not values.get("publish_date"):
        values["publish_date"] = date.today().isoformat()

    row = db_service.insert(get_db(), collection, values)
    logger.info("Created %s row %s", collection, row["id"])
    return jsonify(row), 201


@bp.post("/<collection>/<row_id>/update")
@admin_login_required
def collection_update(collection: str, row_id: str):
    collection = _collection_or_404(collection)
    values = _form_values(collection)
    if not values:
        return jsonify({"error": "Nothing to update."}), 400
    non_blank = set(db_service.non_blank_fields(collection))
    blank = [k for k, v in values.items() if k in non_blank and not v]
    if blank:
        return jsonify({"error": f"Fields cannot be blank: {', '.join(blank)}"}), 400
    if not db_service.update(get_db(), collection, row_id, values):
        abort(404, description="Record not found.")
    return jsonify(db_service.select(get_db(), collection, where={"id": row_id})[0])


@bp.post("/<collection>/<row_id>/delete")
@admin_login_required
def collection_delete(collection: str, row_id: str):
    collection = _collection_or_404(collection)
    if not db_service.delete(get_db(), collection, row_id):
        abort(404, description="Record not found.")
    logger.info("Deleted %s row %s", collection, row_id)
    return jsonify({"deleted": row_id})
