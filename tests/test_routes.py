from datetime import date, timedelta

from school_portal.app import create_app


def _day(offset):
    return (date.today() + timedelta(days=offset)).isoformat()


def test_admin_calendar_requires_admin(client):
    resp = client.get("/admin/calendar")
    assert resp.status_code == 401
    assert "error" in resp.get_json()


def test_student_cannot_open_admin_routes(student_client):
    assert student_client.get("/admin/calendar").status_code == 401
    assert student_client.post("/admin/events", data={"event_name": "x"}).status_code == 401


def test_admin_cannot_open_student_routes(admin_client):
    assert admin_client.get("/student/calendar").status_code == 401


def test_admin_login_rejects_bad_password(client, admin_credentials):
    username, _ = admin_credentials
    resp = client.post("/admin/login", data={"username": username, "password": "wrong"})
    assert resp.status_code == 401


def test_student_login_round_trip(client):
    client.post("/register", data={"register_number": "R9", "password": "pass123", "confirm_password": "pass123"})
    client.get("/logout")
    assert client.get("/me").get_json() == {"user": None}

    assert client.post("/login", data={"register_number": "R9", "password": "nope"}).status_code == 401
    resp = client.post("/login", data={"register_number": "R9", "password": "pass123"})
    assert resp.status_code == 200
    assert client.get("/me").get_json()["user"]["role"] == "student"


def test_register_rejects_duplicates_and_mismatch(client):
    data = {"register_number": "R1", "password": "pass123", "confirm_password": "pass123"}
    assert client.post("/register", data=data).status_code == 201
    assert client.post("/register", data=data).status_code == 409
    bad = {"register_number": "R2", "password": "pass123", "confirm_password": "pass124"}
    assert client.post("/register", data=bad).status_code == 400


def test_admin_calendar_merges_sources(admin_client):
    admin_client.post("/admin/events", data={"event_name": "Founders Day", "event_date": "2000-01-01"})
    admin_client.post("/admin/assignments", data={"title": "Thesis", "due_date": "2999-01-01"})
    admin_client.post("/admin/exams", data={"exam_name": "Finals"})
    admin_client.post("/admin/seminars", data={"title": "Robotics", "seminar_date": "2000-01-01"})

    resp = admin_client.get("/admin/calendar")
    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload["provisioned"] is True
    assert payload["failures"] == {}
    assert [e["title"] for e in payload["events"]] == ["Founders Day", "Robotics", "Finals", "Thesis"]
    assert payload["events"][1]["description"] == "Speaker: TBA"
    assert payload["events"][2]["kind"] == "test"
    assert payload["counts"] == {"event": 1, "test": 1, "assignment": 1, "seminar": 1, "deadline": 0}


def test_admin_calendar_selected_date(admin_client):
    admin_client.post("/admin/events", data={"event_name": "Fair", "event_date": "2030-05-01"})
    admin_client.post("/admin/deadlines", data={"title": "Fees", "deadline_date": "2030-05-02"})

    payload = admin_client.get("/admin/calendar?date=2030-05-01").get_json()
    assert [e["title"] for e in payload["selected_events"]] == ["Fair"]


def test_admin_calendar_not_provisioned(tmp_path):
    app = create_app({"DB_PATH": tmp_path / "bare.db", "TESTING": True})
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["user_id"] = "admin-1"
        sess["user_type"] = "admin"

    payload = client.get("/admin/calendar").get_json()
    assert payload["provisioned"] is False
    assert payload["events"] == []
    assert "error" in payload


def test_collection_crud(admin_client):
    resp = admin_client.post("/admin/deadlines", data={"title": "Library dues", "deadline_date": "2030-01-10"})
    assert resp.status_code == 201
    row = resp.get_json()
    assert row["status"] == "active"
    assert row["id"] and row["created_at"]

    resp = admin_client.post(f"/admin/deadlines/{row['id']}/update", data={"priority": "urgent"})
    assert resp.get_json()["priority"] == "urgent"

    resp = admin_client.post(f"/admin/deadlines/{row['id']}/toggle")
    assert resp.get_json()["status"] == "completed"
    resp = admin_client.post(f"/admin/deadlines/{row['id']}/toggle")
    assert resp.get_json()["status"] == "active"

    listed = admin_client.get("/admin/deadlines").get_json()["deadlines"]
    assert [d["title"] for d in listed] == ["Library dues"]

    assert admin_client.post(f"/admin/deadlines/{row['id']}/delete").status_code == 200
    assert admin_client.post(f"/admin/deadlines/{row['id']}/delete").status_code == 404


def test_collection_validation(admin_client):
    assert admin_client.get("/admin/gradebook").status_code == 404
    resp = admin_client.post("/admin/events", data={"event_name": "No date"})
    assert resp.status_code == 400
    assert "event_date" in resp.get_json()["error"]


def test_deadlines_board_reports_time_remaining(admin_client):
    admin_client.post("/admin/deadlines", data={"title": "Far", "deadline_date": _day(30)})
    admin_client.post("/admin/deadlines", data={"title": "Gone", "deadline_date": _day(-3)})

    board = admin_client.get("/admin/deadlines/board").get_json()["deadlines"]
    tiers = {d["title"]: d["time_remaining"]["tier"] for d in board}
    assert tiers == {"Gone": "overdue", "Far": "relaxed"}


def test_admin_birthdays_board(admin_client):
    today = date.today()
    admin_client.post(
        "/admin/birthdays",
        data={"name": "Asha", "birth_date": today.replace(year=2004).isoformat(), "category": "student"},
    )
    admin_client.post("/admin/birthdays", data={"name": "Ben", "birth_date": "2004-01-15", "category": "staff"})

    payload = admin_client.get("/admin/birthdays/board").get_json()
    asha = next(b for b in payload["today"] if b["name"] == "Asha")
    assert asha["age"] == today.year - 2004
    assert payload["total"] == 2
    assert (payload["students"], payload["staff"]) == (1, 1)

    january = admin_client.get("/admin/birthdays/board?month=1").get_json()["birthdays"]
    assert "Ben" in [b["name"] for b in january]
    assert admin_client.get("/admin/birthdays/board?month=13").status_code == 400


def test_student_calendar_hides_past_and_inactive(client, admin_credentials):
    username, password = admin_credentials
    client.post("/admin/login", data={"username": username, "password": password})
    client.post("/admin/events", data={"event_name": "Past", "event_date": _day(-2)})
    client.post("/admin/events", data={"event_name": "Cancelled", "event_date": _day(3), "status": "cancelled"})
    client.post("/admin/events", data={"event_name": "Soon", "event_date": _day(3)})
    client.post("/admin/records", data={"subject": "Chemistry", "record_date": _day(0)})
    client.post("/admin/deadlines", data={"title": "Admin only", "deadline_date": _day(1)})
    client.get("/logout")
    client.post("/register", data={"register_number": "S1", "password": "pass123", "confirm_password": "pass123"})

    payload = client.get("/student/calendar").get_json()
    assert [e["title"] for e in payload["events"]] == ["Chemistry Record", "Soon"]
    assert [e["title"] for e in payload["today"]] == ["Chemistry Record"]
    assert [e["title"] for e in payload["this_week"]] == ["Soon"]
    assert payload["provisioned"] is True


def test_student_birthdays_and_assignments(client, admin_credentials):
    username, password = admin_credentials
    client.post("/admin/login", data={"username": username, "password": password})
    client.post("/admin/birthdays", data={"name": "Cara", "birth_date": date.today().replace(year=2008).isoformat()})
    client.post("/admin/assignments", data={"title": "Future", "due_date": _day(5)})
    client.post("/admin/assignments", data={"title": "Past", "due_date": _day(-5)})
    client.post("/admin/assignments", data={"title": "Dropped", "due_date": _day(5), "status": "cancelled"})
    client.get("/logout")
    client.post("/register", data={"register_number": "S2", "password": "pass123", "confirm_password": "pass123"})

    board = client.get("/student/birthdays").get_json()
    assert [b["name"] for b in board["today"]] == ["Cara"]

    split = client.get("/student/assignments").get_json()
    assert [a["title"] for a in split["future"]] == ["Future"]
    assert [a["title"] for a in split["past"]] == ["Past"]
    assert split["past"][0]["days_ago"] == 5
    assert split["total"] == 2


def test_update_rejects_blank_status(admin_client):
    row = admin_client.post("/admin/events", data={"event_name": "Fair", "event_date": "2030-05-01"}).get_json()

    resp = admin_client.post(f"/admin/events/{row['id']}/update", data={"status": ""})
    assert resp.status_code == 400
    assert "status" in resp.get_json()["error"]

    listed = admin_client.get("/admin/events").get_json()["events"]
    assert listed[0]["status"] == "active"


def test_new_rows_get_collection_default_status(admin_client):
    homework = admin_client.post("/admin/homework", data={"title": "Worksheet", "due_date": _day(2)}).get_json()
    seminar = admin_client.post("/admin/seminars", data={"title": "Talk", "seminar_date": _day(2)}).get_json()
    update = admin_client.post("/admin/updates", data={"title": "Notice", "content": "Assembly at 9"}).get_json()

    assert homework["status"] == "pending"
    assert seminar["status"] == "scheduled"
    assert update["publish_date"] == _day(0)


def _as_student(client, admin_credentials, seed):
    username, password = admin_credentials
    client.post("/admin/login", data={"username": username, "password": password})
    for collection, data in seed:
        assert client.post(f"/admin/{collection}", data=data).status_code == 201
    client.get("/logout")
    client.post("/register", data={"register_number": "S3", "password": "pass123", "confirm_password": "pass123"})
    return client


def test_student_homework_split(client, admin_credentials):
    _as_student(
        client,
        admin_credentials,
        [
            ("homework", {"title": "Essay", "due_date": _day(4)}),
            ("homework", {"title": "Lab", "due_date": _day(1), "status": "completed"}),
            ("homework", {"title": "Dropped", "due_date": _day(1), "status": "cancelled"}),
        ],
    )
    payload = client.get("/student/homework").get_json()
    assert [h["title"] for h in payload["pending"]] == ["Essay"]
    assert payload["pending"][0]["days_left"] == 4
    assert [h["title"] for h in payload["completed"]] == ["Lab"]
    assert payload["total"] == 2


def test_student_updates_today_and_older(client, admin_credentials):
    _as_student(
        client,
        admin_credentials,
        [
            ("updates", {"title": "Old notice", "content": "x", "publish_date": _day(-3)}),
            ("updates", {"title": "Older notice", "content": "x", "publish_date": _day(-5)}),
            ("updates", {"title": "Fresh notice", "content": "x"}),
        ],
    )
    payload = client.get("/student/updates").get_json()
    assert [u["title"] for u in payload["today"]] == ["Fresh notice"]
    assert [u["title"] for u in payload["older"]] == ["Old notice", "Older notice"]
    assert payload["total"] == 3


def test_student_seminars_by_status(client, admin_credentials):
    _as_student(
        client,
        admin_credentials,
        [
            ("seminars", {"title": "Next", "seminar_date": _day(3)}),
            ("seminars", {"title": "Now", "seminar_date": _day(0), "status": "ongoing"}),
            ("seminars", {"title": "Done", "seminar_date": _day(-3), "status": "completed"}),
            ("seminars", {"title": "Off", "seminar_date": _day(5), "status": "cancelled"}),
        ],
    )
    payload = client.get("/student/seminars").get_json()
    assert [s["title"] for s in payload["upcoming"]] == ["Next"]
    assert [s["title"] for s in payload["ongoing"]] == ["Now"]
    assert [s["title"] for s in payload["completed"]] == ["Done"]
    assert payload["total"] == 3


def test_student_records_are_upcoming_only(client, admin_credentials):
    _as_student(
        client,
        admin_credentials,
        [
            ("records", {"subject": "Biology", "record_date": _day(6)}),
            ("records", {"subject": "History", "record_date": _day(-1)}),
            ("records", {"subject": "Physics", "record_date": _day(0)}),
        ],
    )
    payload = client.get("/student/records").get_json()
    assert [r["subject"] for r in payload["records"]] == ["Physics", "Biology"]


def test_student_views_require_student(admin_client):
    for view in ("homework", "updates", "seminars", "records"):
        assert admin_client.get(f"/student/{view}").status_code == 401
