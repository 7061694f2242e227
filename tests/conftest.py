import uuid

import pytest
from werkzeug.security import generate_password_hash

from school_portal.app import create_app
from school_portal.app.services.db_service import init_db, now_iso


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "school_portal.db"
    init_db(path)
    return path


@pytest.fixture
def app(db_path):
    app = create_app({"DB_PATH": db_path, "TESTING": True, "SOURCE_FETCH_TIMEOUT": 5})
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_credentials(app):
    import sqlite3

    username = "registrar"
    password = "registrar-pass"
    conn = sqlite3.connect(app.config["DB_PATH"])
    try:
        conn.execute(
            "INSERT INTO admin_users (id, username, password_hash, created_at) VALUES (?, ?, ?, ?)",
            (str(uuid.uuid4()), username, generate_password_hash(password), now_iso()),
        )
        conn.commit()
    finally:
        conn.close()
    return username, password


@pytest.fixture
def admin_client(client, admin_credentials):
    username, password = admin_credentials
    resp = client.post("/admin/login", data={"username": username, "password": password})
    assert resp.status_code == 200
    return client


@pytest.fixture
def student_client(client):
    resp = client.post(
        "/register",
        data={"register_number": "REG-001", "password": "secret1", "confirm_password": "secret1"},
    )
    assert resp.status_code == 201
    return client
