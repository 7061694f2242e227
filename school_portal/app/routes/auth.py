from __future__ import annotations

import logging
import sqlite3
import uuid

from flask import Blueprint, jsonify, request
from werkzeug.security import check_password_hash, generate_password_hash

from ..services.auth_service import (
    ROLE_ADMIN,
    ROLE_STUDENT,
    Principal,
    get_current_principal,
    sign_in,
    sign_out,
)
from ..services.db_service import get_db, now_iso


logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)


@bp.get("/me")
def me():
    principal = get_current_principal()
    if principal is None:
        return jsonify({"user": None})
    return jsonify({"user": {"id": principal.id, "role": principal.role, "name": principal.name}})


@bp.post("/login")
def login_post():
    register_number = (request.form.get("register_number") or "").strip()
    password = request.form.get("password") or ""
    if not register_number or not password:
        return jsonify({"error": "Please enter register number and password."}), 400

    db = get_db()
    student = db.execute("SELECT * FROM students WHERE register_number = ?", (register_number,)).fetchone()
    if not student or not check_password_hash(student["password_hash"], password):
        return jsonify({"error": "Invalid register number or password."}), 401

    sign_in(Principal(id=student["id"], role=ROLE_STUDENT, name=student["register_number"]))
    return jsonify({"user": {"id": student["id"], "role": ROLE_STUDENT}})


@bp.post("/register")
def register_post():
    register_number = (request.form.get("register_number") or "").strip()
    password = request.form.get("password") or ""
    confirm_password = request.form.get("confirm_password") or ""
    if not register_number or not password or not confirm_password:
        return jsonify({"error": "Please fill all required fields."}), 400
    if password != confirm_password:
        return jsonify({"error": "Passwords do not match."}), 400
    if len(password) < 6:
        return jsonify({"error": "Password must be at least 6 characters long."}), 400

    db = get_db()
    student_id = str(uuid.uuid4())
    try:
        db.execute(
            "INSERT INTO students (id, register_number, password_hash, created_at) VALUES (?, ?, ?, ?)",
            (student_id, register_number, generate_password_hash(password), now_iso()),
        )
        db.commit()
    except sqlite3.IntegrityError:
        return jsonify({"error": "Register number already exists. Please login instead."}), 409

    logger.info("Student registered: %s", register_number)
    sign_in(Principal(id=student_id, role=ROLE_STUDENT, name=register_number))
    return jsonify({"user": {"id": student_id, "role": ROLE_STUDENT}}), 201


@bp.post("/admin/login")
def admin_login_post():
    username = (request.form.get("username") or "").strip()
    password = request.form.get("password") or ""
    if not username or not password:
        return jsonify({"error": "Please enter username and password."}), 400

    db = get_db()
    admin_user = db.execute("SELECT * FROM admin_users WHERE username = ?", (username,)).fetchone()
    if not admin_user or not check_password_hash(admin_user["password_hash"], password):
        return jsonify({"error": "Invalid username or password."}), 401

    sign_in(Principal(id=admin_user["id"], role=ROLE_ADMIN, name=admin_user["username"]))
    return jsonify({"user": {"id": admin_user["id"], "role": ROLE_ADMIN}})


@bp.get("/logout")
def logout():
    sign_out()
    return jsonify({"user": None})
