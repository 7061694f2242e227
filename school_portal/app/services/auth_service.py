from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import session
from werkzeug.exceptions import Unauthorized as HTTPUnauthorized


ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"


class Unauthorized(HTTPUnauthorized):
    description = "You do not have permission to access this page."

    def __init__(self, role: str, description: str | None = None) -> None:
        super().__init__(description=description)
        self.role = role


@dataclass(frozen=True)
class Principal:
    id: str
    role: str
    name: str | None = None


def get_current_principal() -> Principal | None:
    uid = session.get("user_id")
    role = session.get("user_type")
    if not uid or role not in (ROLE_STUDENT, ROLE_ADMIN):
        return None
    return Principal(id=str(uid), role=role, name=session.get("display_name"))


def sign_in(principal: Principal) -> None:
    session.clear()
    session["user_id"] = principal.id
    session["user_type"] = principal.role
    if principal.name:
        session["display_name"] = principal.name


def sign_out() -> None:
    session.clear()


def require_role(role: str) -> Principal:
    principal = get_current_principal()
    if principal is None or principal.role != role:
        raise Unauthorized(role)
    return principal


def require_admin() -> Principal:
    return require_role(ROLE_ADMIN)


def require_student() -> Principal:
    return require_role(ROLE_STUDENT)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        require_student()
        return fn(*args, **kwargs)

    return wrapper


def admin_login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        require_admin()
        return fn(*args, **kwargs)

    return wrapper
