from fastapi import Depends, Header

from doclib.db import SessionLocal
from doclib.errors import ForbiddenError, LibraryError
from doclib.services.access import Actor


class UnauthorizedError(LibraryError):
    status_code = 401
    code = "unauthorized"


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _parse_int(value: str | None, header: str) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        raise UnauthorizedError(f"Invalid {header} header")


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_department_id: str | None = Header(default=None),
    x_permissions: str | None = Header(default=None),
    x_role_level: str | None = Header(default=None),
) -> Actor:
    """Build the caller's identity from headers set by the trusted gateway."""
    user_id = _parse_int(x_user_id, "X-User-Id")
    if user_id is None:
        raise UnauthorizedError("Missing X-User-Id header")
    permissions = frozenset(
        item.strip() for item in (x_permissions or "").split(",") if item.strip()
    )
    return Actor(
        user_id=user_id,
        department_id=_parse_int(x_department_id, "X-Department-Id"),
        permissions=permissions,
        role_level=_parse_int(x_role_level, "X-Role-Level") or 0,
    )


def require_permission(permission: str):
    def _require(actor: Actor = Depends(get_actor)) -> Actor:
        if not actor.has(permission):
            raise ForbiddenError(f"Missing permission: {permission}")
        return actor

    return _require
