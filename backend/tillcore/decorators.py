# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, g

from .extensions import db
from .models import User


ACTOR_HEADER = "X-User-Id"


def _resolve_actor_id() -> int | None:
    raw = (request.headers.get(ACTOR_HEADER) or "").strip()
    if not raw.isdigit():
        return None
    user = db.session.get(User, int(raw))
    if user is None or not user.is_active:
        return None
    return user.id


def with_actor(f):
    """
    Establish the acting user for the request.

    Authentication happens upstream; the gateway forwards the user id in
    the X-User-Id header. Sets:
    - g.actor_id: id of an active User, or None when absent or unknown
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.actor_id = _resolve_actor_id()
        return f(*args, **kwargs)

    return decorated_function
