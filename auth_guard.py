# auth_guard.py
from __future__ import annotations

import jwt
from functools import wraps
from datetime import datetime, timezone, timedelta

from flask import request, g, current_app

from db import db
from errors import Forbidden, Unauthenticated
from models.user import User

__all__ = ["require_role", "issue_session_token", "session_cookie_name"]


def session_cookie_name() -> str:
    return current_app.config["SESSION_COOKIE_NAME_JWT"]


def issue_session_token(user: User) -> str:
    ttl = timedelta(hours=int(current_app.config["JWT_TTL_HOURS"]))
    return jwt.encode(
        {
            "user_id": user.id,
            "role": user.role,
            "exp": datetime.now(timezone.utc) + ttl,
        },
        current_app.config["SECRET_KEY"],
        algorithm="HS256",
    )


def _token_from_request() -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth.split(" ", 1)[1].strip() or None
    return request.cookies.get(session_cookie_name()) or None


def resolve_identity() -> User:
    """Validate the session credential and return its user, or raise Unauthenticated."""
    token = _token_from_request()
    if not token:
        raise Unauthenticated("Missing token")

    try:
        payload = jwt.decode(token, current_app.config["SECRET_KEY"], algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")

    uid = payload.get("user_id")
    user = db.session.get(User, uid) if isinstance(uid, int) else None
    if not user:
        raise Unauthenticated("User not found")
    return user


def require_role(*roles):
    """
    Usage:
      @require_role()                    -> any authenticated user
      @require_role("seller")            -> only sellers (or admin)
      @require_role("buyer", "seller")   -> buyers or sellers (or admin)
    """
    if len(roles) == 1 and isinstance(roles[0], (list, tuple, set)):
        roles = tuple(roles[0])
    allowed = {str(r).lower() for r in roles if r}

    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            user = resolve_identity()

            role = (user.role or "").lower()
            g.user = user  # type: ignore[attr-defined]
            g.role = role  # type: ignore[attr-defined]

            current_app.logger.info(
                "[guard] %s %s uid=%s role=%s ip=%s",
                request.method,
                request.path,
                user.id,
                role,
                request.remote_addr,
            )

            # Role check (admin bypass)
            if allowed and role not in allowed and role != "admin":
                raise Forbidden()

            return f(*args, **kwargs)

        return wrapped

    return decorator
