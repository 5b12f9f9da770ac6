from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for

from app.classifieds.models import User

ViewFn = Callable[..., Any]


def permission_keys(user: User | None) -> set[str]:
    """Every permission granted to an active user through any of their roles."""
    if not user or not user.is_active:
        return set()
    return {perm.key for role in user.roles for perm in role.permissions}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    return permission_key in permission_keys(user)


def redirect_to_login():
    target = request.full_path or request.path
    # full_path always ends in '?', even without a query string
    target = target.rstrip("?")
    return redirect(url_for("auth.login_get", next=target))


def _guard(fn: ViewFn, permission_key: str | None) -> ViewFn:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return redirect_to_login()
        if permission_key and not user_has_permission(user, permission_key):
            g.missing_permission = permission_key
            abort(403)
        return fn(*args, **kwargs)

    return wrapped


def require_login(fn: ViewFn) -> ViewFn:
    """Any signed-in, active account may call the view."""
    return _guard(fn, None)


def require_permission(permission_key: str) -> Callable[[ViewFn], ViewFn]:
    """Anonymous visitors go to the login page; signed-in users lacking the permission get 403."""

    def decorator(fn: ViewFn) -> ViewFn:
        return _guard(fn, permission_key)

    return decorator
