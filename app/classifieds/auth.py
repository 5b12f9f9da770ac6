from __future__ import annotations

import re
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from app.classifieds.audit import record_event, record_failure
from app.classifieds.db import db_session
from app.classifieds.models import Role, User
from app.classifieds.security import is_safe_next

bp = Blueprint("auth", __name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8
DEFAULT_ROLE_KEY = "user"
UNAUTHENTICATED_PATHS = ("/static/", "/health", "/healthz")


class LoginThrottle:
    """Sliding-window count of login attempts per client address (in-process only)."""

    def __init__(self, limit: int, window: timedelta):
        self.limit = limit
        self.window = window
        self._attempts: dict[str, list[datetime]] = defaultdict(list)

    def _recent(self, key: str, now: datetime) -> list[datetime]:
        recent = [t for t in self._attempts[key] if t > now - self.window]
        self._attempts[key] = recent
        return recent

    def blocked(self, key: str) -> bool:
        return len(self._recent(key, datetime.utcnow())) >= self.limit

    def hit(self, key: str) -> None:
        self._attempts[key].append(datetime.utcnow())

    def reset(self, key: str) -> None:
        self._attempts.pop(key, None)

    def clear(self) -> None:
        self._attempts.clear()


_login_attempts = LoginThrottle(limit=5, window=timedelta(minutes=5))


def _session_user() -> User | None:
    raw = session.get("user_id")
    if not raw:
        return None
    try:
        user = db_session().get(User, int(raw))
    except Exception as e:
        current_app.logger.error("Could not load session user %s (clearing session): %s", raw, e)
        user = None
    if user is None or not user.is_active:
        session.pop("user_id", None)
        return None
    return user


def load_current_user() -> None:
    """Set g.request_id (audit/log correlation) and g.current_user from the signed session cookie."""
    g.request_id = getattr(g, "request_id", None) or uuid.uuid4().hex
    if request.path.startswith(UNAUTHENTICATED_PATHS):
        g.current_user = None
        return
    g.current_user = _session_user()


def authenticate(s, email: str, password: str) -> User | None:
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is None or not user.is_active:
        return None
    if not check_password_hash(user.password_hash, password):
        return None
    return user


def validate_registration(email: str, password: str, name: str) -> list[str]:
    errors = []
    if not _EMAIL_RE.match(email):
        errors.append("Enter a valid email address.")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if not name:
        errors.append("Name is required.")
    return errors


def register_user(s, *, email: str, password: str, name: str) -> User:
    """Create an active account with the default role. Caller checks uniqueness and validity."""
    now = datetime.utcnow()
    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        name=name,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    role = s.query(Role).filter(Role.key == DEFAULT_ROLE_KEY).one_or_none()
    if role is not None:
        user.roles.append(role)
    else:
        current_app.logger.warning("Default role %r missing; run scripts/init_db.py", DEFAULT_ROLE_KEY)
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id))
    return user


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    client = request.remote_addr or "unknown"

    if _login_attempts.blocked(client):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))
    _login_attempts.hit(client)

    s = db_session()
    user = authenticate(s, email, password)
    if user is None:
        record_failure(
            s,
            actor=None,
            action="auth.login",
            error_code="INVALID_CREDENTIALS",
            entity_type="User",
            entity_id=email,
            metadata={"email": email},
        )
        s.commit()
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get", next=nxt) if nxt else url_for("auth.login_get"))

    session["user_id"] = user.id
    _login_attempts.reset(client)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return redirect(nxt if is_safe_next(nxt) else url_for("ads.my_ads"))


@bp.get("/register")
def register_get():
    return render_template("auth/register.html")


@bp.post("/register")
def register_post():
    s = db_session()
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    name = (request.form.get("name") or "").strip()

    errors = validate_registration(email, password, name)
    if not errors and s.query(User).filter(User.email == email).one_or_none():
        errors.append("An account with this email already exists.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("auth/register.html", email=email, name=name), 400

    user = register_user(s, email=email, password=password, name=name)
    s.commit()
    session["user_id"] = user.id
    flash("Welcome! Select your city to start posting ads.", "success")
    return redirect(url_for("profiles.profile_get"))


@bp.get("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return redirect(url_for("routes.index"))
