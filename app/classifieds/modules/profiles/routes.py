from __future__ import annotations

from datetime import datetime

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for

from app.classifieds.db import db_session
from app.classifieds.models import User
from app.classifieds.modules.cities.service import list_active_cities
from app.classifieds.modules.profiles.service import (
    change_city,
    next_city_change_at,
    update_profile,
    validate_profile_payload,
)
from app.classifieds.rbac import require_login

bp = Blueprint("profiles", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _cooldown_days() -> int:
    return int(current_app.config.get("CITY_CHANGE_COOLDOWN_DAYS") or 30)


@bp.get("/profile")
@require_login
def profile_get():
    s = db_session()
    u = _current_user()
    return render_template(
        "profiles/profile.html",
        user=u,
        cities=list_active_cities(s),
        next_city_change=next_city_change_at(u, _cooldown_days()),
        now_utc=datetime.utcnow(),
    )


@bp.post("/profile")
@require_login
def profile_post():
    s = db_session()
    u = _current_user()
    payload = {
        "name": request.form.get("name"),
        "handle": request.form.get("handle"),
        "telegram_handle": request.form.get("telegram_handle"),
    }
    errors = validate_profile_payload(s, payload, u)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("profiles.profile_get"))

    changes = update_profile(s, u, payload)
    s.commit()
    flash("Profile updated." if changes else "No changes.", "success" if changes else "info")
    return redirect(url_for("profiles.profile_get"))


@bp.post("/profile/city")
@require_login
def profile_city_post():
    s = db_session()
    u = _current_user()
    try:
        city_id = int(request.form.get("city_id") or 0)
    except ValueError:
        city_id = 0
    errors = change_city(s, u, city_id, cooldown_days=_cooldown_days())
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("profiles.profile_get"))
    s.commit()
    flash("City updated.", "success")
    return redirect(url_for("profiles.profile_get"))
