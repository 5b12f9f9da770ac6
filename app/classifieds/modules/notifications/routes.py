from __future__ import annotations

from flask import Blueprint, g, jsonify, redirect, render_template, request, url_for

from app.classifieds.db import db_session
from app.classifieds.models import User
from app.classifieds.modules.notifications.service import (
    PAGE_SIZE,
    list_notifications,
    mark_all_read,
    mark_read,
    unread_count,
)
from app.classifieds.rbac import require_permission

bp = Blueprint("notifications", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/")
@require_permission("notifications.view")
def notifications_list():
    s = db_session()
    u = _current_user()
    unread_only = request.args.get("unread") == "1"
    try:
        page = max(1, int(request.args.get("page") or 1))
    except ValueError:
        page = 1
    items, total = list_notifications(s, u, unread_only=unread_only, page=page)
    return render_template(
        "notifications/list.html",
        items=items,
        total=total,
        page=page,
        pages=max(1, (total + PAGE_SIZE - 1) // PAGE_SIZE),
        unread_only=unread_only,
    )


@bp.post("/read")
@require_permission("notifications.view")
def notifications_mark_read():
    s = db_session()
    ids: list[int] = []
    for raw in request.form.getlist("ids"):
        try:
            ids.append(int(raw))
        except ValueError:
            continue
    mark_read(s, _current_user(), ids)
    s.commit()
    nxt = (request.form.get("next") or "").strip()
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    return redirect(url_for("notifications.notifications_list"))


@bp.post("/read-all")
@require_permission("notifications.view")
def notifications_mark_all_read():
    s = db_session()
    mark_all_read(s, _current_user())
    s.commit()
    return redirect(url_for("notifications.notifications_list"))


@bp.get("/count")
@require_permission("notifications.view")
def notifications_count():
    s = db_session()
    return jsonify({"unread": unread_count(s, _current_user())})
