from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.classifieds.constants import (
    AD_CATEGORIES,
    AD_STATUSES,
    CATEGORY_LABELS,
    MODERATION_REASON_LABELS,
    STATUS_LABELS,
)
from app.classifieds.db import db_session
from app.classifieds.models import AuditEvent, User
from app.classifieds.modules.ads.models import Ad
from app.classifieds.modules.ads.service import ad_price_label, ad_title, expiration_details
from app.classifieds.modules.cities.service import list_active_cities
from app.classifieds.modules.moderation.service import (
    SORT_FIELDS,
    ad_history,
    approve_ad,
    bulk_approve,
    bulk_reject,
    change_ad_status,
    list_ads_for_moderation,
    moderation_stats,
    reject_ad,
)
from app.classifieds.rbac import require_permission

bp = Blueprint("moderation", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _back_to(ad_id: int | None = None):
    nxt = (request.form.get("next") or "").strip()
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    if ad_id is not None:
        return redirect(url_for("moderation.ad_review", ad_id=ad_id))
    return redirect(url_for("moderation.queue"))


@bp.get("/")
@require_permission("moderation.view")
def index():
    s = db_session()
    return render_template(
        "moderation/index.html",
        stats=moderation_stats(s),
        category_labels=CATEGORY_LABELS,
        status_labels=STATUS_LABELS,
    )


@bp.get("/ads")
@require_permission("moderation.view")
def queue():
    s = db_session()
    args = request.args
    status = (args.get("status") or "PENDING").strip().upper()
    if status == "ALL":
        status = None
    category = (args.get("category") or "").strip().upper() or None
    try:
        city_id = int(args.get("city") or 0) or None
        page = max(1, int(args.get("page") or 1))
    except ValueError:
        city_id, page = None, 1
    date_from = _parse_date(args.get("date_from") or "")
    date_to = _parse_date(args.get("date_to") or "")
    if (args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")
    sort_by = (args.get("sort_by") or "created_at").strip()
    if sort_by not in SORT_FIELDS:
        sort_by = "created_at"
    sort_order = "asc" if (args.get("sort_order") or "").strip().lower() == "asc" else "desc"

    result = list_ads_for_moderation(
        s,
        search=args.get("q"),
        status=status,
        category=category,
        city_id=city_id,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
    )
    rows = [{"ad": a, "title": ad_title(a), "price": ad_price_label(a)} for a in result["items"]]
    return render_template(
        "moderation/queue.html",
        rows=rows,
        result=result,
        filters={
            "q": (args.get("q") or "").strip(),
            "status": status or "ALL",
            "category": category or "",
            "city": city_id,
            "date_from": (args.get("date_from") or "").strip(),
            "date_to": (args.get("date_to") or "").strip(),
            "sort_by": sort_by,
            "sort_order": sort_order,
        },
        cities=list_active_cities(s),
        categories=AD_CATEGORIES,
        statuses=AD_STATUSES,
        category_labels=CATEGORY_LABELS,
        status_labels=STATUS_LABELS,
        reasons=MODERATION_REASON_LABELS,
    )


@bp.get("/ads/<int:ad_id>")
@require_permission("moderation.view")
def ad_review(ad_id: int):
    s = db_session()
    ad = s.get(Ad, ad_id)
    if not ad:
        abort(404)
    return render_template(
        "moderation/detail.html",
        ad=ad,
        title=ad_title(ad),
        price=ad_price_label(ad),
        expiration=expiration_details(ad.expiration_date),
        history=ad_history(s, ad.id),
        statuses=AD_STATUSES,
        category_labels=CATEGORY_LABELS,
        status_labels=STATUS_LABELS,
        reasons=MODERATION_REASON_LABELS,
    )


@bp.post("/ads/<int:ad_id>/approve")
@require_permission("moderation.act")
def ad_approve(ad_id: int):
    s = db_session()
    error = approve_ad(s, ad_id, _current_user(), note=request.form.get("note"))
    s.commit()
    if error:
        flash(error, "danger")
    else:
        flash("Ad approved.", "success")
    return _back_to(ad_id)


@bp.post("/ads/<int:ad_id>/reject")
@require_permission("moderation.act")
def ad_reject(ad_id: int):
    s = db_session()
    error = reject_ad(s, ad_id, _current_user(), request.form.get("reason_code"), request.form.get("reason_text"))
    s.commit()
    if error:
        flash(error, "danger")
    else:
        flash("Ad rejected.", "success")
    return _back_to(ad_id)


@bp.post("/ads/<int:ad_id>/status")
@require_permission("moderation.act")
def ad_status(ad_id: int):
    s = db_session()
    new_status = (request.form.get("status") or "").strip().upper()
    error = change_ad_status(
        s,
        ad_id,
        _current_user(),
        new_status,
        request.form.get("reason_code"),
        request.form.get("reason_text"),
    )
    s.commit()
    if error:
        flash(error, "danger")
    else:
        flash(f"Status changed to {STATUS_LABELS.get(new_status, new_status)}.", "success")
    return _back_to(ad_id)


@bp.post("/ads/bulk")
@require_permission("moderation.act")
def ads_bulk():
    s = db_session()
    u = _current_user()
    ids: list[int] = []
    for raw in request.form.getlist("ad_ids"):
        try:
            ids.append(int(raw))
        except ValueError:
            continue
    if not ids:
        flash("Select at least one ad.", "danger")
        return _back_to()

    action = (request.form.get("action") or "").strip().lower()
    if action == "approve":
        result = bulk_approve(s, ids, u)
    elif action == "reject":
        result = bulk_reject(s, ids, u, request.form.get("reason_code"), request.form.get("reason_text"))
    else:
        flash("Unknown bulk action.", "danger")
        return _back_to()
    s.commit()

    if result["successful"]:
        flash(f"{len(result['successful'])} ad(s) updated.", "success")
    for failure in result["failed"]:
        flash(f"Ad #{failure['id']}: {failure['error']}", "danger")
    return _back_to()


@bp.get("/audit")
@require_permission("moderation.view")
def audit_list():
    """
    Audit trail browser (last 200 events) with filters:
    - action (contains)
    - actor_email (contains)
    - entity_type / entity_id (exact)
    - outcome (SUCCESS / FAILURE)
    - date range (YYYY-MM-DD, inclusive)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    entity_type = (request.args.get("entity_type") or "").strip()
    entity_id = (request.args.get("entity_id") or "").strip()
    outcome = (request.args.get("outcome") or "").strip().upper()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditEvent.entity_id == entity_id)
    if outcome in ("SUCCESS", "FAILURE"):
        q = q.filter(AuditEvent.outcome == outcome)
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template(
        "moderation/audit.html",
        events=events,
        action=action,
        actor_email=actor_email,
        entity_type=entity_type,
        entity_id=entity_id,
        outcome=outcome,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )
