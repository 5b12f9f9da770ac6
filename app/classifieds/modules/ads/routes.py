from __future__ import annotations

from datetime import datetime

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for

from app.classifieds.constants import AD_CATEGORIES, AD_STATUSES, CATEGORY_LABELS, STATUS_LABELS
from app.classifieds.db import db_session
from app.classifieds.models import User
from app.classifieds.modules.ads.service import (
    SORT_ORDERS,
    AdError,
    ad_price_label,
    ad_title,
    calculate_ad_counts,
    delete_ad,
    expiration_details,
    filter_and_sort_ads,
    get_ad_for_owner,
    list_user_ads,
)
from app.classifieds.modules.media.service import discard_images
from app.classifieds.rbac import require_login, require_permission
from app.classifieds.storage import storage_from_config

bp = Blueprint("ads", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/")
@require_login
def dashboard_index():
    return redirect(url_for("ads.my_ads"))


@bp.get("/create")
@require_permission("ads.create")
def create_ad_chooser():
    return render_template("ads/create.html", needs_city=not _current_user().city_id)


# ---------- My ads ----------
@bp.get("/ads")
@require_permission("ads.view_own")
def my_ads():
    s = db_session()
    u = _current_user()

    category = (request.args.get("category") or "").strip().upper() or None
    if category not in AD_CATEGORIES:
        category = None
    status = (request.args.get("status") or "").strip().upper() or None
    if status not in AD_STATUSES:
        status = None
    sort = (request.args.get("sort") or "newest").strip().lower()
    if sort not in SORT_ORDERS:
        sort = "newest"

    all_ads = list_user_ads(s, u)
    counts = calculate_ad_counts(all_ads, category)
    ads = filter_and_sort_ads(all_ads, category, sort)
    if status:
        ads = [a for a in ads if a.status == status]

    now = datetime.utcnow()
    rows = [
        {
            "ad": a,
            "title": ad_title(a),
            "price": ad_price_label(a),
            "expiration": expiration_details(a.expiration_date, now) if a.status == "ONLINE" else None,
        }
        for a in ads
    ]
    return render_template(
        "ads/my_ads.html",
        rows=rows,
        counts=counts,
        category=category,
        status=status,
        sort=sort,
        categories=AD_CATEGORIES,
        statuses=AD_STATUSES,
        category_labels=CATEGORY_LABELS,
        status_labels=STATUS_LABELS,
    )


# ---------- Detail ----------
@bp.get("/ads/<int:ad_id>")
@require_permission("ads.view_own")
def ad_detail(ad_id: int):
    from app.classifieds.modules.moderation.models import ModerationAction

    s = db_session()
    u = _current_user()
    try:
        ad = get_ad_for_owner(s, ad_id, u)
    except AdError as e:
        flash(str(e), "danger")
        return redirect(url_for("ads.my_ads"))

    history = (
        s.query(ModerationAction)
        .filter(ModerationAction.ad_id == ad.id)
        .order_by(ModerationAction.created_at.desc())
        .all()
    )
    return render_template(
        "ads/detail.html",
        ad=ad,
        title=ad_title(ad),
        price=ad_price_label(ad),
        expiration=expiration_details(ad.expiration_date),
        history=history,
        category_labels=CATEGORY_LABELS,
        status_labels=STATUS_LABELS,
    )


# ---------- Delete ----------
@bp.post("/ads/<int:ad_id>/delete")
@require_permission("ads.delete_own")
def ad_delete(ad_id: int):
    s = db_session()
    u = _current_user()
    try:
        ad = get_ad_for_owner(s, ad_id, u)
    except AdError as e:
        flash(str(e), "danger")
        return redirect(url_for("ads.my_ads"))

    try:
        keys = delete_ad(s, ad, u)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Ad delete failed (ad_id=%s request_id=%s)", ad_id, getattr(g, "request_id", None))
        flash("Failed to delete ad.", "danger")
        return redirect(url_for("ads.ad_detail", ad_id=ad_id))

    discard_images(storage_from_config(current_app.config), keys)
    flash("Ad deleted.", "success")
    return redirect(url_for("ads.my_ads"))
