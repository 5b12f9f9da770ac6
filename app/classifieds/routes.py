import mimetypes

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, send_file, url_for

from app.classifieds.constants import AD_CATEGORIES, CATEGORY_LABELS
from app.classifieds.db import db_session
from app.classifieds.modules.ads.models import Ad
from app.classifieds.modules.ads.service import (
    PUBLIC_PAGE_SIZE,
    ad_price_label,
    ad_title,
    can_view_ad,
    list_public_ads,
    record_contact_click,
    record_view,
)
from app.classifieds.modules.cities.service import list_active_cities
from app.classifieds.storage import StorageError, storage_from_config

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    s = db_session()
    category = (request.args.get("category") or "").strip().upper() or None
    if category not in AD_CATEGORIES:
        category = None
    try:
        city_id = int(request.args.get("city") or 0) or None
        page = max(1, int(request.args.get("page") or 1))
    except ValueError:
        city_id, page = None, 1

    ads, total = list_public_ads(s, category=category, city_id=city_id, page=page)
    pages = max(1, (total + PUBLIC_PAGE_SIZE - 1) // PUBLIC_PAGE_SIZE)
    return render_template(
        "public/index.html",
        rows=[{"ad": a, "title": ad_title(a), "price": ad_price_label(a)} for a in ads],
        total=total,
        page=page,
        pages=pages,
        category=category,
        city_id=city_id,
        cities=list_active_cities(s),
        categories=AD_CATEGORIES,
        category_labels=CATEGORY_LABELS,
    )


@bp.get("/ads/<int:ad_id>")
def ad_public(ad_id: int):
    s = db_session()
    ad = s.get(Ad, ad_id)
    user = getattr(g, "current_user", None)
    if not ad or not can_view_ad(ad, user):
        abort(404)
    if ad.status == "ONLINE" and (user is None or user.id != ad.user_id):
        record_view(s, ad)
        s.commit()
    return render_template(
        "public/ad.html",
        ad=ad,
        title=ad_title(ad),
        price=ad_price_label(ad),
        show_contact=bool(request.args.get("contact")),
        category_labels=CATEGORY_LABELS,
    )


@bp.post("/ads/<int:ad_id>/contact")
def ad_contact(ad_id: int):
    s = db_session()
    ad = s.get(Ad, ad_id)
    user = getattr(g, "current_user", None)
    if not ad or ad.status != "ONLINE":
        abort(404)
    if user is None:
        flash("Log in to see contact details.", "info")
        return redirect(url_for("auth.login_get", next=url_for("routes.ad_public", ad_id=ad_id)))
    record_contact_click(s, ad, user)
    s.commit()
    return redirect(url_for("routes.ad_public", ad_id=ad_id, contact=1))


@bp.get("/media/<path:key>")
def media(key: str):
    s = db_session()
    from app.classifieds.modules.ads.models import MediaAsset

    asset = s.query(MediaAsset).filter(MediaAsset.storage_key == key).first()
    user = getattr(g, "current_user", None)
    if asset is not None:
        if not can_view_ad(asset.ad, user):
            abort(404)
    elif user is None or not key.startswith("ads/") or f"/{user.id}/" not in key:
        # Uploads not yet attached to an ad are visible to their uploader only.
        abort(404)

    storage = storage_from_config(current_app.config)
    try:
        fh = storage.open(key)
    except StorageError:
        abort(404)
    mimetype = (asset.mime_type if asset else None) or mimetypes.guess_type(key)[0] or "application/octet-stream"
    return send_file(fh, mimetype=mimetype, max_age=3600)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Fast liveness check. No DB access."""
    return "ok", 200
