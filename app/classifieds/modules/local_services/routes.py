from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.classifieds.constants import SERVICE_CATEGORIES, SERVICE_RATE_BASES, WEEKDAYS
from app.classifieds.db import db_session
from app.classifieds.models import User
from app.classifieds.modules.ads.service import AdError, ProfileIncompleteError, get_ad_for_owner
from app.classifieds.modules.local_services.service import (
    FORM_FIELDS,
    LIST_FIELDS,
    create_service_ad,
    parse_service_payload,
    service_ad_to_payload,
    update_service_ad,
)
from app.classifieds.rbac import require_permission
from app.classifieds.utils import form_payload

bp = Blueprint("local_services", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _render_form(payload: dict, *, ad_id: int | None = None, status: int = 200):
    return (
        render_template(
            "services/form.html",
            payload=payload,
            ad_id=ad_id,
            service_categories=SERVICE_CATEGORIES,
            rate_bases=SERVICE_RATE_BASES,
            weekdays=WEEKDAYS,
        ),
        status,
    )


@bp.get("/new")
@require_permission("ads.create")
def service_new_get():
    return _render_form({"availability_days": []})


@bp.post("/new")
@require_permission("ads.create")
def service_new_post():
    s = db_session()
    u = _current_user()
    payload = form_payload(request.form, FORM_FIELDS, LIST_FIELDS)
    fields, errors = parse_service_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return _render_form(payload, status=400)
    try:
        ad = create_service_ad(s, u, fields)
    except ProfileIncompleteError as e:
        flash(str(e), "danger")
        return redirect(url_for("profiles.profile_get"))
    s.commit()
    flash("Your ad was submitted and is pending review.", "success")
    return redirect(url_for("ads.ad_detail", ad_id=ad.id))


@bp.get("/<int:ad_id>/edit")
@require_permission("ads.edit_own")
def service_edit_get(ad_id: int):
    s = db_session()
    try:
        ad = get_ad_for_owner(s, ad_id, _current_user(), category="SERVICES")
    except AdError as e:
        flash(str(e), "danger")
        return redirect(url_for("ads.my_ads"))
    return _render_form(service_ad_to_payload(ad), ad_id=ad.id)


@bp.post("/<int:ad_id>/edit")
@require_permission("ads.edit_own")
def service_edit_post(ad_id: int):
    s = db_session()
    u = _current_user()
    payload = form_payload(request.form, FORM_FIELDS, LIST_FIELDS)
    fields, errors = parse_service_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return _render_form(payload, ad_id=ad_id, status=400)
    try:
        update_service_ad(s, u, ad_id, fields)
    except AdError as e:
        flash(str(e), "danger")
        return redirect(url_for("ads.my_ads"))
    s.commit()
    flash("Your changes were saved and the ad was sent for review.", "success")
    return redirect(url_for("ads.ad_detail", ad_id=ad_id))
