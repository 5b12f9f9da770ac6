from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.classifieds.constants import TRANSPORT_DIRECTIONS, TRANSPORT_PRICE_MODES
from app.classifieds.db import db_session
from app.classifieds.models import User
from app.classifieds.modules.ads.service import AdError, ProfileIncompleteError, get_ad_for_owner
from app.classifieds.modules.transportation.service import (
    FORM_FIELDS,
    LIST_FIELDS,
    create_transport_ad,
    parse_transport_payload,
    transport_ad_to_payload,
    update_transport_ad,
)
from app.classifieds.rbac import require_permission
from app.classifieds.utils import form_payload

bp = Blueprint("transportation", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _render_form(payload: dict, *, ad_id: int | None = None, status: int = 200):
    return (
        render_template(
            "transportation/form.html",
            payload=payload,
            ad_id=ad_id,
            directions=TRANSPORT_DIRECTIONS,
            price_modes=TRANSPORT_PRICE_MODES,
        ),
        status,
    )


@bp.get("/new")
@require_permission("ads.create")
def transport_new_get():
    return _render_form({"price_mode": "NEGOTIABLE", "subject_to_inspection": True})


@bp.post("/new")
@require_permission("ads.create")
def transport_new_post():
    s = db_session()
    u = _current_user()
    payload = form_payload(request.form, FORM_FIELDS, LIST_FIELDS)
    fields, errors = parse_transport_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return _render_form(payload, status=400)
    try:
        ad = create_transport_ad(s, u, fields)
    except ProfileIncompleteError as e:
        flash(str(e), "danger")
        return redirect(url_for("profiles.profile_get"))
    s.commit()
    flash("Your ad was submitted and is pending review.", "success")
    return redirect(url_for("ads.ad_detail", ad_id=ad.id))


@bp.get("/<int:ad_id>/edit")
@require_permission("ads.edit_own")
def transport_edit_get(ad_id: int):
    s = db_session()
    try:
        ad = get_ad_for_owner(s, ad_id, _current_user(), category="TRANSPORTATION")
    except AdError as e:
        flash(str(e), "danger")
        return redirect(url_for("ads.my_ads"))
    return _render_form(transport_ad_to_payload(ad), ad_id=ad.id)


@bp.post("/<int:ad_id>/edit")
@require_permission("ads.edit_own")
def transport_edit_post(ad_id: int):
    s = db_session()
    u = _current_user()
    payload = form_payload(request.form, FORM_FIELDS, LIST_FIELDS)
    fields, errors = parse_transport_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return _render_form(payload, ad_id=ad_id, status=400)
    try:
        update_transport_ad(s, u, ad_id, fields)
    except AdError as e:
        flash(str(e), "danger")
        return redirect(url_for("ads.my_ads"))
    s.commit()
    flash("Your changes were saved and the ad was sent for review.", "success")
    return redirect(url_for("ads.ad_detail", ad_id=ad_id))
