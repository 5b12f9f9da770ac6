from __future__ import annotations

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for

from app.classifieds.constants import MARKETPLACE_CONDITIONS
from app.classifieds.db import db_session
from app.classifieds.models import User
from app.classifieds.modules.ads.service import (
    AdError,
    ProfileIncompleteError,
    get_ad_for_owner,
    images_from_media,
    require_profile_city,
)
from app.classifieds.modules.marketplace.service import (
    FORM_FIELDS,
    create_marketplace_ad,
    parse_marketplace_payload,
    update_marketplace_ad,
)
from app.classifieds.modules.media.service import ImageValidationError, UploadedImage, discard_images, upload_ad_image
from app.classifieds.rbac import require_permission
from app.classifieds.storage import storage_from_config
from app.classifieds.utils import form_payload

bp = Blueprint("marketplace", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _render_form(payload: dict, *, ad=None, status: int = 200):
    return (
        render_template(
            "marketplace/form.html",
            payload=payload,
            ad=ad,
            conditions=MARKETPLACE_CONDITIONS,
            max_images=int(current_app.config.get("MAX_AD_IMAGES") or 8),
        ),
        status,
    )


def _upload_files(storage, user: User, room: int) -> tuple[list[UploadedImage], list[str]]:
    """Store posted images; returns (uploaded, errors). Nothing is stored when any file is rejected."""
    files = [f for f in request.files.getlist("images") if f and f.filename]
    if len(files) > room:
        return [], [f"You can upload up to {current_app.config.get('MAX_AD_IMAGES') or 8} images"]
    uploaded: list[UploadedImage] = []
    for f in files:
        try:
            uploaded.append(
                upload_ad_image(
                    storage,
                    user_id=user.id,
                    category="MARKETPLACE",
                    file_bytes=f.read(),
                    filename=f.filename or "image",
                    max_bytes=int(current_app.config.get("MAX_IMAGE_BYTES") or 10 * 1024 * 1024),
                )
            )
        except ImageValidationError as e:
            discard_images(storage, [img.storage_key for img in uploaded])
            return [], [str(e)]
    return uploaded, []


@bp.get("/new")
@require_permission("ads.create")
def marketplace_new_get():
    return _render_form({"condition": "USED"})


@bp.post("/new")
@require_permission("ads.create")
def marketplace_new_post():
    s = db_session()
    u = _current_user()
    try:
        require_profile_city(u)
    except ProfileIncompleteError as e:
        flash(str(e), "danger")
        return redirect(url_for("profiles.profile_get"))

    payload = form_payload(request.form, FORM_FIELDS)
    fields, errors = parse_marketplace_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return _render_form(payload, status=400)

    storage = storage_from_config(current_app.config)
    images, upload_errors = _upload_files(storage, u, int(current_app.config.get("MAX_AD_IMAGES") or 8))
    if upload_errors:
        for e in upload_errors:
            flash(e, "danger")
        return _render_form(payload, status=400)

    try:
        cover_index = int(request.form.get("cover_index") or 0)
    except ValueError:
        cover_index = 0
    cover_key = images[cover_index].storage_key if 0 <= cover_index < len(images) else None
    ad = create_marketplace_ad(s, u, fields, images, cover_key)
    s.commit()
    flash("Your ad was submitted and is pending review.", "success")
    return redirect(url_for("ads.ad_detail", ad_id=ad.id))


@bp.get("/<int:ad_id>/edit")
@require_permission("ads.edit_own")
def marketplace_edit_get(ad_id: int):
    s = db_session()
    try:
        ad = get_ad_for_owner(s, ad_id, _current_user(), category="MARKETPLACE")
    except AdError as e:
        flash(str(e), "danger")
        return redirect(url_for("ads.my_ads"))
    m = ad.marketplace
    payload = {name: getattr(m, name) for name in FORM_FIELDS}
    return _render_form(payload, ad=ad)


@bp.post("/<int:ad_id>/edit")
@require_permission("ads.edit_own")
def marketplace_edit_post(ad_id: int):
    s = db_session()
    u = _current_user()
    try:
        ad = get_ad_for_owner(s, ad_id, u, category="MARKETPLACE")
    except AdError as e:
        flash(str(e), "danger")
        return redirect(url_for("ads.my_ads"))

    payload = form_payload(request.form, FORM_FIELDS)
    fields, errors = parse_marketplace_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return _render_form(payload, ad=ad, status=400)

    remove = set(request.form.getlist("remove_images"))
    kept = [img for img in images_from_media(ad) if img.storage_key not in remove]
    max_images = int(current_app.config.get("MAX_AD_IMAGES") or 8)
    storage = storage_from_config(current_app.config)
    new_images, upload_errors = _upload_files(storage, u, max_images - len(kept))
    if upload_errors:
        for e in upload_errors:
            flash(e, "danger")
        return _render_form(payload, ad=ad, status=400)

    _, dropped = update_marketplace_ad(
        s, u, ad_id, fields, kept + new_images, (request.form.get("cover_key") or "").strip() or None
    )
    s.commit()
    discard_images(storage, dropped)
    flash("Your changes were saved and the ad was sent for review.", "success")
    return redirect(url_for("ads.ad_detail", ad_id=ad_id))
