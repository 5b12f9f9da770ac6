from __future__ import annotations

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for

from app.classifieds.constants import (
    BILLS_POLICIES,
    GENDER_PREFERENCES,
    HEATING_TYPES,
    HOUSEHOLD_GENDERS,
    HOUSING_CONTRACT_TYPES,
    HOUSING_PROPERTY_TYPES,
    HOUSING_RENTAL_KINDS,
    HOUSING_UNIT_TYPES,
)
from app.classifieds.db import db_session
from app.classifieds.models import User
from app.classifieds.modules.ads.service import AdError, ProfileIncompleteError
from app.classifieds.modules.housing.drafts import (
    add_image,
    cancel_draft,
    draft_images,
    get_draft,
    load_wizard,
    move_image,
    remove_image,
    set_cover,
    start_create_draft,
    start_edit_draft,
    store_wizard,
    submit_draft,
)
from app.classifieds.modules.housing.schema import FEATURE_FIELDS, coerce_step_input
from app.classifieds.modules.geo.service import point_in_city_radius
from app.classifieds.modules.housing.wizard import STEPS
from app.classifieds.modules.media.service import ImageValidationError, discard_images, upload_ad_image
from app.classifieds.rbac import require_permission
from app.classifieds.storage import storage_from_config

bp = Blueprint("housing", __name__)

OPTIONS = {
    "rental_kind": HOUSING_RENTAL_KINDS,
    "unit_type": HOUSING_UNIT_TYPES,
    "property_type": HOUSING_PROPERTY_TYPES,
    "contract_type": HOUSING_CONTRACT_TYPES,
    "bills_policy": BILLS_POLICIES,
    "heating_type": HEATING_TYPES,
    "household_gender": HOUSEHOLD_GENDERS,
    "gender_preference": GENDER_PREFERENCES,
}


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _storage():
    return storage_from_config(current_app.config)


def _max_images() -> int:
    return int(current_app.config.get("MAX_AD_IMAGES") or 8)


def _location_in_city(values: dict, city) -> bool:
    lat, lng = values.get("lat"), values.get("lng")
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return True
    return point_in_city_radius(lat, lng, city)


def _step_url(draft_id: int, step: int):
    return url_for("housing.wizard_step_get", draft_id=draft_id, step=step)


def _load(draft_id: int):
    """(session, user, draft, wizard) or a redirect response when the draft is gone."""
    s = db_session()
    u = _current_user()
    try:
        draft = get_draft(s, draft_id, u)
    except AdError as e:
        flash(str(e), "danger")
        return None, redirect(url_for("ads.my_ads"))
    return (s, u, draft, load_wizard(draft)), None


# ---------- Start ----------
@bp.get("/new")
@require_permission("ads.create")
def housing_new_get():
    return render_template("housing/start.html")


@bp.post("/new")
@require_permission("ads.create")
def housing_new_post():
    s = db_session()
    u = _current_user()
    try:
        draft = start_create_draft(s, u, max_images=_max_images())
    except ProfileIncompleteError as e:
        flash(str(e), "danger")
        return redirect(url_for("profiles.profile_get"))
    s.commit()
    return redirect(_step_url(draft.id, 1))


@bp.post("/<int:ad_id>/edit")
@require_permission("ads.edit_own")
def housing_edit_post(ad_id: int):
    s = db_session()
    u = _current_user()
    try:
        step = int(request.form.get("step") or request.args.get("step") or 1)
    except ValueError:
        step = 1
    try:
        draft = start_edit_draft(s, u, ad_id, initial_step=step, max_images=_max_images())
    except AdError as e:
        flash(str(e), "danger")
        return redirect(url_for("ads.my_ads"))
    s.commit()
    return redirect(_step_url(draft.id, draft.current_step))


# ---------- Steps ----------
@bp.get("/drafts/<int:draft_id>")
@require_permission("ads.create")
def wizard_resume(draft_id: int):
    loaded, resp = _load(draft_id)
    if resp:
        return resp
    _, _, draft, wizard = loaded
    return redirect(_step_url(draft.id, wizard.current_step))


@bp.get("/drafts/<int:draft_id>/step/<int:step>")
@require_permission("ads.create")
def wizard_step_get(draft_id: int, step: int):
    loaded, resp = _load(draft_id)
    if resp:
        return resp
    s, _, draft, wizard = loaded

    if step != wizard.current_step:
        if not wizard.go_to(step):
            flash("Complete the previous steps first.", "warning")
            return redirect(_step_url(draft.id, wizard.current_step))
        store_wizard(draft, wizard)
        s.commit()

    images = {img.storage_key: img for img in draft_images(draft)}
    return render_template(
        "housing/wizard.html",
        draft=draft,
        wizard=wizard,
        steps=STEPS,
        step=wizard.step_config,
        values=wizard.values,
        errors=wizard.errors,
        options=OPTIONS,
        feature_fields=FEATURE_FIELDS,
        images=[images[k] for k in (wizard.values.get("images") or []) if k in images],
        navigable={cfg.id: wizard.can_navigate_to(cfg.id) for cfg in STEPS},
        max_images=wizard.max_images,
    )


@bp.post("/drafts/<int:draft_id>/step/<int:step>")
@require_permission("ads.create")
def wizard_step_post(draft_id: int, step: int):
    loaded, resp = _load(draft_id)
    if resp:
        return resp
    s, u, draft, wizard = loaded

    if step != wizard.current_step:
        # Stale tab: ignore posted values and show where the wizard actually is.
        flash("This step is out of date; showing the current step.", "warning")
        return redirect(_step_url(draft.id, wizard.current_step))

    wizard.update(coerce_step_input(step, request.form))
    action = (request.form.get("action") or "next").strip()

    if action == "prev":
        wizard.go_prev()
    elif action == "goto":
        try:
            target = int(request.form.get("target") or 0)
        except ValueError:
            target = 0
        if not wizard.go_to(target):
            flash("Complete the previous steps first.", "warning")
    elif action in ("submit", "save"):
        if action == "submit" and draft.mode == "edit":
            flash("Use Save changes to update an existing ad.", "warning")
            store_wizard(draft, wizard)
            s.commit()
            return redirect(_step_url(draft.id, wizard.current_step))
        if action == "save" and not wizard.can_save:
            flash("No changes to save.", "info")
            store_wizard(draft, wizard)
            s.commit()
            return redirect(_step_url(draft.id, wizard.current_step))
        ad, errors, orphaned = submit_draft(s, draft, wizard, u)
        if ad is None:
            wizard.errors = dict(errors)
            first_bad = wizard.first_invalid_step(wizard.total_steps) or wizard.current_step
            wizard.current_step = first_bad
            store_wizard(draft, wizard)
            s.commit()
            flash("Please fix the highlighted fields.", "danger")
            return redirect(_step_url(draft.id, first_bad))
        s.commit()
        discard_images(_storage(), orphaned)
        if action == "save":
            flash("Your changes were saved and the ad was sent for review.", "success")
        else:
            flash("Your ad was submitted and is pending review.", "success")
        return redirect(url_for("ads.ad_detail", ad_id=ad.id))
    elif action == "stay":
        pass
    else:
        errors = wizard.go_next()
        if errors:
            flash("Please fix the highlighted fields.", "danger")
        elif step == 6 and u.city and not _location_in_city(wizard.values, u.city):
            flash(f"The selected location looks far from {u.city.name}. Please double-check the pin.", "warning")

    store_wizard(draft, wizard)
    s.commit()
    return redirect(_step_url(draft.id, wizard.current_step))


# ---------- Photos ----------
@bp.post("/drafts/<int:draft_id>/images")
@require_permission("ads.create")
def wizard_images_upload(draft_id: int):
    loaded, resp = _load(draft_id)
    if resp:
        return resp
    s, u, draft, wizard = loaded

    files = [f for f in request.files.getlist("images") if f and f.filename]
    if not files:
        flash("Choose at least one image to upload.", "danger")
        return redirect(_step_url(draft.id, 7))

    room = wizard.max_images - len(wizard.values.get("images") or [])
    if len(files) > room:
        flash(f"You can upload up to {wizard.max_images} images", "danger")
        files = files[: max(room, 0)]

    storage = _storage()
    uploaded = 0
    for f in files:
        try:
            image = upload_ad_image(
                storage,
                user_id=u.id,
                category="HOUSING",
                file_bytes=f.read(),
                filename=f.filename or "image",
                max_bytes=int(current_app.config.get("MAX_IMAGE_BYTES") or 10 * 1024 * 1024),
            )
        except ImageValidationError as e:
            flash(str(e), "danger")
            continue
        add_image(draft, wizard, image)
        uploaded += 1

    store_wizard(draft, wizard)
    s.commit()
    if uploaded:
        flash(f"Uploaded {uploaded} image(s).", "success")
    return redirect(_step_url(draft.id, 7))


@bp.post("/drafts/<int:draft_id>/images/remove")
@require_permission("ads.create")
def wizard_images_remove(draft_id: int):
    loaded, resp = _load(draft_id)
    if resp:
        return resp
    s, _, draft, wizard = loaded
    key = (request.form.get("storage_key") or "").strip()
    orphaned = remove_image(s, draft, wizard, key)
    if orphaned is None:
        flash("Image not found.", "danger")
    store_wizard(draft, wizard)
    s.commit()
    discard_images(_storage(), orphaned or [])
    return redirect(_step_url(draft.id, 7))


@bp.post("/drafts/<int:draft_id>/images/cover")
@require_permission("ads.create")
def wizard_images_cover(draft_id: int):
    loaded, resp = _load(draft_id)
    if resp:
        return resp
    s, _, draft, wizard = loaded
    key = (request.form.get("storage_key") or "").strip()
    if not set_cover(wizard, key):
        flash("Select a cover image", "danger")
    store_wizard(draft, wizard)
    s.commit()
    return redirect(_step_url(draft.id, 7))


@bp.post("/drafts/<int:draft_id>/images/move")
@require_permission("ads.create")
def wizard_images_move(draft_id: int):
    loaded, resp = _load(draft_id)
    if resp:
        return resp
    s, _, draft, wizard = loaded
    key = (request.form.get("storage_key") or "").strip()
    offset = -1 if request.form.get("direction") == "up" else 1
    move_image(wizard, key, offset)
    store_wizard(draft, wizard)
    s.commit()
    return redirect(_step_url(draft.id, 7))


# ---------- Reset / cancel ----------
@bp.post("/drafts/<int:draft_id>/reset")
@require_permission("ads.create")
def wizard_reset(draft_id: int):
    loaded, resp = _load(draft_id)
    if resp:
        return resp
    s, _, draft, wizard = loaded
    wizard.reset()
    store_wizard(draft, wizard)
    s.commit()
    flash("Form reset.", "info")
    return redirect(_step_url(draft.id, wizard.current_step))


@bp.post("/drafts/<int:draft_id>/cancel")
@require_permission("ads.create")
def wizard_cancel(draft_id: int):
    loaded, resp = _load(draft_id)
    if resp:
        return resp
    s, u, draft, _ = loaded
    ad_id = draft.ad_id
    orphaned = cancel_draft(s, draft, u)
    s.commit()
    discard_images(_storage(), orphaned)
    flash("Discarded.", "info")
    if ad_id:
        return redirect(url_for("ads.ad_detail", ad_id=ad_id))
    return redirect(url_for("ads.my_ads"))
