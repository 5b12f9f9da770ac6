from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from app.classifieds.audit import record_event
from app.classifieds.constants import MARKETPLACE_CONDITIONS
from app.classifieds.modules.ads.service import get_ad_for_owner, replace_media, require_profile_city
from app.classifieds.utils import FormValueError, clean_text, parse_float

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.classifieds.models import User
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.media.service import UploadedImage

ENTITY_TYPE = "AD_MARKETPLACE"
LISTING_DAYS = 30
TITLE_MAX = 255
DESCRIPTION_MAX = 2000
PRICE_MAX = 1_000_000

FORM_FIELDS = ("title", "description", "price", "condition", "category")


def parse_marketplace_payload(payload: dict) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    out: dict[str, Any] = {}

    try:
        out["title"] = clean_text(payload.get("title"), TITLE_MAX)
    except FormValueError as e:
        errors.append(f"Title: {e}")
        out["title"] = None
    if not out["title"] and not errors:
        errors.append("Title: This field is required")

    try:
        out["description"] = clean_text(payload.get("description"), DESCRIPTION_MAX)
    except FormValueError as e:
        errors.append(f"Description: {e}")
        out["description"] = None
    if not out["description"] and not any(e.startswith("Description") for e in errors):
        errors.append("Description: This field is required")

    try:
        price = parse_float(payload.get("price"))
    except FormValueError as e:
        errors.append(f"Price: {e}")
        price = None
    else:
        if price is None:
            errors.append("Price: This field is required")
        elif price < 0:
            errors.append("Price: Amount cannot be negative")
        elif price > PRICE_MAX:
            errors.append(f"Price: Maximum is {PRICE_MAX}")
    out["price"] = price

    condition = (payload.get("condition") or "").strip().upper()
    if condition not in MARKETPLACE_CONDITIONS:
        errors.append("Condition: Select an option!")
        condition = None
    out["condition"] = condition

    try:
        out["category"] = clean_text(payload.get("category"), 64)
    except FormValueError as e:
        errors.append(f"Category: {e}")
    return out, errors


def create_marketplace_ad(
    s: "Session", user: "User", fields: dict[str, Any], images: list["UploadedImage"], cover_key: str | None
) -> "Ad":
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.marketplace.models import AdMarketplace

    city_id = require_profile_city(user)
    now = datetime.utcnow()
    ad = Ad(
        user_id=user.id,
        city_id=city_id,
        category="MARKETPLACE",
        status="PENDING",
        expiration_date=now + timedelta(days=LISTING_DAYS),
        created_at=now,
        updated_at=now,
    )
    ad.marketplace = AdMarketplace(**fields)
    s.add(ad)
    s.flush()
    replace_media(s, ad, images, cover_key or (images[0].storage_key if images else None), require_images=False)
    record_event(
        s,
        actor=user,
        action="ad.create",
        entity_type=ENTITY_TYPE,
        entity_id=str(ad.id),
        metadata={"title": fields["title"], "price": fields["price"], "images": len(images)},
    )
    return ad


def update_marketplace_ad(
    s: "Session",
    user: "User",
    ad_id: int,
    fields: dict[str, Any],
    images: list["UploadedImage"],
    cover_key: str | None,
) -> tuple["Ad", list[str]]:
    ad = get_ad_for_owner(s, ad_id, user, category="MARKETPLACE")
    m = ad.marketplace
    changes = {}
    for name, new in fields.items():
        old = getattr(m, name)
        if old != new:
            changes[name] = {"old": old, "new": new}
            setattr(m, name, new)
    keys = [img.storage_key for img in images]
    if cover_key not in keys:
        cover_key = keys[0] if keys else None
    dropped = replace_media(s, ad, images, cover_key, require_images=False)
    prev_status = ad.status
    ad.status = "PENDING"
    ad.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="ad.edit",
        entity_type=ENTITY_TYPE,
        entity_id=str(ad.id),
        metadata={"prev_status": prev_status, "changes": changes, "images": len(images), "removed_images": len(dropped)},
    )
    return ad, dropped
