from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.classifieds.audit import record_event
from app.classifieds.constants import AD_CATEGORIES, AD_STATUSES, AUDIT_ENTITY_BY_CATEGORY, CATEGORY_LABELS

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.classifieds.models import User
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.media.service import UploadedImage

logger = logging.getLogger(__name__)

SORT_ORDERS = ("newest", "oldest")
PUBLIC_PAGE_SIZE = 20


class AdError(Exception):
    """Base for ad-level domain errors; str(err) is safe to show to the user."""

    default_message = "Something went wrong."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class AdNotFoundError(AdError):
    default_message = "Ad not found."


class NotOwnerError(AdError):
    default_message = "You do not have permission to perform this action."


class CategoryMismatchError(AdError):
    default_message = "Invalid ad category."


class ProfileIncompleteError(AdError):
    default_message = "Please complete your profile and select a city before creating an ad."


class MediaError(AdError):
    default_message = "At least one image is required"


# ---------- Lookups ----------
def get_ad_for_owner(s: "Session", ad_id: int, user: "User", category: str | None = None) -> "Ad":
    from app.classifieds.modules.ads.models import Ad

    ad = s.get(Ad, ad_id)
    if not ad:
        raise AdNotFoundError()
    if ad.user_id != user.id:
        raise NotOwnerError()
    if category and ad.category != category:
        raise CategoryMismatchError()
    return ad


def require_profile_city(user: "User") -> int:
    if not user.city_id:
        raise ProfileIncompleteError()
    return user.city_id


def can_view_ad(ad: "Ad", user: "User | None") -> bool:
    """Online ads are public; owners and moderators see every status."""
    if ad.status == "ONLINE":
        return True
    if user is None:
        return False
    if ad.user_id == user.id:
        return True
    from app.classifieds.rbac import user_has_permission

    return user_has_permission(user, "moderation.view")


# ---------- Owner listing ----------
def list_user_ads(
    s: "Session",
    user: "User",
    *,
    category: str | None = None,
    status: str | None = None,
    sort: str = "newest",
) -> list["Ad"]:
    from app.classifieds.modules.ads.models import Ad

    q = s.query(Ad).filter(Ad.user_id == user.id)
    if category in AD_CATEGORIES:
        q = q.filter(Ad.category == category)
    if status in AD_STATUSES:
        q = q.filter(Ad.status == status)
    if sort == "oldest":
        q = q.order_by(Ad.created_at.asc(), Ad.id.asc())
    else:
        q = q.order_by(Ad.created_at.desc(), Ad.id.desc())
    return q.all()


def filter_and_sort_ads(ads: list["Ad"], category: str | None, sort_order: str = "newest") -> list["Ad"]:
    result = [a for a in ads if not category or a.category == category]
    result.sort(key=lambda a: (a.created_at, a.id), reverse=(sort_order != "oldest"))
    return result


def calculate_ad_counts(ads: list["Ad"], active_category: str | None) -> dict[str, Any]:
    """
    Category tab counts over all ads, and status counts restricted to the active category
    (or to all ads when no category is selected).
    """
    categories = {c: 0 for c in AD_CATEGORIES}
    statuses = {st: 0 for st in AD_STATUSES}
    for ad in ads:
        categories[ad.category] = categories.get(ad.category, 0) + 1
        if not active_category or ad.category == active_category:
            statuses[ad.status] = statuses.get(ad.status, 0) + 1
    return {"categories": categories, "statuses": statuses, "total": len(ads)}


def format_days_left(days: int) -> str:
    if days <= 0:
        return "today"
    if days == 1:
        return "1 day left"
    return f"{days} days left"


def expiration_details(expiration_date: datetime | None, now: datetime | None = None) -> dict[str, Any] | None:
    if expiration_date is None:
        return None
    now = now or datetime.utcnow()
    seconds = (expiration_date - now).total_seconds()
    days_left = max(0, math.ceil(seconds / 86400))
    return {
        "days_left": days_left,
        "label": format_days_left(days_left),
        "is_expired": seconds <= 0,
    }


def ad_title(ad: "Ad") -> str:
    d = ad.details
    if ad.category == "HOUSING" and d is not None:
        from app.classifieds.constants import humanize

        where = d.neighborhood or (ad.city.name if ad.city else "")
        return f"{humanize(d.unit_type)} in {where}".strip()
    if ad.category == "TRANSPORTATION" and d is not None:
        return f"{d.departure_city} → {d.arrival_city}"
    if ad.category in ("MARKETPLACE", "SERVICES") and d is not None:
        return d.title
    return f"{CATEGORY_LABELS.get(ad.category, ad.category)} ad #{ad.id}"


def ad_price_label(ad: "Ad") -> str | None:
    d = ad.details
    if d is None:
        return None
    if ad.category == "HOUSING":
        if d.price_negotiable or d.price_amount is None:
            return "Negotiable"
        suffix = "/day" if d.price_type == "DAILY" else "/month"
        return f"€{d.price_amount}{suffix}"
    if ad.category == "TRANSPORTATION":
        if d.price_mode == "PER_KG" and d.price_per_kg is not None:
            return f"€{d.price_per_kg:g}/kg"
        if d.price_mode == "FIXED_TOTAL" and d.fixed_total_price is not None:
            return f"€{d.fixed_total_price:g}"
        return "Negotiable"
    if ad.category == "MARKETPLACE":
        return f"€{d.price:g}"
    if ad.category == "SERVICES" and d.rate_amount is not None:
        return f"€{d.rate_amount:g} ({(d.rate_basis or '').lower().replace('_', ' ')})"
    return None


# ---------- Media ----------
def replace_media(
    s: "Session",
    ad: "Ad",
    images: list["UploadedImage"],
    cover_key: str | None,
    *,
    require_images: bool = True,
) -> list[str]:
    """
    Replace the ad's gallery with `images` (in order) and set the cover.
    Returns storage keys that were dropped from the gallery so the caller can clean them up.
    """
    from app.classifieds.modules.ads.models import MediaAsset

    keys = [img.storage_key for img in images]
    if require_images and not keys:
        raise MediaError("At least one image is required")
    if keys and cover_key not in keys:
        raise MediaError("Cover image must be one of the uploaded images")

    existing = {m.storage_key: m for m in ad.media}
    dropped = [k for k in existing if k not in keys]

    ad.cover_media = None
    new_media: list[MediaAsset] = []
    for order, img in enumerate(images):
        m = existing.get(img.storage_key)
        if m is None:
            m = MediaAsset(
                kind="IMAGE",
                role="GALLERY",
                storage_key=img.storage_key,
                mime_type=img.mime_type,
                checksum=img.sha256 or None,
                alt=img.alt,
                width=img.width,
                height=img.height,
                bytes=img.bytes,
            )
        m.order = order
        new_media.append(m)
    ad.media = new_media
    ad.media_count = len(new_media)
    s.flush()
    if cover_key:
        ad.cover_media = next(m for m in new_media if m.storage_key == cover_key)
    return dropped


def images_from_media(ad: "Ad") -> list["UploadedImage"]:
    from app.classifieds.modules.media.service import UploadedImage

    return [
        UploadedImage(
            storage_key=m.storage_key,
            mime_type=m.mime_type or "application/octet-stream",
            bytes=m.bytes or 0,
            sha256=m.checksum or "",
            alt=m.alt,
            width=m.width,
            height=m.height,
        )
        for m in ad.media
    ]


# ---------- Delete ----------
def delete_ad(s: "Session", ad: "Ad", user: "User") -> list[str]:
    """
    Delete the ad (detail rows and media rows cascade).
    Returns the storage keys of its images; the caller removes them once the delete is committed.
    """
    keys = [m.storage_key for m in ad.media]
    ad_id, category = ad.id, ad.category

    ad.cover_media = None
    s.flush()
    s.delete(ad)
    s.flush()

    record_event(
        s,
        actor=user,
        action="ad.delete",
        entity_type=AUDIT_ENTITY_BY_CATEGORY.get(category, "AD"),
        entity_id=str(ad_id),
        metadata={"category": category, "images": len(keys)},
    )
    return keys


# ---------- Counters ----------
def record_view(s: "Session", ad: "Ad") -> None:
    ad.views_count = (ad.views_count or 0) + 1


def record_contact_click(s: "Session", ad: "Ad", user: "User | None") -> None:
    ad.contact_clicks_count = (ad.contact_clicks_count or 0) + 1
    record_event(
        s,
        actor=user,
        action="ad.contact_reveal",
        entity_type=AUDIT_ENTITY_BY_CATEGORY.get(ad.category, "AD"),
        entity_id=str(ad.id),
    )


# ---------- Public listing ----------
def list_public_ads(
    s: "Session",
    *,
    category: str | None = None,
    city_id: int | None = None,
    page: int = 1,
    per_page: int = PUBLIC_PAGE_SIZE,
) -> tuple[list["Ad"], int]:
    from app.classifieds.modules.ads.models import Ad

    q = s.query(Ad).filter(Ad.status == "ONLINE")
    if category in AD_CATEGORIES:
        q = q.filter(Ad.category == category)
    if city_id:
        q = q.filter(Ad.city_id == city_id)
    total = q.count()
    page = max(1, page)
    items = q.order_by(Ad.created_at.desc(), Ad.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return items, total


# ---------- Scheduler ----------
def expire_due_ads(s: "Session", now: datetime | None = None) -> int:
    """
    Move ONLINE ads past their expiration date to EXPIRED, notify owners,
    and write one summary audit event. Returns the number of expired ads.
    """
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.moderation.models import ModerationAction
    from app.classifieds.modules.notifications.service import create_notification

    now = now or datetime.utcnow()
    due = (
        s.query(Ad)
        .filter(Ad.status == "ONLINE")
        .filter(Ad.expiration_date.isnot(None))
        .filter(Ad.expiration_date < now)
        .all()
    )
    for ad in due:
        ad.status = "EXPIRED"
        ad.updated_at = now
        s.add(
            ModerationAction(
                actor_user_id=None,
                ad_id=ad.id,
                target_type="AD",
                action="EXPIRE",
                reason_code="EXPIRED",
                prev_status="ONLINE",
                next_status="EXPIRED",
                created_at=now,
            )
        )
        try:
            create_notification(
                s,
                user_id=ad.user_id,
                title="Ad Expired",
                body=f"Your {CATEGORY_LABELS.get(ad.category, ad.category).lower()} ad has expired.",
                severity="WARNING",
                ad_id=ad.id,
            )
        except Exception:
            logger.exception("Failed to queue expiry notification for ad %s", ad.id)

    record_event(
        s,
        actor=None,
        action="scheduler.expire_ads",
        entity_type="AD",
        metadata={"expired": len(due), "ad_ids": [a.id for a in due][:100], "run_at": now.isoformat()},
    )
    if due:
        logger.info("Expired %d ad(s)", len(due))
    return len(due)
