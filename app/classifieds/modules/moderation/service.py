from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, func, or_

from app.classifieds.audit import record_event, record_failure
from app.classifieds.constants import (
    AD_CATEGORIES,
    AD_STATUSES,
    AUDIT_ENTITY_BY_CATEGORY,
    MODERATION_REASON_CODES,
    MODERATION_REASON_LABELS,
    STATUS_LABELS,
)
from app.classifieds.modules.ads.service import AdError, AdNotFoundError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.classifieds.models import User
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.moderation.models import ModerationAction

logger = logging.getLogger(__name__)

QUEUE_PAGE_SIZE = 20
SORT_FIELDS = ("created_at", "updated_at", "status", "category", "city")

# Target status -> (moderation action, notification severity, notification title)
STATUS_TRANSITIONS = {
    "ONLINE": ("APPROVE", "SUCCESS", "Ad Approved"),
    "REJECTED": ("REJECT", "ERROR", "Ad Rejected"),
    "EXPIRED": ("EXPIRE", "WARNING", "Ad Expired"),
    "PENDING": ("RESTORE", "INFO", "Ad Back in Review"),
}


class InvalidStatusTransition(AdError):
    default_message = "This status change is not allowed."


def reason_label(code: str | None) -> str:
    if not code:
        return ""
    return MODERATION_REASON_LABELS.get(code, code)


# ---------- Queue ----------
def list_ads_for_moderation(
    s: "Session",
    *,
    search: str | None = None,
    status: str | None = None,
    category: str | None = None,
    city_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = QUEUE_PAGE_SIZE,
) -> dict[str, Any]:
    """
    Moderator ad queue with search, filters and pagination.
    Search matches owner name/email/handle, housing neighborhood and marketplace/service titles.
    Date range is inclusive of whole days.
    """
    from app.classifieds.models import User
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.cities.models import City
    from app.classifieds.modules.housing.models import AdHousing
    from app.classifieds.modules.local_services.models import AdService
    from app.classifieds.modules.marketplace.models import AdMarketplace

    q = s.query(Ad).join(User, Ad.user_id == User.id).join(City, Ad.city_id == City.id)
    if status in AD_STATUSES:
        q = q.filter(Ad.status == status)
    if category in AD_CATEGORIES:
        q = q.filter(Ad.category == category)
    if city_id:
        q = q.filter(Ad.city_id == city_id)
    if date_from:
        q = q.filter(Ad.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(Ad.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    term = (search or "").strip().lower()
    if term:
        like = f"%{term}%"
        q = (
            q.outerjoin(AdHousing, AdHousing.ad_id == Ad.id)
            .outerjoin(AdMarketplace, AdMarketplace.ad_id == Ad.id)
            .outerjoin(AdService, AdService.ad_id == Ad.id)
            .filter(
                or_(
                    func.lower(User.name).like(like),
                    func.lower(User.email).like(like),
                    func.lower(User.handle).like(like),
                    func.lower(AdHousing.neighborhood).like(like),
                    func.lower(AdMarketplace.title).like(like),
                    func.lower(AdService.title).like(like),
                )
            )
        )

    columns = {
        "created_at": Ad.created_at,
        "updated_at": Ad.updated_at,
        "status": Ad.status,
        "category": Ad.category,
        "city": City.name,
    }
    col = columns.get(sort_by, Ad.created_at)
    ordering = col.asc() if sort_order == "asc" else col.desc()

    limit = max(1, min(int(limit or QUEUE_PAGE_SIZE), 100))
    total = q.count()
    page = max(1, page)
    items = q.order_by(ordering, Ad.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": items,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
        "page": page,
        "limit": limit,
    }


def moderation_stats(s: "Session", now: datetime | None = None) -> dict[str, Any]:
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.cities.models import City

    now = now or datetime.utcnow()
    by_status = dict(s.query(Ad.status, func.count(Ad.id)).group_by(Ad.status).all())
    pending_expr = func.sum(case((Ad.status == "PENDING", 1), else_=0))

    categories = [
        {"category": category, "pending": int(pending or 0), "total": int(total)}
        for category, pending, total in s.query(Ad.category, pending_expr, func.count(Ad.id))
        .group_by(Ad.category)
        .order_by(Ad.category)
        .all()
    ]
    cities = [
        {"city": name, "pending": int(pending or 0), "total": int(total)}
        for name, pending, total in s.query(City.name, pending_expr, func.count(Ad.id))
        .join(Ad, Ad.city_id == City.id)
        .group_by(City.id, City.name)
        .order_by(pending_expr.desc(), func.count(Ad.id).desc())
        .limit(10)
        .all()
    ]
    return {
        "total": sum(by_status.values()),
        "statuses": {st: int(by_status.get(st, 0)) for st in AD_STATUSES},
        "this_week": s.query(Ad).filter(Ad.created_at >= now - timedelta(days=7)).count(),
        "this_month": s.query(Ad).filter(Ad.created_at >= now - timedelta(days=30)).count(),
        "categories": categories,
        "cities": cities,
    }


def ad_history(s: "Session", ad_id: int) -> list["ModerationAction"]:
    from app.classifieds.modules.moderation.models import ModerationAction

    return (
        s.query(ModerationAction)
        .filter(ModerationAction.ad_id == ad_id)
        .order_by(ModerationAction.created_at.desc(), ModerationAction.id.desc())
        .all()
    )


# ---------- Actions ----------
def _load_ad(s: "Session", ad_id: int) -> "Ad":
    from app.classifieds.modules.ads.models import Ad

    ad = s.get(Ad, ad_id)
    if not ad:
        raise AdNotFoundError()
    return ad


def _apply_transition(
    s: "Session",
    ad: "Ad",
    moderator: "User",
    *,
    next_status: str,
    action: str,
    reason_code: str | None,
    reason_text: str | None,
) -> "ModerationAction":
    from app.classifieds.modules.moderation.models import ModerationAction

    now = datetime.utcnow()
    row = ModerationAction(
        actor_user_id=moderator.id,
        ad_id=ad.id,
        target_type="AD",
        action=action,
        reason_code=reason_code,
        reason_text=reason_text,
        prev_status=ad.status,
        next_status=next_status,
        created_at=now,
    )
    s.add(row)
    ad.status = next_status
    ad.updated_at = now
    return row


def _notify_owner(s: "Session", ad: "Ad", *, severity: str, title: str, body: str, data: dict[str, Any]) -> None:
    from app.classifieds.modules.notifications.service import create_notification

    try:
        create_notification(s, user_id=ad.user_id, title=title, body=body, severity=severity, ad_id=ad.id, data=data)
    except Exception:
        logger.exception("Failed to queue moderation notification for ad %s", ad.id)


def _clean_reason(reason_code: str | None, reason_text: str | None) -> tuple[str | None, str | None]:
    code = (reason_code or "").strip().upper() or None
    if code is not None and code not in MODERATION_REASON_CODES:
        raise InvalidStatusTransition("Select a valid reason.")
    text = (reason_text or "").strip()[:1000] or None
    return code, text


def approve_ad(s: "Session", ad_id: int, moderator: "User", note: str | None = None) -> str | None:
    """PENDING -> ONLINE. Returns an error message, or None on success."""
    try:
        ad = _load_ad(s, ad_id)
        if ad.status != "PENDING":
            raise InvalidStatusTransition("Can only approve ads with PENDING status")
        prev = ad.status
        note = (note or "").strip()[:1000] or None
        _apply_transition(s, ad, moderator, next_status="ONLINE", action="APPROVE", reason_code=None, reason_text=note)
        _notify_owner(
            s,
            ad,
            severity="SUCCESS",
            title="Ad Approved",
            body="Your ad has been approved and is now live.",
            data={"category": ad.category, "prev_status": prev, "next_status": "ONLINE"},
        )
        record_event(
            s,
            actor=moderator,
            action="ad.approve",
            entity_type=AUDIT_ENTITY_BY_CATEGORY.get(ad.category, "AD"),
            entity_id=str(ad.id),
            reason=note,
            metadata={"prev_status": prev, "next_status": "ONLINE"},
        )
        return None
    except AdError as e:
        record_failure(
            s,
            actor=moderator,
            action="ad.approve",
            error_code="APPROVE_FAILED",
            entity_type="AD",
            entity_id=str(ad_id),
            metadata={"error": str(e)},
        )
        return str(e)


def reject_ad(
    s: "Session", ad_id: int, moderator: "User", reason_code: str | None, reason_text: str | None = None
) -> str | None:
    """PENDING -> REJECTED with a reason code. Returns an error message, or None on success."""
    try:
        code, text = _clean_reason(reason_code, reason_text)
        if not code:
            raise InvalidStatusTransition("A rejection reason is required")
        ad = _load_ad(s, ad_id)
        if ad.status != "PENDING":
            raise InvalidStatusTransition("Can only reject ads with PENDING status")
        prev = ad.status
        _apply_transition(
            s, ad, moderator, next_status="REJECTED", action="REJECT", reason_code=code, reason_text=text
        )
        label = reason_label(code)
        _notify_owner(
            s,
            ad,
            severity="ERROR",
            title="Ad Rejected",
            body=f"Reason: {label}. {text}" if text else f"Reason: {label}",
            data={"category": ad.category, "prev_status": prev, "next_status": "REJECTED", "reason_code": code},
        )
        record_event(
            s,
            actor=moderator,
            action="ad.reject",
            entity_type=AUDIT_ENTITY_BY_CATEGORY.get(ad.category, "AD"),
            entity_id=str(ad.id),
            reason=text or label,
            metadata={"prev_status": prev, "next_status": "REJECTED", "reason_code": code},
        )
        return None
    except AdError as e:
        record_failure(
            s,
            actor=moderator,
            action="ad.reject",
            error_code="REJECT_FAILED",
            entity_type="AD",
            entity_id=str(ad_id),
            metadata={"error": str(e), "reason_code": reason_code},
        )
        return str(e)


def change_ad_status(
    s: "Session",
    ad_id: int,
    moderator: "User",
    new_status: str,
    reason_code: str | None = None,
    reason_text: str | None = None,
) -> str | None:
    """Move an ad to any other status. Returns an error message, or None on success."""
    try:
        if new_status not in STATUS_TRANSITIONS:
            raise InvalidStatusTransition("Invalid status.")
        code, text = _clean_reason(reason_code, reason_text)
        ad = _load_ad(s, ad_id)
        if ad.status == new_status:
            raise InvalidStatusTransition(f"Ad is already {STATUS_LABELS[new_status].lower()}")
        action, severity, title = STATUS_TRANSITIONS[new_status]
        prev = ad.status
        _apply_transition(s, ad, moderator, next_status=new_status, action=action, reason_code=code, reason_text=text)
        body = f"Your ad status changed from {STATUS_LABELS[prev]} to {STATUS_LABELS[new_status]}."
        if code:
            body += f" Reason: {reason_label(code)}."
        if text:
            body += f" {text}"
        _notify_owner(
            s,
            ad,
            severity=severity,
            title=title,
            body=body,
            data={"category": ad.category, "prev_status": prev, "next_status": new_status, "reason_code": code},
        )
        record_event(
            s,
            actor=moderator,
            action="ad.status_change",
            entity_type=AUDIT_ENTITY_BY_CATEGORY.get(ad.category, "AD"),
            entity_id=str(ad.id),
            reason=text,
            metadata={"prev_status": prev, "next_status": new_status, "moderation_action": action, "reason_code": code},
        )
        return None
    except AdError as e:
        record_failure(
            s,
            actor=moderator,
            action="ad.status_change",
            error_code="STATUS_CHANGE_FAILED",
            entity_type="AD",
            entity_id=str(ad_id),
            metadata={"error": str(e), "next_status": new_status},
        )
        return str(e)


def _bulk(s: "Session", moderator: "User", ad_ids: list[int], action: str, fn) -> dict[str, Any]:
    successful: list[int] = []
    failed: list[dict[str, Any]] = []
    for ad_id in dict.fromkeys(ad_ids):
        error = fn(ad_id)
        if error:
            failed.append({"id": ad_id, "error": error})
        else:
            successful.append(ad_id)
    record_event(
        s,
        actor=moderator,
        action=action,
        entity_type="AD",
        metadata={"ad_ids": list(ad_ids)[:100], "successful": len(successful), "failed": len(failed)},
    )
    return {"successful": successful, "failed": failed}


def bulk_approve(s: "Session", ad_ids: list[int], moderator: "User") -> dict[str, Any]:
    return _bulk(s, moderator, ad_ids, "ad.bulk_approve", lambda ad_id: approve_ad(s, ad_id, moderator))


def bulk_reject(
    s: "Session", ad_ids: list[int], moderator: "User", reason_code: str | None, reason_text: str | None = None
) -> dict[str, Any]:
    return _bulk(
        s,
        moderator,
        ad_ids,
        "ad.bulk_reject",
        lambda ad_id: reject_ad(s, ad_id, moderator, reason_code, reason_text),
    )
