from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from app.classifieds.audit import record_event
from app.classifieds.constants import SERVICE_CATEGORIES, SERVICE_RATE_BASES, WEEKDAYS
from app.classifieds.modules.ads.service import get_ad_for_owner, require_profile_city
from app.classifieds.utils import FormValueError, clean_text, parse_float, parse_list

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.classifieds.models import User
    from app.classifieds.modules.ads.models import Ad

ENTITY_TYPE = "AD_SERVICE"
LISTING_DAYS = 60
MAX_TAGS = 10
MAX_LINKS = 5

FORM_FIELDS = (
    "title",
    "description",
    "service_category",
    "tags",
    "rate_basis",
    "rate_amount",
    "availability_days",
    "service_area",
    "business_name",
    "portfolio_links",
)
LIST_FIELDS = ("tags", "availability_days", "portfolio_links")


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_service_payload(payload: dict) -> tuple[dict[str, Any], list[str]]:
    """
    Normalize a services form into AdService column values.
    Returns (fields, errors); fields are only meaningful when errors is empty.
    """
    errors: list[str] = []
    out: dict[str, Any] = {}

    def _text(label: str, name: str, max_len: int, required: bool = False):
        try:
            value = clean_text(payload.get(name), max_len)
        except FormValueError as e:
            errors.append(f"{label}: {e}")
            return None
        if required and not value:
            errors.append(f"{label}: This field is required")
        return value

    out["title"] = _text("Title", "title", 255, required=True)
    out["description"] = _text("Description", "description", 2000, required=True)
    out["service_area"] = _text("Service area", "service_area", 255)
    out["business_name"] = _text("Business name", "business_name", 255)

    category = (payload.get("service_category") or "").strip().upper()
    if category not in SERVICE_CATEGORIES:
        errors.append("Category: Select an option!")
        category = None
    out["service_category"] = category

    tags = parse_list(payload.get("tags"))
    if len(tags) > MAX_TAGS:
        errors.append(f"Tags: You can add up to {MAX_TAGS} tags")
    if any(len(t) > 32 for t in tags):
        errors.append("Tags: Maximum is 32 characters")
    out["tags"] = tags

    basis = (payload.get("rate_basis") or "").strip().upper() or None
    if basis is not None and basis not in SERVICE_RATE_BASES:
        errors.append("Rate: Select an option!")
        basis = None
    try:
        amount = parse_float(payload.get("rate_amount"))
    except FormValueError as e:
        errors.append(f"Rate: {e}")
        amount = None
    if amount is not None and amount < 0:
        errors.append("Rate: Amount cannot be negative")
    if amount is not None and basis is None:
        errors.append("Rate: Select how the rate is charged")
    out["rate_basis"] = basis
    out["rate_amount"] = amount

    days = [d.upper() for d in parse_list(payload.get("availability_days"))]
    unknown = [d for d in days if d not in WEEKDAYS]
    if unknown:
        errors.append("Availability: Unknown day " + ", ".join(unknown))
    elif not days:
        errors.append("Availability: Select at least one day")
    # Keep week order regardless of submission order.
    out["availability_days"] = [d for d in WEEKDAYS if d in days]

    links = parse_list(payload.get("portfolio_links"))
    if len(links) > MAX_LINKS:
        errors.append(f"Portfolio: You can add up to {MAX_LINKS} links")
    bad = [link for link in links if not _is_http_url(link)]
    if bad:
        errors.append("Portfolio: Links must start with http:// or https://")
    out["portfolio_links"] = links

    return out, errors


def create_service_ad(s: "Session", user: "User", fields: dict[str, Any]) -> "Ad":
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.local_services.models import AdService

    city_id = require_profile_city(user)
    now = datetime.utcnow()
    ad = Ad(
        user_id=user.id,
        city_id=city_id,
        category="SERVICES",
        status="PENDING",
        expiration_date=now + timedelta(days=LISTING_DAYS),
        created_at=now,
        updated_at=now,
    )
    ad.service = AdService(**fields)
    s.add(ad)
    s.flush()
    record_event(
        s,
        actor=user,
        action="ad.create",
        entity_type=ENTITY_TYPE,
        entity_id=str(ad.id),
        metadata={"service_category": fields["service_category"], "rate_basis": fields["rate_basis"]},
    )
    return ad


def update_service_ad(s: "Session", user: "User", ad_id: int, fields: dict[str, Any]) -> "Ad":
    ad = get_ad_for_owner(s, ad_id, user, category="SERVICES")
    svc = ad.service
    changes = {}
    for name, new in fields.items():
        old = getattr(svc, name)
        if old != new:
            changes[name] = {"old": old, "new": new}
            setattr(svc, name, new)
    prev_status = ad.status
    ad.status = "PENDING"
    ad.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="ad.edit",
        entity_type=ENTITY_TYPE,
        entity_id=str(ad.id),
        metadata={"prev_status": prev_status, "changes": changes},
    )
    return ad


def service_ad_to_payload(ad: "Ad") -> dict[str, Any]:
    svc = ad.service
    payload = {name: getattr(svc, name) for name in FORM_FIELDS}
    payload["tags"] = ", ".join(svc.tags or [])
    payload["portfolio_links"] = "\n".join(svc.portfolio_links or [])
    payload["availability_days"] = list(svc.availability_days or [])
    return payload
