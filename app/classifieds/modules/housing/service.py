from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any

from app.classifieds.audit import record_event
from app.classifieds.modules.ads.service import (
    MediaError,
    get_ad_for_owner,
    images_from_media,
    replace_media,
    require_profile_city,
)
from app.classifieds.modules.housing.schema import (
    FEATURE_FIELDS,
    MAX_IMAGES,
    default_values,
    prune_for_branch,
    validate_housing,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.classifieds.models import User
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.media.service import UploadedImage

logger = logging.getLogger(__name__)

ENTITY_TYPE = "AD_HOUSING"


def _int_or_none(v: Any) -> int | None:
    return int(v) if v is not None else None


def _float_or_none(v: Any) -> float | None:
    return float(v) if v is not None else None


def _text_or_none(v: Any) -> str | None:
    text = (v or "").strip() if isinstance(v, str) else v
    return text or None


def normalize_for_persistence(values: dict[str, Any]) -> dict[str, Any]:
    """
    Pruned, typed column values for an AdHousing row.
    Temporary rentals store fixed placeholders for the permanent-only columns.
    """
    v = prune_for_branch(values)
    kind = v.get("rental_kind")
    row: dict[str, Any] = {
        "rental_kind": kind,
        "unit_type": v.get("unit_type"),
        "property_type": v.get("property_type"),
        "availability_start_date": v.get("availability_start_date"),
        "availability_end_date": v.get("availability_end_date"),
        "price_type": v.get("price_type"),
        "price_negotiable": bool(v.get("price_negotiable")),
        "price_amount": None if v.get("price_negotiable") else _int_or_none(v.get("price_amount")),
        "heating_type": v.get("heating_type") or "UNKNOWN",
        "floor_number": _int_or_none(v.get("floor_number")) if v.get("floor_number") is not None else 0,
        "number_of_bathrooms": _int_or_none(v.get("number_of_bathrooms")) or 1,
        "household_size": _int_or_none(v.get("household_size")) or 1,
        "household_gender": v.get("household_gender"),
        "gender_preference": v.get("gender_preference") or "ANY",
        "household_description": _text_or_none(v.get("household_description")),
        "neighborhood": _text_or_none(v.get("neighborhood")),
        "street_hint": _text_or_none(v.get("street_hint")),
        "lat": _float_or_none(v.get("lat")),
        "lng": _float_or_none(v.get("lng")),
        "transit_lines": list(v.get("transit_lines") or []),
        "shops_nearby": list(v.get("shops_nearby") or []),
        "notes": _text_or_none(v.get("notes")),
    }
    for f in FEATURE_FIELDS:
        row[f] = bool(v.get(f))

    if kind == "TEMPORARY":
        row.update(
            {
                "contract_type": "NONE",
                "residenza_available": False,
                "deposit_amount": None,
                "agency_fee_amount": None,
                "bills_policy": "INCLUDED",
                "bills_monthly_estimate": None,
                "bills_notes": None,
            }
        )
    else:
        row.update(
            {
                "contract_type": v.get("contract_type") or "NONE",
                "residenza_available": bool(v.get("residenza_available")),
                "deposit_amount": _int_or_none(v.get("deposit_amount")),
                "agency_fee_amount": _int_or_none(v.get("agency_fee_amount")) if v.get("has_agency_fee") else None,
                "bills_policy": v.get("bills_policy") or "EXCLUDED",
                "bills_monthly_estimate": _int_or_none(v.get("bills_monthly_estimate")),
                "bills_notes": _text_or_none(v.get("bills_notes")),
            }
        )
    return row


def expiration_for(start: date | None) -> datetime | None:
    """Housing ads expire when the availability window starts."""
    if start is None:
        return None
    return datetime.combine(start, time.min)


def order_images(values: dict[str, Any], images: list["UploadedImage"]) -> list["UploadedImage"]:
    """Uploaded images in the order chosen in the form; unknown keys are skipped."""
    by_key = {img.storage_key: img for img in images}
    return [by_key[k] for k in (values.get("images") or []) if k in by_key]


def validate_submission(values: dict[str, Any], images: list["UploadedImage"], *, max_images: int = MAX_IMAGES) -> dict[str, str]:
    errors = validate_housing(values, max_images=max_images)
    known = {img.storage_key for img in images}
    if any(k not in known for k in (values.get("images") or [])) and "images" not in errors:
        errors["images"] = "One or more images are no longer available. Please upload them again."
    return errors


def _summary(housing_row: dict[str, Any], image_count: int) -> dict[str, Any]:
    return {
        "rental_kind": housing_row["rental_kind"],
        "unit_type": housing_row["unit_type"],
        "property_type": housing_row["property_type"],
        "price_amount": housing_row["price_amount"],
        "price_negotiable": housing_row["price_negotiable"],
        "images": image_count,
    }


def create_housing_ad(s: "Session", user: "User", values: dict[str, Any], images: list["UploadedImage"]) -> "Ad":
    """
    Create a PENDING housing ad from validated wizard values.
    Callers validate first (validate_submission); media problems still raise MediaError.
    """
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.housing.models import AdHousing

    city_id = require_profile_city(user)
    ordered = order_images(values, images)
    if not ordered:
        raise MediaError("At least one image is required")

    row = normalize_for_persistence(values)
    now = datetime.utcnow()
    ad = Ad(
        user_id=user.id,
        city_id=city_id,
        category="HOUSING",
        status="PENDING",
        expiration_date=expiration_for(row["availability_start_date"]),
        created_at=now,
        updated_at=now,
    )
    ad.housing = AdHousing(**row)
    s.add(ad)
    s.flush()
    replace_media(s, ad, ordered, values.get("cover_image_storage_key"))

    record_event(
        s,
        actor=user,
        action="ad.create",
        entity_type=ENTITY_TYPE,
        entity_id=str(ad.id),
        metadata=_summary(row, len(ordered)),
    )
    return ad


def update_housing_ad(
    s: "Session", user: "User", ad_id: int, values: dict[str, Any], images: list["UploadedImage"]
) -> tuple["Ad", list[str]]:
    """
    Replace the housing fields and gallery of an owned ad and send it back to review.
    Returns (ad, storage keys no longer used by the gallery).
    """
    ad = get_ad_for_owner(s, ad_id, user, category="HOUSING")
    ordered = order_images(values, images)
    if not ordered:
        raise MediaError("At least one image is required")

    row = normalize_for_persistence(values)
    housing = ad.housing
    changes: dict[str, dict[str, Any]] = {}
    if housing is None:
        from app.classifieds.modules.housing.models import AdHousing

        ad.housing = AdHousing(**row)
    else:
        for field, new in row.items():
            old = getattr(housing, field)
            if old != new:
                changes[field] = {"old": old, "new": new}
                setattr(housing, field, new)

    dropped = replace_media(s, ad, ordered, values.get("cover_image_storage_key"))
    prev_status = ad.status
    ad.status = "PENDING"
    ad.expiration_date = expiration_for(row["availability_start_date"])
    ad.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="ad.edit",
        entity_type=ENTITY_TYPE,
        entity_id=str(ad.id),
        metadata={
            **_summary(row, len(ordered)),
            "prev_status": prev_status,
            "changes": changes,
            "removed_images": len(dropped),
        },
    )
    return ad, dropped


def housing_ad_to_values(ad: "Ad") -> dict[str, Any]:
    """Form values for edit mode, built from the stored ad."""
    h = ad.housing
    values = default_values()
    if h is None:
        return values
    values.update(
        {
            "rental_kind": h.rental_kind,
            "unit_type": h.unit_type,
            "property_type": h.property_type,
            "availability_start_date": h.availability_start_date,
            "availability_end_date": h.availability_end_date,
            "contract_type": h.contract_type,
            "residenza_available": bool(h.residenza_available),
            "price_type": h.price_type,
            "price_amount": h.price_amount,
            "price_negotiable": bool(h.price_negotiable),
            "deposit_amount": h.deposit_amount,
            "has_agency_fee": bool(h.agency_fee_amount),
            "agency_fee_amount": h.agency_fee_amount,
            "bills_policy": h.bills_policy,
            "bills_monthly_estimate": h.bills_monthly_estimate,
            "bills_notes": h.bills_notes,
            "heating_type": h.heating_type,
            "floor_number": h.floor_number if h.floor_number is not None else 0,
            "number_of_bathrooms": h.number_of_bathrooms or 1,
            "household_size": h.household_size,
            "household_gender": h.household_gender,
            "gender_preference": h.gender_preference,
            "household_description": h.household_description,
            "neighborhood": h.neighborhood,
            "street_hint": h.street_hint,
            "lat": h.lat,
            "lng": h.lng,
            "transit_lines": list(h.transit_lines or []),
            "shops_nearby": list(h.shops_nearby or []),
            "notes": h.notes,
            "images": [m.storage_key for m in ad.media],
            "cover_image_storage_key": ad.cover_media.storage_key if ad.cover_media else None,
        }
    )
    for f in FEATURE_FIELDS:
        values[f] = bool(getattr(h, f))
    return values


def images_for_ad(ad: "Ad") -> list["UploadedImage"]:
    return images_from_media(ad)
