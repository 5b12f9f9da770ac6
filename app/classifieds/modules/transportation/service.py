from __future__ import annotations

from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any

from app.classifieds.audit import record_event
from app.classifieds.constants import TRANSPORT_DIRECTIONS, TRANSPORT_PRICE_MODES
from app.classifieds.modules.ads.service import get_ad_for_owner, require_profile_city
from app.classifieds.utils import FormValueError, clean_text, parse_bool, parse_date, parse_float, parse_int, parse_list

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.classifieds.models import User
    from app.classifieds.modules.ads.models import Ad

ENTITY_TYPE = "AD_TRANSPORTATION"

COUNTRIES_BY_DIRECTION = {
    "ITALY_TO_IRAN": ("ITALY", "IRAN"),
    "IRAN_TO_ITALY": ("IRAN", "ITALY"),
}

FORM_FIELDS = (
    "direction",
    "departure_city",
    "arrival_city",
    "additional_pickup_cities",
    "additional_delivery_cities",
    "route_notes",
    "flight_date",
    "capacity_kg",
    "min_accept_kg",
    "subject_to_inspection",
    "documents_accepted",
    "accepted_item_types",
    "restricted_item_types",
    "special_capacity_notes",
    "offers_postal_forwarding",
    "accepts_postal_dropoff",
    "postal_notes",
    "delivery_eta_days",
    "price_mode",
    "price_per_kg",
    "fixed_total_price",
    "price_notes",
    "terms_notes",
)
LIST_FIELDS = ("additional_pickup_cities", "additional_delivery_cities", "accepted_item_types", "restricted_item_types")
NOTE_MAX = 1000


def parse_transport_payload(payload: dict, today: date | None = None) -> tuple[dict[str, Any], list[str]]:
    """
    Normalize a transportation form into AdTransportation column values.
    Returns (fields, errors); fields are only meaningful when errors is empty.
    """
    today = today or date.today()
    errors: list[str] = []
    out: dict[str, Any] = {}

    def _field(label: str, fn, *args):
        try:
            return fn(*args)
        except FormValueError as e:
            errors.append(f"{label}: {e}")
            return None

    direction = (payload.get("direction") or "").strip().upper()
    if direction not in TRANSPORT_DIRECTIONS:
        errors.append("Direction: Select an option!")
        direction = None
    out["direction"] = direction
    if direction:
        out["departure_country"], out["arrival_country"] = COUNTRIES_BY_DIRECTION[direction]

    out["departure_city"] = _field("Departure city", clean_text, payload.get("departure_city"), 128)
    out["arrival_city"] = _field("Arrival city", clean_text, payload.get("arrival_city"), 128)
    if not out["departure_city"]:
        errors.append("Departure city: This field is required")
    if not out["arrival_city"]:
        errors.append("Arrival city: This field is required")

    for name in LIST_FIELDS:
        out[name] = parse_list(payload.get(name))

    flight_date = _field("Flight date", parse_date, payload.get("flight_date"))
    if flight_date is None and not any(e.startswith("Flight date") for e in errors):
        errors.append("Flight date: This field is required")
    elif flight_date is not None and flight_date < today:
        errors.append("Flight date: Flight date cannot be in the past")
    out["flight_date"] = flight_date

    out["capacity_kg"] = _field("Capacity", parse_float, payload.get("capacity_kg"))
    out["min_accept_kg"] = _field("Minimum weight", parse_float, payload.get("min_accept_kg"))
    if out["capacity_kg"] is not None and out["capacity_kg"] <= 0:
        errors.append("Capacity: Must be greater than 0")
    if out["min_accept_kg"] is not None and out["min_accept_kg"] < 0:
        errors.append("Minimum weight: Cannot be negative")
    if (
        out["capacity_kg"] is not None
        and out["min_accept_kg"] is not None
        and out["min_accept_kg"] > out["capacity_kg"]
    ):
        errors.append("Minimum weight: Cannot exceed capacity")

    out["delivery_eta_days"] = _field("Delivery ETA", parse_int, payload.get("delivery_eta_days"))
    if out["delivery_eta_days"] is not None and out["delivery_eta_days"] < 0:
        errors.append("Delivery ETA: Cannot be negative")

    for name in ("subject_to_inspection", "documents_accepted", "offers_postal_forwarding", "accepts_postal_dropoff"):
        out[name] = parse_bool(payload.get(name))

    for name in ("route_notes", "special_capacity_notes", "postal_notes", "price_notes", "terms_notes"):
        out[name] = _field(name.replace("_", " ").capitalize(), clean_text, payload.get(name), NOTE_MAX)

    mode = (payload.get("price_mode") or "NEGOTIABLE").strip().upper()
    if mode not in TRANSPORT_PRICE_MODES:
        errors.append("Price mode: Select an option!")
        mode = "NEGOTIABLE"
    out["price_mode"] = mode
    per_kg = _field("Price per kg", parse_float, payload.get("price_per_kg"))
    total = _field("Total price", parse_float, payload.get("fixed_total_price"))
    if mode == "PER_KG":
        if per_kg is None or per_kg <= 0:
            errors.append("Price per kg: Enter a price greater than 0")
        out["price_per_kg"], out["fixed_total_price"] = per_kg, None
    elif mode == "FIXED_TOTAL":
        if total is None or total <= 0:
            errors.append("Total price: Enter a price greater than 0")
        out["price_per_kg"], out["fixed_total_price"] = None, total
    else:
        out["price_per_kg"], out["fixed_total_price"] = None, None

    return out, errors


def _expiration(flight_date: date) -> datetime:
    return datetime.combine(flight_date, time.max.replace(microsecond=0))


def create_transport_ad(s: "Session", user: "User", fields: dict[str, Any]) -> "Ad":
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.transportation.models import AdTransportation

    city_id = require_profile_city(user)
    now = datetime.utcnow()
    ad = Ad(
        user_id=user.id,
        city_id=city_id,
        category="TRANSPORTATION",
        status="PENDING",
        expiration_date=_expiration(fields["flight_date"]),
        created_at=now,
        updated_at=now,
    )
    ad.transportation = AdTransportation(**fields)
    s.add(ad)
    s.flush()
    record_event(
        s,
        actor=user,
        action="ad.create",
        entity_type=ENTITY_TYPE,
        entity_id=str(ad.id),
        metadata={
            "direction": fields["direction"],
            "flight_date": fields["flight_date"],
            "price_mode": fields["price_mode"],
        },
    )
    return ad


def update_transport_ad(s: "Session", user: "User", ad_id: int, fields: dict[str, Any]) -> "Ad":
    ad = get_ad_for_owner(s, ad_id, user, category="TRANSPORTATION")
    t = ad.transportation
    changes = {}
    for name, new in fields.items():
        old = getattr(t, name)
        if old != new:
            changes[name] = {"old": old, "new": new}
            setattr(t, name, new)
    prev_status = ad.status
    ad.status = "PENDING"
    ad.expiration_date = _expiration(fields["flight_date"])
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


def transport_ad_to_payload(ad: "Ad") -> dict[str, Any]:
    t = ad.transportation
    payload = {name: getattr(t, name) for name in FORM_FIELDS}
    for name in LIST_FIELDS:
        payload[name] = ", ".join(payload[name] or [])
    payload["flight_date"] = t.flight_date.isoformat() if t.flight_date else ""
    return payload
