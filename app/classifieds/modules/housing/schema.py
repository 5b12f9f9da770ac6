"""
Housing ad form values: coercion, per-step validation, derived-value rules and pruning.

Values are a flat dict keyed by field name (see ALL_FIELDS). The same dict is used by
the wizard, stored as JSON in drafts, and turned into an AdHousing row on submit.

Numbers that could not be parsed are kept as their raw string so validation can
report "Enter a valid number" instead of silently dropping the input.
"""
from __future__ import annotations

import json
import math
import re
from datetime import date, datetime
from typing import Any

from app.classifieds.constants import (
    BILLS_POLICIES,
    GENDER_PREFERENCES,
    HEATING_TYPES,
    HOUSEHOLD_GENDERS,
    HOUSING_CONTRACT_TYPES,
    HOUSING_PRICE_TYPES,
    HOUSING_PROPERTY_TYPES,
    HOUSING_RENTAL_KINDS,
    HOUSING_UNIT_TYPES,
)


class Messages:
    REQUIRED = "This field is required"
    SELECT_OPTION = "Select an option!"
    SELECT_OPTION_PLAIN = "Select an option"
    SELECT_LOCATION = "Select a location"

    PRICE_REQUIRED_WHEN_NOT_NEGOTIABLE = "Price is required when not negotiable"
    PRICE_MUST_BE_DAILY = "Temporary rentals must use daily pricing"
    PRICE_MUST_BE_MONTHLY = "Permanent rentals must use monthly pricing"
    INVALID_NUMBER = "Enter a valid number"
    MUST_BE_WHOLE_NUMBER = "Must be a whole number"
    MONEY_MIN = "Minimum is 1"
    MONEY_MAX = "Maximum is 5000"

    DEPOSIT_NOT_APPLICABLE_TEMPORARY = "Deposit is not applicable for temporary rentals"
    AGENCY_NOT_APPLICABLE_TEMPORARY = "Agency fee is not applicable for temporary rentals"
    AGENCY_AMOUNT_REQUIRED = "Agency fee is required"
    BILLS_POLICY_NOT_APPLICABLE_TEMPORARY = "Bills policy is not applicable for temporary rentals"
    BILLS_POLICY_REQUIRED = "Bills policy is required for permanent rentals"
    BILLS_ESTIMATE_NOT_ALLOWED = "Do not provide a monthly estimate when bills are included"

    START_REQUIRED = "Select a start date!"
    END_REQUIRED = "End date is required for temporary rentals"
    END_AFTER_START = "End date must be after start date"
    END_NOT_APPLICABLE = "End date is not applicable for permanent rentals"

    CONTRACT_REQUIRED_PERMANENT = "Contract is required for permanent rentals"
    RESIDENZA_REQUIRED = "Please select if residenza is available"

    IMAGES_REQUIRED = "Please upload at least one image"
    COVER_REQUIRED = "Select a cover image"
    IMAGES_MAX = "You can upload up to {max} images"


MONEY_MIN = 1
MONEY_MAX = 5000
FLOOR_MIN, FLOOR_MAX = -2, 15
BATHROOMS_MIN, BATHROOMS_MAX = 1, 4
HOUSEHOLD_DESCRIPTION_MAX = 1000
NOTES_MAX = 2000
BILLS_NOTES_MAX = 500
MAX_IMAGES = 8

ENUM_FIELDS: dict[str, tuple[str, ...]] = {
    "rental_kind": HOUSING_RENTAL_KINDS,
    "unit_type": HOUSING_UNIT_TYPES,
    "property_type": HOUSING_PROPERTY_TYPES,
    "contract_type": HOUSING_CONTRACT_TYPES,
    "price_type": HOUSING_PRICE_TYPES,
    "bills_policy": BILLS_POLICIES,
    "heating_type": HEATING_TYPES,
    "household_gender": HOUSEHOLD_GENDERS,
    "gender_preference": GENDER_PREFERENCES,
}
MONEY_FIELDS = ("price_amount", "deposit_amount", "agency_fee_amount", "bills_monthly_estimate")
INT_FIELDS = ("floor_number", "number_of_bathrooms", "household_size")
FLOAT_FIELDS = ("lat", "lng")
DATE_FIELDS = ("availability_start_date", "availability_end_date")
TRISTATE_FIELDS = ("residenza_available", "has_agency_fee")
FEATURE_FIELDS = (
    "furnished",
    "has_elevator",
    "private_bathroom",
    "kitchen_equipped",
    "wifi",
    "washing_machine",
    "dishwasher",
    "balcony",
    "air_conditioning",
    "double_glazed_windows",
    "newly_renovated",
    "clothes_dryer",
)
# Unchecked checkboxes are absent from the form; absence means False on their own step.
CHECKBOX_FIELDS = ("price_negotiable",) + FEATURE_FIELDS
LIST_FIELDS = ("transit_lines", "shops_nearby", "images")
TEXT_FIELDS = ("bills_notes", "household_description", "neighborhood", "street_hint", "notes", "cover_image_storage_key")

STEP_FIELDS: dict[int, tuple[str, ...]] = {
    1: ("rental_kind", "unit_type", "property_type"),
    2: ("rental_kind", "availability_start_date", "availability_end_date", "contract_type", "residenza_available"),
    3: (
        "price_type",
        "price_amount",
        "price_negotiable",
        "deposit_amount",
        "has_agency_fee",
        "agency_fee_amount",
        "bills_policy",
        "bills_monthly_estimate",
        "bills_notes",
    ),
    4: (
        "heating_type",
        "floor_number",
        "furnished",
        "has_elevator",
        "private_bathroom",
        "kitchen_equipped",
        "wifi",
        "washing_machine",
        "dishwasher",
        "balcony",
        "air_conditioning",
        "double_glazed_windows",
        "number_of_bathrooms",
        "newly_renovated",
        "clothes_dryer",
    ),
    5: ("household_size", "household_gender", "gender_preference", "household_description"),
    6: ("neighborhood", "street_hint", "lat", "lng", "transit_lines", "shops_nearby"),
    7: ("images", "cover_image_storage_key"),
    8: (),
}
TOTAL_STEPS = len(STEP_FIELDS)

ALL_FIELDS: tuple[str, ...] = tuple(dict.fromkeys(f for fields in STEP_FIELDS.values() for f in fields)) + ("notes",)

# Fields a user edits on each step's page; rental_kind is listed on step 2 for validation only.
STEP_INPUT_FIELDS: dict[int, tuple[str, ...]] = {
    **STEP_FIELDS,
    2: tuple(f for f in STEP_FIELDS[2] if f != "rental_kind"),
    3: tuple(f for f in STEP_FIELDS[3] if f != "price_type"),
    7: ("cover_image_storage_key",),
    8: ("notes",),
}


def default_values() -> dict[str, Any]:
    """Create-mode starting values."""
    values: dict[str, Any] = {f: None for f in ALL_FIELDS}
    values.update(
        {
            "price_negotiable": False,
            "floor_number": 0,
            "number_of_bathrooms": 1,
            "transit_lines": [],
            "shops_nearby": [],
            "images": [],
        }
    )
    for f in FEATURE_FIELDS:
        values[f] = False
    return values


# ---------- Coercion ----------
_TRUE = {"true", "1", "on", "yes"}
_FALSE = {"false", "0", "off", "no"}


def _parse_number(raw: Any) -> float | int | str | None:
    """None for blank, a number when parsable (ints stay ints), else the raw string."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, (int, float)):
        return raw if not (isinstance(raw, float) and not math.isfinite(raw)) else str(raw)
    text = str(raw).strip().replace(",", ".")
    if text == "":
        return None
    try:
        if re.fullmatch(r"[+-]?\d+", text):
            return int(text)
        n = float(text)
    except ValueError:
        return str(raw).strip()
    if not math.isfinite(n):
        return str(raw).strip()
    return n


def _parse_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError:
        return None


def _parse_bool(raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return None
    text = str(raw).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return None


def _parse_list(raw: Any) -> list[str]:
    if raw is None:
        return []
    items = raw if isinstance(raw, (list, tuple)) else [raw]
    out: list[str] = []
    for item in items:
        for part in re.split(r"[,\n]", str(item)):
            part = part.strip()
            if part:
                out.append(part)
    return out


def _form_get(form: Any, name: str) -> tuple[bool, Any]:
    """(present, value) from a werkzeug MultiDict or a plain dict; list fields use getlist."""
    if name in LIST_FIELDS and hasattr(form, "getlist"):
        values = form.getlist(name)
        return (bool(values) or name in form), values
    if name not in form:
        return False, None
    return True, form.get(name)


def coerce_value(field: str, raw: Any) -> Any:
    if field in ENUM_FIELDS:
        value = (str(raw).strip().upper() if raw is not None else "")
        return value if value in ENUM_FIELDS[field] else None
    if field in MONEY_FIELDS or field in INT_FIELDS or field in FLOAT_FIELDS:
        return _parse_number(raw)
    if field in DATE_FIELDS:
        return _parse_date(raw)
    if field in TRISTATE_FIELDS:
        return _parse_bool(raw)
    if field in CHECKBOX_FIELDS:
        return bool(_parse_bool(raw))
    if field in LIST_FIELDS:
        return _parse_list(raw)
    text = (str(raw).strip() if raw is not None else "")
    return text or None


def coerce_step_input(step: int, form: Any) -> dict[str, Any]:
    """
    Typed values for the fields a step's page posts. Absent fields are left out
    (so they keep their current value) except checkboxes, which become False.
    """
    out: dict[str, Any] = {}
    for field in STEP_INPUT_FIELDS.get(step, ()):
        present, raw = _form_get(form, field)
        if not present:
            if field in CHECKBOX_FIELDS:
                out[field] = False
            continue
        out[field] = coerce_value(field, raw)
    return out


# ---------- Serialization ----------
def _json_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


def stable_stringify(values: dict[str, Any]) -> str:
    """Deterministic serialization used for dirty-state comparison (sorted keys, ISO dates)."""
    return json.dumps(values, sort_keys=True, default=_json_default, separators=(",", ":"))


def values_to_json(values: dict[str, Any]) -> dict[str, Any]:
    return json.loads(stable_stringify(values))


def values_from_json(data: dict[str, Any] | None) -> dict[str, Any]:
    values = default_values()
    if not data:
        return values
    for field in ALL_FIELDS:
        if field not in data:
            continue
        v = data[field]
        if field in DATE_FIELDS:
            v = _parse_date(v)
        elif field in LIST_FIELDS:
            v = list(v or [])
        values[field] = v
    return values


# ---------- Field rules ----------
def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _check_int_range(v: Any, lo: int | None, hi: int | None, *, lo_msg: str | None = None, hi_msg: str | None = None) -> str | None:
    if v is None:
        return None
    if not _is_number(v):
        return Messages.INVALID_NUMBER
    if float(v) != int(v):
        return Messages.MUST_BE_WHOLE_NUMBER
    if lo is not None and v < lo:
        return lo_msg or f"Minimum is {lo}"
    if hi is not None and v > hi:
        return hi_msg or f"Maximum is {hi}"
    return None


def check_money(v: Any) -> str | None:
    return _check_int_range(v, MONEY_MIN, MONEY_MAX, lo_msg=Messages.MONEY_MIN, hi_msg=Messages.MONEY_MAX)


def _check_float_range(v: Any, lo: float, hi: float) -> str | None:
    if v is None:
        return None
    if not _is_number(v):
        return Messages.INVALID_NUMBER
    if v < lo or v > hi:
        return f"Must be between {lo:g} and {hi:g}"
    return None


def _blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and v.strip() == "")


def _add(errors: dict[str, str], field: str, message: str | None) -> None:
    # First error wins per field.
    if message and field not in errors:
        errors[field] = message


def _validate_step1(v: dict[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    for field in ("rental_kind", "unit_type", "property_type"):
        if v.get(field) not in ENUM_FIELDS[field]:
            _add(errors, field, Messages.SELECT_OPTION)
    return errors


def _validate_step2(v: dict[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    kind = v.get("rental_kind")
    start = v.get("availability_start_date")
    end = v.get("availability_end_date")
    if start is None:
        _add(errors, "availability_start_date", Messages.START_REQUIRED)
    if kind == "TEMPORARY":
        if end is None:
            _add(errors, "availability_end_date", Messages.END_REQUIRED)
        elif start is not None and not end > start:
            _add(errors, "availability_end_date", Messages.END_AFTER_START)
    elif kind == "PERMANENT":
        if v.get("contract_type") not in HOUSING_CONTRACT_TYPES:
            _add(errors, "contract_type", Messages.CONTRACT_REQUIRED_PERMANENT)
        if v.get("residenza_available") is None:
            _add(errors, "residenza_available", Messages.RESIDENZA_REQUIRED)
        if end is not None:
            _add(errors, "availability_end_date", Messages.END_NOT_APPLICABLE)
    else:
        _add(errors, "rental_kind", Messages.SELECT_OPTION)
    return errors


def derived_price_type(rental_kind: str | None) -> str | None:
    if rental_kind == "TEMPORARY":
        return "DAILY"
    if rental_kind == "PERMANENT":
        return "MONTHLY"
    return None


def _validate_step3(v: dict[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    kind = v.get("rental_kind")
    # price_type always follows rental_kind
    price_type = derived_price_type(kind) or v.get("price_type")
    negotiable = bool(v.get("price_negotiable"))

    for field in MONEY_FIELDS:
        _add(errors, field, check_money(v.get(field)))
    if len(v.get("bills_notes") or "") > BILLS_NOTES_MAX:
        _add(errors, "bills_notes", f"Maximum is {BILLS_NOTES_MAX} characters")

    if kind == "TEMPORARY":
        if price_type != "DAILY":
            _add(errors, "price_type", Messages.PRICE_MUST_BE_DAILY)
        if not negotiable and v.get("price_amount") is None:
            _add(errors, "price_amount", Messages.PRICE_REQUIRED_WHEN_NOT_NEGOTIABLE)
        if v.get("deposit_amount") is not None:
            _add(errors, "deposit_amount", Messages.DEPOSIT_NOT_APPLICABLE_TEMPORARY)
        if v.get("agency_fee_amount") is not None:
            _add(errors, "agency_fee_amount", Messages.AGENCY_NOT_APPLICABLE_TEMPORARY)
        if v.get("bills_policy") is not None:
            _add(errors, "bills_policy", Messages.BILLS_POLICY_NOT_APPLICABLE_TEMPORARY)
    elif kind == "PERMANENT":
        if price_type != "MONTHLY":
            _add(errors, "price_type", Messages.PRICE_MUST_BE_MONTHLY)
        if not negotiable and v.get("price_amount") is None:
            _add(errors, "price_amount", Messages.PRICE_REQUIRED_WHEN_NOT_NEGOTIABLE)
        if v.get("bills_policy") not in BILLS_POLICIES:
            _add(errors, "bills_policy", Messages.BILLS_POLICY_REQUIRED)
        if v.get("has_agency_fee") is None:
            _add(errors, "has_agency_fee", Messages.SELECT_OPTION_PLAIN)
        elif v.get("has_agency_fee") and v.get("agency_fee_amount") is None:
            _add(errors, "agency_fee_amount", Messages.AGENCY_AMOUNT_REQUIRED)
        if v.get("bills_policy") == "INCLUDED" and v.get("bills_monthly_estimate") is not None:
            _add(errors, "bills_monthly_estimate", Messages.BILLS_ESTIMATE_NOT_ALLOWED)
    else:
        _add(errors, "price_type", Messages.SELECT_OPTION)
    return errors


def _validate_step4(v: dict[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    if v.get("heating_type") not in HEATING_TYPES:
        _add(errors, "heating_type", Messages.SELECT_OPTION)
    _add(errors, "floor_number", _check_int_range(v.get("floor_number"), FLOOR_MIN, FLOOR_MAX))
    _add(errors, "number_of_bathrooms", _check_int_range(v.get("number_of_bathrooms"), BATHROOMS_MIN, BATHROOMS_MAX))
    return errors


def _validate_step5(v: dict[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    if v.get("household_size") is None:
        _add(errors, "household_size", Messages.REQUIRED)
    else:
        _add(errors, "household_size", _check_int_range(v.get("household_size"), 1, None))
    if v.get("household_gender") is not None and v.get("household_gender") not in HOUSEHOLD_GENDERS:
        _add(errors, "household_gender", Messages.SELECT_OPTION)
    if v.get("gender_preference") not in GENDER_PREFERENCES:
        _add(errors, "gender_preference", Messages.SELECT_OPTION)
    if len(v.get("household_description") or "") > HOUSEHOLD_DESCRIPTION_MAX:
        _add(errors, "household_description", f"Maximum is {HOUSEHOLD_DESCRIPTION_MAX} characters")
    return errors


def _validate_step6(v: dict[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    if _blank(v.get("neighborhood")):
        _add(errors, "neighborhood", Messages.SELECT_LOCATION)
    if v.get("lat") is None:
        _add(errors, "lat", Messages.SELECT_LOCATION)
    else:
        _add(errors, "lat", _check_float_range(v.get("lat"), -90, 90))
    if v.get("lng") is None:
        _add(errors, "lng", Messages.SELECT_LOCATION)
    else:
        _add(errors, "lng", _check_float_range(v.get("lng"), -180, 180))
    for field in ("transit_lines", "shops_nearby"):
        items = v.get(field) or []
        if any(_blank(i) for i in items):
            _add(errors, field, "Entries cannot be empty")
    return errors


def _validate_step7(v: dict[str, Any], max_images: int = MAX_IMAGES) -> dict[str, str]:
    errors: dict[str, str] = {}
    images = v.get("images") or []
    if not images:
        _add(errors, "images", Messages.IMAGES_REQUIRED)
    elif len(images) > max_images:
        _add(errors, "images", Messages.IMAGES_MAX.format(max=max_images))
    if images and v.get("cover_image_storage_key") not in images:
        _add(errors, "cover_image_storage_key", Messages.COVER_REQUIRED)
    return errors


def _validate_step8(v: dict[str, Any]) -> dict[str, str]:
    return {}


STEP_VALIDATORS = {
    1: _validate_step1,
    2: _validate_step2,
    3: _validate_step3,
    4: _validate_step4,
    5: _validate_step5,
    6: _validate_step6,
    7: _validate_step7,
    8: _validate_step8,
}


def validate_step(step: int, values: dict[str, Any], *, max_images: int = MAX_IMAGES) -> dict[str, str]:
    """{field: message} for one step; an unknown step number is reported under '_step'."""
    if step == 7:
        return _validate_step7(values, max_images)
    validator = STEP_VALIDATORS.get(step)
    if validator is None:
        return {"_step": f"Invalid step: {step}"}
    return validator(values)


def validate_housing(values: dict[str, Any], *, max_images: int = MAX_IMAGES) -> dict[str, str]:
    """Every rule across steps 1-7 plus notes length."""
    errors: dict[str, str] = {}
    for step in range(1, TOTAL_STEPS):
        result = validate_step(step, values, max_images=max_images)
        for field, msg in result.items():
            _add(errors, field, msg)
    if len(values.get("notes") or "") > NOTES_MAX:
        _add(errors, "notes", f"Maximum is {NOTES_MAX} characters")
    return errors


# ---------- Derived values ----------
_TEMPORARY_CLEARED = (
    "contract_type",
    "residenza_available",
    "deposit_amount",
    "has_agency_fee",
    "agency_fee_amount",
    "bills_policy",
    "bills_monthly_estimate",
    "bills_notes",
)


def apply_dependent_rules(values: dict[str, Any]) -> tuple[dict[str, Any], set[str]]:
    """
    Recompute values that depend on other fields. Returns (new values, changed fields).
    Idempotent: applying it twice changes nothing the second time.
    """
    v = dict(values)
    changed: set[str] = set()

    def _set(field: str, value: Any) -> None:
        if v.get(field) != value:
            v[field] = value
            changed.add(field)

    kind = v.get("rental_kind")
    if kind == "TEMPORARY":
        _set("price_type", "DAILY")
        for field in _TEMPORARY_CLEARED:
            _set(field, None)
    elif kind == "PERMANENT":
        _set("price_type", "MONTHLY")
        _set("availability_end_date", None)

    if v.get("price_negotiable"):
        _set("price_amount", None)

    if kind == "PERMANENT" and not v.get("has_agency_fee"):
        _set("agency_fee_amount", None)

    if kind == "PERMANENT" and v.get("bills_policy") == "INCLUDED":
        _set("bills_monthly_estimate", None)

    if v.get("property_type") == "STUDIO":
        _set("unit_type", "WHOLE_APARTMENT")

    return v, changed


def prune_for_branch(values: dict[str, Any]) -> dict[str, Any]:
    """Drop values that do not belong to the selected rental branch before persisting."""
    v = dict(values)
    kind = v.get("rental_kind")
    if kind == "PERMANENT":
        v["availability_end_date"] = None
        v["price_type"] = "MONTHLY"
        if not v.get("has_agency_fee"):
            v["agency_fee_amount"] = None
        if v.get("bills_policy") not in ("EXCLUDED", "PARTIAL"):
            v["bills_monthly_estimate"] = None
    elif kind == "TEMPORARY":
        v["price_type"] = "DAILY"
        for field in _TEMPORARY_CLEARED:
            v[field] = None
    if v.get("price_negotiable"):
        v["price_amount"] = None
    return v
