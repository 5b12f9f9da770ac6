"""Tests for housing form coercion, step validation and derived-value rules."""
from datetime import date

from werkzeug.datastructures import MultiDict

from app.classifieds.modules.housing.schema import (
    Messages,
    apply_dependent_rules,
    coerce_step_input,
    default_values,
    prune_for_branch,
    stable_stringify,
    validate_housing,
    validate_step,
    values_from_json,
    values_to_json,
)


def _permanent(**overrides):
    v = default_values()
    v.update(
        {
            "rental_kind": "PERMANENT",
            "unit_type": "SINGLE_ROOM",
            "property_type": "TRILOCALE",
            "availability_start_date": date(2030, 9, 1),
            "contract_type": "LONG_TERM",
            "residenza_available": True,
            "price_type": "MONTHLY",
            "price_amount": 450,
            "deposit_amount": 900,
            "has_agency_fee": False,
            "bills_policy": "EXCLUDED",
            "bills_monthly_estimate": 60,
            "heating_type": "CENTRAL",
            "household_size": 3,
            "gender_preference": "ANY",
            "neighborhood": "Città Studi",
            "lat": 45.478,
            "lng": 9.227,
            "images": ["a.png", "b.png"],
            "cover_image_storage_key": "a.png",
        }
    )
    v.update(overrides)
    return v


def _temporary(**overrides):
    v = _permanent(
        rental_kind="TEMPORARY",
        availability_end_date=date(2030, 9, 20),
        price_type="DAILY",
        price_amount=40,
        contract_type=None,
        residenza_available=None,
        deposit_amount=None,
        has_agency_fee=None,
        bills_policy=None,
        bills_monthly_estimate=None,
    )
    v.update(overrides)
    return v


def test_default_values():
    v = default_values()
    assert v["floor_number"] == 0
    assert v["number_of_bathrooms"] == 1
    assert v["price_negotiable"] is False
    assert v["wifi"] is False
    assert v["images"] == []
    assert v["rental_kind"] is None


def test_coerce_step1_rejects_unknown_enum():
    out = coerce_step_input(1, MultiDict({"rental_kind": "temporary", "unit_type": "CASTLE", "property_type": "STUDIO"}))
    assert out == {"rental_kind": "TEMPORARY", "unit_type": None, "property_type": "STUDIO"}


def test_coerce_numbers_keep_invalid_input():
    out = coerce_step_input(3, MultiDict({"price_amount": "12,5", "deposit_amount": "abc", "agency_fee_amount": ""}))
    assert out["price_amount"] == 12.5
    assert out["deposit_amount"] == "abc"
    assert out["agency_fee_amount"] is None
    # unchecked checkbox is absent from the form
    assert out["price_negotiable"] is False


def test_coerce_tristate_and_features():
    out = coerce_step_input(2, MultiDict({"availability_start_date": "2030-09-01"}))
    assert out["availability_start_date"] == date(2030, 9, 1)
    assert "residenza_available" not in out

    out = coerce_step_input(2, MultiDict({"residenza_available": "false"}))
    assert out["residenza_available"] is False

    out = coerce_step_input(4, MultiDict({"wifi": "on", "heating_type": "central"}))
    assert out["wifi"] is True
    assert out["balcony"] is False
    assert out["heating_type"] == "CENTRAL"


def test_coerce_lists():
    form = MultiDict([("transit_lines", "M2, 90"), ("transit_lines", ""), ("shops_nearby", "Esselunga\nBar")])
    out = coerce_step_input(6, form)
    assert out["transit_lines"] == ["M2", "90"]
    assert out["shops_nearby"] == ["Esselunga", "Bar"]


def test_step1_requires_all_selects():
    errors = validate_step(1, default_values())
    assert errors == {
        "rental_kind": Messages.SELECT_OPTION,
        "unit_type": Messages.SELECT_OPTION,
        "property_type": Messages.SELECT_OPTION,
    }


def test_step2_temporary_end_date_rules():
    assert validate_step(2, _temporary()) == {}
    errors = validate_step(2, _temporary(availability_end_date=None))
    assert errors["availability_end_date"] == Messages.END_REQUIRED
    errors = validate_step(2, _temporary(availability_end_date=date(2030, 9, 1)))
    assert errors["availability_end_date"] == Messages.END_AFTER_START


def test_step2_permanent_rules():
    assert validate_step(2, _permanent()) == {}
    errors = validate_step(2, _permanent(contract_type=None, residenza_available=None, availability_end_date=date(2031, 1, 1)))
    assert errors["contract_type"] == Messages.CONTRACT_REQUIRED_PERMANENT
    assert errors["residenza_available"] == Messages.RESIDENZA_REQUIRED
    assert errors["availability_end_date"] == Messages.END_NOT_APPLICABLE

    errors = validate_step(2, _permanent(availability_start_date=None))
    assert errors["availability_start_date"] == Messages.START_REQUIRED


def test_step3_money_rules():
    assert validate_step(3, _permanent()) == {}
    assert validate_step(3, _permanent(price_amount=0))["price_amount"] == Messages.MONEY_MIN
    assert validate_step(3, _permanent(price_amount=5001))["price_amount"] == Messages.MONEY_MAX
    assert validate_step(3, _permanent(price_amount=10.5))["price_amount"] == Messages.MUST_BE_WHOLE_NUMBER
    assert validate_step(3, _permanent(price_amount="abc"))["price_amount"] == Messages.INVALID_NUMBER
    assert validate_step(3, _permanent(price_amount=None))["price_amount"] == Messages.PRICE_REQUIRED_WHEN_NOT_NEGOTIABLE
    assert validate_step(3, _permanent(price_amount=None, price_negotiable=True)) == {}


def test_step3_permanent_agency_and_bills():
    errors = validate_step(3, _permanent(has_agency_fee=None))
    assert errors["has_agency_fee"] == Messages.SELECT_OPTION_PLAIN
    errors = validate_step(3, _permanent(has_agency_fee=True))
    assert errors["agency_fee_amount"] == Messages.AGENCY_AMOUNT_REQUIRED
    errors = validate_step(3, _permanent(bills_policy=None))
    assert errors["bills_policy"] == Messages.BILLS_POLICY_REQUIRED
    errors = validate_step(3, _permanent(bills_policy="INCLUDED", bills_monthly_estimate=50))
    assert errors["bills_monthly_estimate"] == Messages.BILLS_ESTIMATE_NOT_ALLOWED


def test_step3_temporary_rejects_permanent_only_fields():
    errors = validate_step(3, _temporary(deposit_amount=100, agency_fee_amount=50, bills_policy="INCLUDED"))
    assert errors["deposit_amount"] == Messages.DEPOSIT_NOT_APPLICABLE_TEMPORARY
    assert errors["agency_fee_amount"] == Messages.AGENCY_NOT_APPLICABLE_TEMPORARY
    assert errors["bills_policy"] == Messages.BILLS_POLICY_NOT_APPLICABLE_TEMPORARY


def test_step3_price_type_follows_rental_kind():
    # A stale price_type is ignored because it is derived from rental_kind.
    assert "price_type" not in validate_step(3, _temporary(price_type="MONTHLY"))


def test_step4_ranges():
    assert validate_step(4, _permanent()) == {}
    assert validate_step(4, _permanent(floor_number=-3))["floor_number"] == "Minimum is -2"
    assert validate_step(4, _permanent(floor_number=16))["floor_number"] == "Maximum is 15"
    assert validate_step(4, _permanent(number_of_bathrooms=0))["number_of_bathrooms"] == "Minimum is 1"
    assert validate_step(4, _permanent(heating_type=None))["heating_type"] == Messages.SELECT_OPTION


def test_step5_household():
    assert validate_step(5, _permanent()) == {}
    assert validate_step(5, _permanent(household_size=None))["household_size"] == Messages.REQUIRED
    assert validate_step(5, _permanent(household_size=0))["household_size"] == "Minimum is 1"
    assert validate_step(5, _permanent(gender_preference=None))["gender_preference"] == Messages.SELECT_OPTION
    assert "household_description" in validate_step(5, _permanent(household_description="x" * 1001))


def test_step6_location():
    assert validate_step(6, _permanent()) == {}
    errors = validate_step(6, _permanent(neighborhood="  ", lat=None, lng=None))
    assert errors == {
        "neighborhood": Messages.SELECT_LOCATION,
        "lat": Messages.SELECT_LOCATION,
        "lng": Messages.SELECT_LOCATION,
    }
    assert "lat" in validate_step(6, _permanent(lat=91))
    assert "lng" in validate_step(6, _permanent(lng=-181))


def test_step7_images_and_cover():
    assert validate_step(7, _permanent()) == {}
    assert validate_step(7, _permanent(images=[]))["images"] == Messages.IMAGES_REQUIRED
    errors = validate_step(7, _permanent(cover_image_storage_key="missing.png"))
    assert errors["cover_image_storage_key"] == Messages.COVER_REQUIRED
    errors = validate_step(7, _permanent(images=[f"{i}.png" for i in range(9)], cover_image_storage_key="0.png"))
    assert errors["images"] == "You can upload up to 8 images"


def test_step8_and_unknown_step():
    assert validate_step(8, default_values()) == {}
    assert "_step" in validate_step(9, default_values())
    assert "_step" in validate_step(0, default_values())


def test_validate_housing_collects_every_step():
    assert validate_housing(_permanent()) == {}
    assert validate_housing(_temporary()) == {}
    errors = validate_housing(default_values())
    assert {"rental_kind", "availability_start_date", "heating_type", "household_size", "neighborhood", "images"} <= set(errors)
    assert "notes" in validate_housing(_permanent(notes="x" * 2001))


def test_dependent_rules_temporary_clears_permanent_fields():
    values, changed = apply_dependent_rules(_permanent(rental_kind="TEMPORARY", has_agency_fee=True, agency_fee_amount=200))
    assert values["price_type"] == "DAILY"
    for field in ("contract_type", "residenza_available", "deposit_amount", "has_agency_fee", "agency_fee_amount", "bills_policy", "bills_monthly_estimate"):
        assert values[field] is None
    assert {"price_type", "contract_type", "deposit_amount"} <= changed


def test_dependent_rules_permanent_and_flags():
    values, _ = apply_dependent_rules(_temporary(rental_kind="PERMANENT"))
    assert values["price_type"] == "MONTHLY"
    assert values["availability_end_date"] is None

    values, changed = apply_dependent_rules(_permanent(price_negotiable=True))
    assert values["price_amount"] is None
    assert "price_amount" in changed

    values, _ = apply_dependent_rules(_permanent(has_agency_fee=False, agency_fee_amount=300))
    assert values["agency_fee_amount"] is None

    values, _ = apply_dependent_rules(_permanent(bills_policy="INCLUDED"))
    assert values["bills_monthly_estimate"] is None

    values, _ = apply_dependent_rules(_permanent(property_type="STUDIO", unit_type="DOUBLE_ROOM"))
    assert values["unit_type"] == "WHOLE_APARTMENT"


def test_dependent_rules_idempotent():
    once, _ = apply_dependent_rules(_permanent(price_negotiable=True, property_type="STUDIO"))
    twice, changed = apply_dependent_rules(once)
    assert twice == once
    assert changed == set()


def test_prune_for_branch():
    pruned = prune_for_branch(_permanent(availability_end_date=date(2031, 1, 1), bills_policy="INCLUDED"))
    assert pruned["availability_end_date"] is None
    assert pruned["bills_monthly_estimate"] is None
    assert pruned["price_type"] == "MONTHLY"

    pruned = prune_for_branch(_temporary(deposit_amount=500, price_negotiable=True))
    assert pruned["deposit_amount"] is None
    assert pruned["price_amount"] is None
    assert pruned["price_type"] == "DAILY"


def test_stable_stringify_and_json_round_trip():
    v = _permanent()
    assert stable_stringify(v) == stable_stringify(dict(reversed(list(v.items()))))
    restored = values_from_json(values_to_json(v))
    assert restored["availability_start_date"] == date(2030, 9, 1)
    assert restored == v
