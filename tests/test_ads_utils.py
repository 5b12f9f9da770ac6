"""Pure-logic tests: ad list helpers, form parsers and single-page category payloads."""
from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from app.classifieds.modules.ads.service import (
    calculate_ad_counts,
    expiration_details,
    filter_and_sort_ads,
    format_days_left,
)
from app.classifieds.modules.local_services.service import parse_service_payload
from app.classifieds.modules.marketplace.service import parse_marketplace_payload
from app.classifieds.modules.transportation.service import parse_transport_payload
from app.classifieds.utils import FormValueError, clean_text, parse_date, parse_int, parse_list


def _ad(id, category, status, days_ago=0):
    return SimpleNamespace(id=id, category=category, status=status, created_at=datetime(2030, 1, 10) - timedelta(days=days_ago))


def test_format_days_left():
    assert format_days_left(0) == "today"
    assert format_days_left(-3) == "today"
    assert format_days_left(1) == "1 day left"
    assert format_days_left(12) == "12 days left"


def test_expiration_details():
    now = datetime(2030, 1, 1, 12, 0)
    assert expiration_details(None, now) is None

    d = expiration_details(now + timedelta(days=2, hours=1), now)
    assert d == {"days_left": 3, "label": "3 days left", "is_expired": False}

    d = expiration_details(now - timedelta(hours=5), now)
    assert d["days_left"] == 0
    assert d["label"] == "today"
    assert d["is_expired"] is True


def test_calculate_ad_counts():
    ads = [
        _ad(1, "HOUSING", "ONLINE"),
        _ad(2, "HOUSING", "PENDING"),
        _ad(3, "MARKETPLACE", "ONLINE"),
        _ad(4, "SERVICES", "REJECTED"),
    ]
    counts = calculate_ad_counts(ads, "HOUSING")
    assert counts["total"] == 4
    assert counts["categories"]["HOUSING"] == 2
    assert counts["categories"]["CURRENCY"] == 0
    assert counts["statuses"] == {"PENDING": 1, "ONLINE": 1, "REJECTED": 0, "EXPIRED": 0}

    counts = calculate_ad_counts(ads, None)
    assert counts["statuses"]["ONLINE"] == 2
    assert counts["statuses"]["REJECTED"] == 1


def test_filter_and_sort_ads():
    ads = [_ad(1, "HOUSING", "ONLINE", days_ago=5), _ad(2, "MARKETPLACE", "ONLINE", days_ago=1), _ad(3, "HOUSING", "PENDING", days_ago=2)]
    assert [a.id for a in filter_and_sort_ads(ads, None)] == [2, 3, 1]
    assert [a.id for a in filter_and_sort_ads(ads, None, "oldest")] == [1, 3, 2]
    assert [a.id for a in filter_and_sort_ads(ads, "HOUSING")] == [3, 1]


def test_form_parsers():
    assert clean_text("  hi ") == "hi"
    assert clean_text("   ") is None
    with pytest.raises(FormValueError):
        clean_text("abcdef", 3)
    assert parse_date("2030-02-01") == date(2030, 2, 1)
    with pytest.raises(FormValueError):
        parse_date("01/02/2030")
    assert parse_int("4") == 4
    with pytest.raises(FormValueError):
        parse_int("4.5")
    assert parse_list(["a, b", "b", "", "c\nd"]) == ["a", "b", "c", "d"]


# ---------- Transportation ----------
def _transport(**overrides):
    payload = {
        "direction": "ITALY_TO_IRAN",
        "departure_city": "Milano",
        "arrival_city": "Tehran",
        "flight_date": "2030-05-01",
        "capacity_kg": "10",
        "price_mode": "PER_KG",
        "price_per_kg": "12",
        "fixed_total_price": "300",
        "accepted_item_types": ["Documents", "Clothes"],
        "subject_to_inspection": "true",
    }
    payload.update(overrides)
    return payload


def test_transport_payload_valid_per_kg():
    fields, errors = parse_transport_payload(_transport(), today=date(2030, 1, 1))
    assert errors == []
    assert fields["departure_country"] == "ITALY"
    assert fields["arrival_country"] == "IRAN"
    assert fields["price_per_kg"] == 12.0
    assert fields["fixed_total_price"] is None
    assert fields["subject_to_inspection"] is True
    assert fields["documents_accepted"] is False
    assert fields["accepted_item_types"] == ["Documents", "Clothes"]


def test_transport_direction_fixes_countries():
    fields, _ = parse_transport_payload(_transport(direction="iran_to_italy"), today=date(2030, 1, 1))
    assert (fields["departure_country"], fields["arrival_country"]) == ("IRAN", "ITALY")


def test_transport_price_modes():
    fields, errors = parse_transport_payload(_transport(price_mode="FIXED_TOTAL"), today=date(2030, 1, 1))
    assert errors == []
    assert fields["price_per_kg"] is None
    assert fields["fixed_total_price"] == 300.0

    fields, errors = parse_transport_payload(_transport(price_mode="NEGOTIABLE"), today=date(2030, 1, 1))
    assert errors == []
    assert fields["price_per_kg"] is None and fields["fixed_total_price"] is None

    _, errors = parse_transport_payload(_transport(price_per_kg="0"), today=date(2030, 1, 1))
    assert "Price per kg: Enter a price greater than 0" in errors


def test_transport_errors():
    _, errors = parse_transport_payload(_transport(flight_date="2029-12-31"), today=date(2030, 1, 1))
    assert "Flight date: Flight date cannot be in the past" in errors

    _, errors = parse_transport_payload(_transport(flight_date=""), today=date(2030, 1, 1))
    assert "Flight date: This field is required" in errors

    _, errors = parse_transport_payload(_transport(capacity_kg="0", direction="NOWHERE"), today=date(2030, 1, 1))
    assert "Capacity: Must be greater than 0" in errors
    assert "Direction: Select an option!" in errors

    _, errors = parse_transport_payload(_transport(min_accept_kg="20"), today=date(2030, 1, 1))
    assert "Minimum weight: Cannot exceed capacity" in errors


# ---------- Marketplace ----------
def test_marketplace_payload():
    fields, errors = parse_marketplace_payload(
        {"title": "Bike", "description": "City bike", "price": "80", "condition": "used", "category": "Sport"}
    )
    assert errors == []
    assert fields == {"title": "Bike", "description": "City bike", "price": 80.0, "condition": "USED", "category": "Sport"}

    _, errors = parse_marketplace_payload({"title": "", "description": "", "price": "-1", "condition": "BROKEN"})
    assert "Title: This field is required" in errors
    assert "Description: This field is required" in errors
    assert "Price: Amount cannot be negative" in errors
    assert "Condition: Select an option!" in errors

    _, errors = parse_marketplace_payload({"title": "x" * 256, "description": "d", "price": "", "condition": "NEW"})
    assert "Title: Maximum is 255 characters" in errors
    assert "Price: This field is required" in errors


def test_marketplace_free_item_allowed():
    _, errors = parse_marketplace_payload({"title": "Sofa", "description": "Free", "price": "0", "condition": "USED"})
    assert errors == []


# ---------- Services ----------
def _service(**overrides):
    payload = {
        "title": "Italian lessons",
        "description": "Conversation practice",
        "service_category": "TUTORING",
        "tags": "language, italian",
        "rate_basis": "HOURLY",
        "rate_amount": "15",
        "availability_days": ["SUN", "mon"],
        "portfolio_links": "https://example.com/me",
    }
    payload.update(overrides)
    return payload


def test_service_payload_valid():
    fields, errors = parse_service_payload(_service())
    assert errors == []
    assert fields["tags"] == ["language", "italian"]
    assert fields["availability_days"] == ["MON", "SUN"]
    assert fields["rate_amount"] == 15.0
    assert fields["portfolio_links"] == ["https://example.com/me"]


def test_service_payload_errors():
    _, errors = parse_service_payload(_service(portfolio_links="ftp://example.com", availability_days=[]))
    assert "Portfolio: Links must start with http:// or https://" in errors
    assert "Availability: Select at least one day" in errors

    _, errors = parse_service_payload(_service(rate_amount="-5"))
    assert "Rate: Amount cannot be negative" in errors

    _, errors = parse_service_payload(_service(rate_basis="", rate_amount="10"))
    assert "Rate: Select how the rate is charged" in errors

    _, errors = parse_service_payload(_service(service_category="GARDENING", availability_days=["FUNDAY"]))
    assert "Category: Select an option!" in errors
    assert "Availability: Unknown day FUNDAY" in errors


def test_service_rate_is_optional():
    fields, errors = parse_service_payload(_service(rate_basis="", rate_amount=""))
    assert errors == []
    assert fields["rate_basis"] is None
    assert fields["rate_amount"] is None
