from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Mapping

from app.classifieds.modules.geo.nominatim_client import NominatimClient, pick_accept_language

if TYPE_CHECKING:
    from app.classifieds.modules.cities.models import City

EARTH_RADIUS_KM = 6371.0
DEFAULT_CITY_RADIUS_KM = 30.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dp = math.radians(lat2 - lat1)
    dl = math.radians(lng2 - lng1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def point_in_city_radius(lat: float, lng: float, city: "City", km: float = DEFAULT_CITY_RADIUS_KM) -> bool:
    """True when the point is within `km` of the city centre; cities without coordinates accept any point."""
    if city.lat is None or city.lng is None:
        return True
    return haversine_km(lat, lng, city.lat, city.lng) <= km


def client_from_config(config: Mapping[str, Any], accept_language_header: str | None = None) -> NominatimClient:
    return NominatimClient(
        user_agent=config.get("NOMINATIM_USER_AGENT") or "classifieds-app/1.0",
        base_url=config.get("NOMINATIM_BASE_URL") or "https://nominatim.openstreetmap.org",
        accept_language=pick_accept_language(accept_language_header),
    )


def simplify_place(item: dict[str, Any]) -> dict[str, Any]:
    """Trim a Nominatim result to what the location step uses."""
    address = item.get("address") or {}
    try:
        lat = float(item.get("lat"))
        lng = float(item.get("lon"))
    except (TypeError, ValueError):
        lat = lng = None
    neighborhood = (
        address.get("neighbourhood")
        or address.get("suburb")
        or address.get("quarter")
        or address.get("city_district")
    )
    return {
        "display_name": item.get("display_name"),
        "lat": lat,
        "lng": lng,
        "neighborhood": neighborhood,
        "street_name": address.get("road"),
        "street_number": address.get("house_number"),
        "postal_code": address.get("postcode"),
        "city": address.get("city") or address.get("town") or address.get("village"),
    }
