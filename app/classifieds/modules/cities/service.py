from __future__ import annotations

import re
import unicodedata
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.classifieds.modules.cities.models import City


# (name, region, province, province_code, lat, lng)
DEFAULT_CITIES = (
    ("Milano", "Lombardia", "Milano", "MI", 45.4642, 9.19),
    ("Torino", "Piemonte", "Torino", "TO", 45.0703, 7.6869),
    ("Roma", "Lazio", "Roma", "RM", 41.9028, 12.4964),
    ("Bologna", "Emilia-Romagna", "Bologna", "BO", 44.4949, 11.3426),
    ("Padova", "Veneto", "Padova", "PD", 45.4064, 11.8768),
    ("Firenze", "Toscana", "Firenze", "FI", 43.7696, 11.2558),
    ("Pisa", "Toscana", "Pisa", "PI", 43.7228, 10.4017),
    ("Pavia", "Lombardia", "Pavia", "PV", 45.1847, 9.1582),
    ("Genova", "Liguria", "Genova", "GE", 44.4056, 8.9463),
    ("Napoli", "Campania", "Napoli", "NA", 40.8518, 14.2681),
    ("Trento", "Trentino-Alto Adige", "Trento", "TN", 46.0748, 11.1217),
    ("Perugia", "Umbria", "Perugia", "PG", 43.1107, 12.3908),
)


def slugify(value: str) -> str:
    """"Reggio nell'Emilia" -> "reggio-nell-emilia"."""
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-zA-Z0-9]+", "-", value).strip("-").lower()
    return value or "city"


def list_active_cities(s: "Session") -> list["City"]:
    from app.classifieds.modules.cities.models import City

    return (
        s.query(City)
        .filter(City.is_active.is_(True))
        .order_by(City.sort_order.asc(), City.name.asc())
        .all()
    )


def get_active_city(s: "Session", city_id: int | None) -> "City | None":
    from app.classifieds.modules.cities.models import City

    if not city_id:
        return None
    city = s.get(City, city_id)
    if not city or not city.is_active:
        return None
    return city


def ensure_default_cities(s: "Session") -> int:
    """Insert the default city list; existing slugs are left untouched. Returns inserted count."""
    from app.classifieds.modules.cities.models import City

    existing = {slug for (slug,) in s.query(City.slug).all()}
    created = 0
    for i, (name, region, province, code, lat, lng) in enumerate(DEFAULT_CITIES):
        slug = slugify(name)
        if slug in existing:
            continue
        s.add(
            City(
                name=name,
                slug=slug,
                region=region,
                province=province,
                province_code=code,
                lat=lat,
                lng=lng,
                is_active=True,
                sort_order=i,
            )
        )
        created += 1
    s.flush()
    return created
