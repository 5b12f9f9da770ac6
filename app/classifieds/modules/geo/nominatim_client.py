from __future__ import annotations

import json
import re
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any


class GeocodingError(RuntimeError):
    pass


class GeocodingRateLimited(GeocodingError):
    pass


def pick_accept_language(header: str | None) -> str:
    """Only a small fixed set is forwarded upstream."""
    if re.search(r"\bit\b", header or "", re.IGNORECASE):
        return "it"
    return "en-US"


@dataclass(frozen=True)
class NominatimClient:
    user_agent: str
    base_url: str = "https://nominatim.openstreetmap.org"
    timeout_seconds: int = 8
    accept_language: str = "en-US"

    def request_json(self, path: str, *, params: dict[str, Any] | None = None, retries: int = 2) -> Any:
        url = self.base_url.rstrip("/") + path
        if params:
            url += "?" + urllib.parse.urlencode({k: v for k, v in params.items() if v is not None})

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, method="GET")
                req.add_header("User-Agent", self.user_agent)
                req.add_header("Accept", "application/json")
                req.add_header("Accept-Language", self.accept_language)
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                    try:
                        return json.loads(raw.decode("utf-8"))
                    except ValueError as e:
                        raise GeocodingError(f"Invalid JSON from geocoder ({path})") from e
            except urllib.error.HTTPError as e:
                if e.code == 429:
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = GeocodingRateLimited("Rate limited (429)")
                    continue
                if e.code >= 500:
                    last_err = e
                    time.sleep(min(1 * (attempt + 1), 5))
                    continue
                try:
                    body = e.read().decode("utf-8", errors="ignore")
                except OSError:
                    body = ""
                raise GeocodingError(f"HTTP {e.code} from geocoder: {body[:300]}") from e
            except GeocodingError:
                raise
            except (urllib.error.URLError, TimeoutError, OSError) as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        raise GeocodingError(f"Geocoder request failed after retries: {last_err}")

    def search(self, query: str, *, city: str | None = None, limit: int = 10) -> list[dict[str, Any]]:
        q = (query or "").strip()
        if not q:
            return []
        limit = max(1, min(int(limit), 10))
        j = self.request_json(
            "/search",
            params={
                "q": f"{q}, {city}" if city else q,
                "format": "json",
                "limit": limit,
                "countrycodes": "IT",
                "addressdetails": 1,
                "zoom": 18,
            },
        )
        return j if isinstance(j, list) else []

    def reverse(self, lat: float, lng: float) -> dict[str, Any]:
        if not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
            raise GeocodingError("Coordinates out of range")
        j = self.request_json(
            "/reverse",
            params={"lat": lat, "lon": lng, "format": "json", "zoom": 18, "addressdetails": 1},
        )
        return j if isinstance(j, dict) else {}
