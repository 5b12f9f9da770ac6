import io
import json
import urllib.error
from types import SimpleNamespace

import pytest

from app.classifieds.modules.geo import nominatim_client, routes as geo_routes
from app.classifieds.modules.geo.nominatim_client import (
    GeocodingError,
    NominatimClient,
    pick_accept_language,
)
from app.classifieds.modules.geo.service import haversine_km, point_in_city_radius, simplify_place

MILANO = SimpleNamespace(lat=45.4642, lng=9.19)

NAVIGLI = {
    "display_name": "Via Vigevano, Navigli, Milano",
    "lat": "45.4521",
    "lon": "9.1762",
    "address": {"road": "Via Vigevano", "house_number": "12", "suburb": "Navigli", "postcode": "20144", "city": "Milano"},
}


class _Resp(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_haversine_km():
    assert haversine_km(45.4642, 9.19, 45.4642, 9.19) == 0
    # Milano to Torino is roughly 126 km
    assert 120 < haversine_km(45.4642, 9.19, 45.0703, 7.6869) < 130


def test_point_in_city_radius():
    assert point_in_city_radius(45.45, 9.17, MILANO)
    assert not point_in_city_radius(41.9028, 12.4964, MILANO)
    assert point_in_city_radius(41.9, 12.5, SimpleNamespace(lat=None, lng=None))
    assert point_in_city_radius(45.0703, 7.6869, MILANO, km=200)


def test_pick_accept_language():
    assert pick_accept_language("it-IT,it;q=0.9,en;q=0.8") == "it"
    assert pick_accept_language("fa-IR,en;q=0.5") == "en-US"
    assert pick_accept_language(None) == "en-US"


def test_simplify_place():
    place = simplify_place(NAVIGLI)
    assert place["lat"] == pytest.approx(45.4521)
    assert place["lng"] == pytest.approx(9.1762)
    assert place["neighborhood"] == "Navigli"
    assert place["street_name"] == "Via Vigevano"
    assert place["postal_code"] == "20144"
    assert simplify_place({"lat": "x"})["lat"] is None


def test_client_sends_headers_and_parses(monkeypatch):
    seen = {}

    def fake_urlopen(req, timeout):
        seen["url"] = req.full_url
        seen["ua"] = req.get_header("User-agent")
        seen["lang"] = req.get_header("Accept-language")
        return _Resp(json.dumps([NAVIGLI]).encode())

    monkeypatch.setattr(nominatim_client.urllib.request, "urlopen", fake_urlopen)
    client = NominatimClient(user_agent="test-agent", accept_language="it")
    results = client.search("Via Vigevano", city="Milano", limit=50)
    assert results == [NAVIGLI]
    assert "countrycodes=IT" in seen["url"]
    assert "limit=10" in seen["url"]
    assert "Via+Vigevano%2C+Milano" in seen["url"]
    assert seen["ua"] == "test-agent"
    assert seen["lang"] == "it"
    assert client.search("   ") == []


def test_client_retries_then_fails(monkeypatch):
    calls = []
    sleeps = []

    def fake_urlopen(req, timeout):
        calls.append(req.full_url)
        raise urllib.error.HTTPError(req.full_url, 429, "Too Many Requests", {}, None)

    monkeypatch.setattr(nominatim_client.urllib.request, "urlopen", fake_urlopen)
    monkeypatch.setattr(nominatim_client.time, "sleep", sleeps.append)
    with pytest.raises(GeocodingError, match="after retries"):
        NominatimClient(user_agent="t").request_json("/search", params={"q": "x"}, retries=2)
    assert len(calls) == 3
    assert sleeps == [2, 4, 6]


def test_client_client_errors_are_not_retried(monkeypatch):
    calls = []

    def fake_urlopen(req, timeout):
        calls.append(1)
        raise urllib.error.HTTPError(req.full_url, 400, "Bad Request", {}, io.BytesIO(b"bad query"))

    monkeypatch.setattr(nominatim_client.urllib.request, "urlopen", fake_urlopen)
    with pytest.raises(GeocodingError, match="HTTP 400"):
        NominatimClient(user_agent="t").request_json("/search")
    assert calls == [1]


def test_client_invalid_json(monkeypatch):
    monkeypatch.setattr(nominatim_client.urllib.request, "urlopen", lambda req, timeout: _Resp(b"<html>"))
    with pytest.raises(GeocodingError, match="Invalid JSON"):
        NominatimClient(user_agent="t").request_json("/reverse")


def test_reverse_rejects_out_of_range():
    with pytest.raises(GeocodingError):
        NominatimClient(user_agent="t").reverse(91, 0)


class _FakeClient:
    def __init__(self, results=None, place=None, fail=False):
        self.results = results or []
        self.place = place or {}
        self.fail = fail
        self.calls = []

    def search(self, q, *, city=None, limit=10):
        self.calls.append((q, city, limit))
        if self.fail:
            raise GeocodingError("down")
        return self.results

    def reverse(self, lat, lng):
        if self.fail:
            raise GeocodingError("down")
        return self.place


def test_geo_routes_require_login(client):
    r = client.get("/api/geo/search?q=navigli")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_geo_search_route(login, monkeypatch):
    fake = _FakeClient(results=[NAVIGLI])
    monkeypatch.setattr(geo_routes, "client_from_config", lambda config, header=None: fake)
    c = login()

    assert c.get("/api/geo/search").status_code == 400
    assert c.get("/api/geo/search?q=x&limit=20").status_code == 400

    r = c.get("/api/geo/search?q=navigli&limit=3")
    assert r.status_code == 200
    body = r.get_json()
    assert body["results"][0]["neighborhood"] == "Navigli"
    assert body["results"][0]["in_city"] is True
    # the user's profile city scopes the query
    assert fake.calls == [("navigli", "Milano", 3)]


def test_geo_routes_report_upstream_failure(login, monkeypatch):
    monkeypatch.setattr(geo_routes, "client_from_config", lambda config, header=None: _FakeClient(fail=True))
    c = login()
    assert c.get("/api/geo/search?q=navigli").status_code == 502
    assert c.get("/api/geo/reverse?lat=45.45&lng=9.17").status_code == 502


def test_geo_reverse_route(login, monkeypatch):
    monkeypatch.setattr(geo_routes, "client_from_config", lambda config, header=None: _FakeClient(place=NAVIGLI))
    c = login()
    assert c.get("/api/geo/reverse?lat=abc&lng=1").status_code == 400
    assert c.get("/api/geo/reverse?lat=95&lng=1").status_code == 400

    r = c.get("/api/geo/reverse?lat=45.45&lng=9.17")
    body = r.get_json()
    assert body["result"]["street_number"] == "12"
    assert body["in_city"] is True

    r = c.get("/api/geo/reverse?lat=41.9&lng=12.5")
    assert r.get_json()["in_city"] is False
