from datetime import datetime, timedelta

from app.classifieds.db import session_scope
from app.classifieds.models import AuditEvent, User
from app.classifieds.modules.cities.models import City
from app.classifieds.modules.profiles.service import (
    change_city,
    next_city_change_at,
    update_profile,
    validate_profile_payload,
)

from conftest import CSRF


def _user(s, email="owner@example.com"):
    return s.query(User).filter(User.email == email).one()


def _city(s, slug):
    return s.query(City).filter(City.slug == slug).one()


def test_validate_profile_payload(app):
    with session_scope(app) as s:
        other = _user(s, "other@example.com")
        other.handle = "taken.name"

    with session_scope(app) as s:
        owner = _user(s)
        assert validate_profile_payload(s, {"name": "Owner", "handle": "owner_1", "telegram_handle": "@owner_tg"}, owner) == []
        errors = validate_profile_payload(s, {"name": " ", "handle": "ab", "telegram_handle": "bad handle"}, owner)
        assert errors == [
            "Name is required.",
            "Handle must be 3-30 characters: lowercase letters, digits, '_' or '.'.",
            "Enter a valid Telegram username.",
        ]
        assert validate_profile_payload(s, {"name": "Owner", "handle": "Taken.Name"}, owner) == ["This handle is already taken."]
        # the other user may keep their own handle
        assert validate_profile_payload(s, {"name": "Other", "handle": "taken.name"}, _user(s, "other@example.com")) == []


def test_update_profile_normalizes_and_audits(app):
    with session_scope(app) as s:
        owner = _user(s)
        changes = update_profile(s, owner, {"name": "Owner", "handle": "Owner.One", "telegram_handle": "@owner_tg"})
        assert set(changes) == {"handle", "telegram_handle"}
        assert owner.handle == "owner.one"
        assert owner.telegram_handle == "owner_tg"

    with session_scope(app) as s:
        owner = _user(s)
        assert update_profile(s, owner, {"name": "Owner", "handle": "owner.one", "telegram_handle": "owner_tg"}) == {}
        assert s.query(AuditEvent).filter(AuditEvent.action == "profile.edit").count() == 1


def test_first_city_change_is_free_then_cooldown_applies(app):
    start = datetime(2030, 1, 10, 12, 0)
    with session_scope(app) as s:
        owner = _user(s)
        assert next_city_change_at(owner, 30) is None
        assert change_city(s, owner, _city(s, "torino").id, cooldown_days=30, now=start) == []
        assert owner.city_last_changed_at == start
        assert next_city_change_at(owner, 30) == start + timedelta(days=30)

    with session_scope(app) as s:
        owner = _user(s)
        roma = _city(s, "roma").id
        assert change_city(s, owner, roma, cooldown_days=30, now=start + timedelta(days=5)) == [
            "You can change your city again on 2030-02-09."
        ]
        # picking the current city is a no-op, not an error
        assert change_city(s, owner, _city(s, "torino").id, cooldown_days=30, now=start + timedelta(days=5)) == []
        assert change_city(s, owner, roma, cooldown_days=30, now=start + timedelta(days=31)) == []
        assert owner.city_id == roma

    with session_scope(app) as s:
        events = s.query(AuditEvent).filter(AuditEvent.action == "profile.city_change").all()
        assert len(events) == 2


def test_change_city_rejects_unknown_or_inactive(app):
    with session_scope(app) as s:
        owner = _user(s)
        assert change_city(s, owner, 9999, cooldown_days=30) == ["Select a valid city."]
        assert change_city(s, owner, None, cooldown_days=30) == ["Select a valid city."]
        pisa = _city(s, "pisa")
        pisa.is_active = False
        assert change_city(s, owner, pisa.id, cooldown_days=30) == ["Select a valid city."]


def test_profile_routes(app, login):
    c = login()
    r = c.get("/dashboard/profile")
    assert r.status_code == 200
    assert b"Milano" in r.data

    r = c.post("/dashboard/profile", data={"csrf_token": CSRF, "name": "Owner", "handle": "owner.one"}, follow_redirects=True)
    assert b"Profile updated." in r.data
    r = c.post("/dashboard/profile", data={"csrf_token": CSRF, "name": "Owner", "handle": "owner.one"}, follow_redirects=True)
    assert b"No changes." in r.data
    r = c.post("/dashboard/profile", data={"csrf_token": CSRF, "name": ""}, follow_redirects=True)
    assert b"Name is required." in r.data


def test_profile_city_route(app, login):
    with session_scope(app) as s:
        torino, roma = _city(s, "torino").id, _city(s, "roma").id

    c = login()
    r = c.post("/dashboard/profile/city", data={"csrf_token": CSRF, "city_id": str(torino)}, follow_redirects=True)
    assert b"City updated." in r.data
    r = c.post("/dashboard/profile/city", data={"csrf_token": CSRF, "city_id": str(roma)}, follow_redirects=True)
    assert b"You can change your city again on" in r.data
    r = c.post("/dashboard/profile/city", data={"csrf_token": CSRF, "city_id": "abc"}, follow_redirects=True)
    assert b"Select a valid city." in r.data

    with session_scope(app) as s:
        assert _user(s).city_id == torino


def test_profile_requires_login(client):
    r = client.get("/dashboard/profile")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
