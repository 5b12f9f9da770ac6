import logging

from app.classifieds.db import session_scope
from app.classifieds.models import AuditEvent, User
from app.classifieds.modules.ads import routes as ads_routes
from app.classifieds.modules.ads.models import Ad, MediaAsset
from app.classifieds.modules.ads.service import delete_ad
from app.classifieds.modules.media.service import upload_ad_image
from app.classifieds.storage import LocalStorage, StorageError, storage_from_config

from conftest import CSRF, PASSWORD, png_bytes


def test_health_endpoints(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.get_json() == {"ok": True}
    assert client.get("/healthz").data == b"ok"


def test_login_and_logout(app, client, login):
    r = client.get("/auth/login")
    assert r.status_code == 200

    c = login()
    r = c.get("/dashboard/ads")
    assert r.status_code == 200

    r = c.get("/auth/logout")
    assert r.status_code == 302
    r = c.get("/dashboard/ads")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]
    assert "auth.login" in actions
    assert "auth.logout" in actions


def test_login_failure_is_audited(app, client):
    r = client.post("/auth/login", data={"email": "owner@example.com", "password": "wrong-pass"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/auth/login")
    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "auth.login").one()
        assert ev.outcome == "FAILURE"
        assert ev.error_code == "INVALID_CREDENTIALS"


def test_login_redirects_to_safe_next_only(client):
    r = client.post("/auth/login", data={"email": "owner@example.com", "password": PASSWORD, "next": "/dashboard/create"})
    assert r.headers["Location"].endswith("/dashboard/create")
    client.get("/auth/logout")
    r = client.post("/auth/login", data={"email": "owner@example.com", "password": PASSWORD, "next": "//evil.example"})
    assert r.headers["Location"].endswith("/dashboard/ads")


def test_login_rate_limit(client):
    for _ in range(5):
        client.post("/auth/login", data={"email": "owner@example.com", "password": "nope"})
    r = client.post("/auth/login", data={"email": "owner@example.com", "password": PASSWORD}, follow_redirects=True)
    assert b"Too many login attempts" in r.data
    with client.session_transaction() as sess:
        assert "user_id" not in sess


def test_register(app, client):
    r = client.post("/auth/register", data={"email": "New@Example.com", "password": "longenough", "name": "New"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard/profile")
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "new@example.com").one()
        assert [r.key for r in u.roles] == ["user"]
        assert u.city_id is None


def test_register_rejects_bad_input(client):
    r = client.post("/auth/register", data={"email": "not-an-email", "password": "short", "name": ""})
    assert r.status_code == 400
    assert b"Enter a valid email address." in r.data
    assert b"Password must be at least 8 characters." in r.data

    r = client.post("/auth/register", data={"email": "owner@example.com", "password": "longenough", "name": "Dup"})
    assert r.status_code == 400
    assert b"already exists" in r.data


def test_csrf_required_on_posts(login, make_ad):
    c = login()
    ad_id = make_ad()
    r = c.post(f"/dashboard/ads/{ad_id}/delete", data={})
    assert r.status_code == 400
    r = c.post(f"/dashboard/ads/{ad_id}/delete", data={"csrf_token": "wrong"})
    assert r.status_code == 400
    r = c.post(f"/dashboard/ads/{ad_id}/delete", headers={"X-CSRF-Token": CSRF})
    assert r.status_code == 302


def test_permissions(client, login):
    r = client.get("/panel/")
    assert r.status_code == 302
    c = login()
    r = c.get("/panel/")
    assert r.status_code == 403


def test_public_listing_shows_online_ads_only(client, make_ad):
    make_ad(status="ONLINE", title="Online lamp")
    make_ad(status="PENDING", title="Pending chair")
    r = client.get("/")
    assert r.status_code == 200
    assert b"Online lamp" in r.data
    assert b"Pending chair" not in r.data
    assert client.get("/?category=HOUSING").status_code == 200
    assert client.get("/?page=abc").status_code == 200


def test_public_ad_visibility_and_views(app, client, login, make_ad):
    online = make_ad(status="ONLINE")
    pending = make_ad(status="PENDING")
    assert client.get(f"/ads/{pending}").status_code == 404
    assert client.get(f"/ads/{online}").status_code == 200
    assert client.get("/ads/9999").status_code == 404
    with session_scope(app) as s:
        assert s.get(Ad, online).views_count == 1

    c = login()
    # owners see their own pending ads and do not count as views
    assert c.get(f"/ads/{pending}").status_code == 200
    assert c.get(f"/ads/{online}").status_code == 200
    with session_scope(app) as s:
        assert s.get(Ad, online).views_count == 1


def test_contact_reveal(app, client, login, make_ad):
    ad_id = make_ad(status="ONLINE")
    c = login("other@example.com")
    r = c.post(f"/ads/{ad_id}/contact", data={"csrf_token": CSRF})
    assert r.status_code == 302
    assert "contact=1" in r.headers["Location"]
    with session_scope(app) as s:
        assert s.get(Ad, ad_id).contact_clicks_count == 1
        assert s.query(AuditEvent).filter(AuditEvent.action == "ad.contact_reveal").count() == 1


def test_my_ads_filters_and_detail(login, make_ad):
    make_ad(status="ONLINE", title="Online lamp")
    pending = make_ad(status="PENDING", title="Pending chair")
    make_ad(email="other@example.com", title="Someone else")
    c = login()

    r = c.get("/dashboard/ads")
    assert b"Online lamp" in r.data and b"Pending chair" in r.data
    assert b"Someone else" not in r.data

    r = c.get("/dashboard/ads?status=pending&sort=oldest&category=marketplace")
    assert b"Pending chair" in r.data
    assert b"Online lamp" not in r.data

    r = c.get(f"/dashboard/ads/{pending}")
    assert r.status_code == 200
    assert b"Pending chair" in r.data


def test_my_ads_detail_rejects_other_owner(login, make_ad):
    theirs = make_ad(email="other@example.com")
    c = login()
    r = c.get(f"/dashboard/ads/{theirs}", follow_redirects=True)
    assert b"You do not have permission to perform this action." in r.data


def test_delete_own_ad(app, login, make_ad):
    ad_id = make_ad()
    theirs = make_ad(email="other@example.com")
    c = login()
    r = c.post(f"/dashboard/ads/{theirs}/delete", data={"csrf_token": CSRF})
    assert r.status_code == 302
    r = c.post(f"/dashboard/ads/{ad_id}/delete", data={"csrf_token": CSRF})
    assert r.headers["Location"].endswith("/dashboard/ads")
    with session_scope(app) as s:
        assert s.get(Ad, ad_id) is None
        assert s.get(Ad, theirs) is not None
        assert s.query(AuditEvent).filter(AuditEvent.action == "ad.delete").count() == 1


def _attach_image(app, ad_id) -> str:
    storage = storage_from_config(app.config)
    with session_scope(app) as s:
        ad = s.get(Ad, ad_id)
        img = upload_ad_image(
            storage, user_id=ad.user_id, category="MARKETPLACE", file_bytes=png_bytes(), filename="lamp.png", max_bytes=1024 * 1024
        )
        ad.media.append(MediaAsset(storage_key=img.storage_key, mime_type=img.mime_type, bytes=img.bytes))
    return img.storage_key


def test_delete_ad_leaves_storage_to_caller(app, make_ad):
    ad_id = make_ad()
    key = _attach_image(app, ad_id)
    with session_scope(app) as s:
        owner = s.query(User).filter(User.email == "owner@example.com").one()
        assert delete_ad(s, s.get(Ad, ad_id), owner) == [key]
        s.rollback()
    with session_scope(app) as s:
        assert s.get(Ad, ad_id) is not None
    assert storage_from_config(app.config).exists(key)


def test_delete_route_removes_images_after_commit(app, login, make_ad):
    ad_id = make_ad()
    key = _attach_image(app, ad_id)
    r = login().post(f"/dashboard/ads/{ad_id}/delete", data={"csrf_token": CSRF})
    assert r.headers["Location"].endswith("/dashboard/ads")
    assert not storage_from_config(app.config).exists(key)


def test_failed_delete_keeps_ad_and_images(app, login, make_ad, monkeypatch):
    ad_id = make_ad()
    key = _attach_image(app, ad_id)
    real_delete = ads_routes.delete_ad

    def _delete_then_fail(s, ad, user):
        real_delete(s, ad, user)
        raise RuntimeError("connection lost")

    monkeypatch.setattr(ads_routes, "delete_ad", _delete_then_fail)
    r = login().post(f"/dashboard/ads/{ad_id}/delete", data={"csrf_token": CSRF}, follow_redirects=True)
    assert b"Failed to delete ad." in r.data
    with session_scope(app) as s:
        assert s.get(Ad, ad_id) is not None
    assert storage_from_config(app.config).exists(key)


def test_storage_cleanup_failure_is_logged_not_raised(app, login, make_ad, monkeypatch, caplog):
    class _BrokenStorage(LocalStorage):
        def delete_many(self, keys):
            raise StorageError("bucket unavailable")

    ad_id = make_ad()
    key = _attach_image(app, ad_id)
    broken = _BrokenStorage(root=storage_from_config(app.config).root)
    monkeypatch.setattr(ads_routes, "storage_from_config", lambda config: broken)
    with caplog.at_level(logging.WARNING):
        r = login().post(f"/dashboard/ads/{ad_id}/delete", data={"csrf_token": CSRF})
    assert r.headers["Location"].endswith("/dashboard/ads")
    assert "Failed to delete 1 stored image(s): bucket unavailable" in caplog.text
    with session_scope(app) as s:
        assert s.get(Ad, ad_id) is None
    assert storage_from_config(app.config).exists(key)


def test_create_chooser(login):
    c = login("nocity@example.com")
    r = c.get("/dashboard/create")
    assert r.status_code == 200
