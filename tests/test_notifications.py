import pytest

from app.classifieds.db import session_scope
from app.classifieds.models import User
from app.classifieds.modules.notifications.models import Notification
from app.classifieds.modules.notifications.service import (
    create_notification,
    list_notifications,
    mark_all_read,
    mark_read,
    unread_count,
)

from conftest import CSRF


def _user(s, email="owner@example.com"):
    return s.query(User).filter(User.email == email).one()


def test_create_notification_defaults_and_validation(app, make_ad):
    ad_id = make_ad()
    with session_scope(app) as s:
        u = _user(s)
        n = create_notification(s, user_id=u.id, title="  Ad Approved  ", body="Live now", severity="SUCCESS", ad_id=ad_id)
        s.flush()
        assert n.title == "Ad Approved"
        assert n.deep_link == f"/dashboard/ads/{ad_id}"
        assert n.type == "AD_EVENT"

        plain = create_notification(s, user_id=u.id, title="Welcome", type="SYSTEM")
        assert plain.deep_link is None
        assert plain.body is None

        with pytest.raises(ValueError):
            create_notification(s, user_id=u.id, title="x", severity="LOUD")
        with pytest.raises(ValueError):
            create_notification(s, user_id=u.id, title="x", type="PROMO")


def test_list_and_mark_read(app):
    with session_scope(app) as s:
        owner, other = _user(s), _user(s, "other@example.com")
        mine = [create_notification(s, user_id=owner.id, title=f"n{i}") for i in range(3)]
        theirs = create_notification(s, user_id=other.id, title="not yours")
        s.flush()
        ids = [n.id for n in mine]
        theirs_id = theirs.id

    with session_scope(app) as s:
        owner = _user(s)
        items, total = list_notifications(s, owner)
        assert total == 3
        # newest first
        assert [n.id for n in items] == sorted(ids, reverse=True)
        assert unread_count(s, owner) == 3

        assert mark_read(s, owner, [ids[0], theirs_id]) == 1
        assert mark_read(s, owner, [ids[0]]) == 0
        assert mark_read(s, owner, []) == 0

    with session_scope(app) as s:
        owner = _user(s)
        assert unread_count(s, owner) == 2
        unread, total = list_notifications(s, owner, unread_only=True)
        assert total == 2
        assert s.get(Notification, theirs_id).read_at is None

        assert mark_all_read(s, owner) == 2
        assert unread_count(s, owner) == 0
        assert mark_all_read(s, owner) == 0
    with session_scope(app) as s:
        assert unread_count(s, _user(s)) == 0


def test_list_paginates(app):
    with session_scope(app) as s:
        owner = _user(s)
        for i in range(5):
            create_notification(s, user_id=owner.id, title=f"n{i}")
    with session_scope(app) as s:
        items, total = list_notifications(s, _user(s), page=2, per_page=2)
        assert total == 5
        assert len(items) == 2


def test_notification_routes(app, login):
    with session_scope(app) as s:
        owner = _user(s)
        n1 = create_notification(s, user_id=owner.id, title="First")
        create_notification(s, user_id=owner.id, title="Second")
        s.flush()
        n1_id = n1.id

    c = login()
    assert c.get("/dashboard/notifications/count").get_json() == {"unread": 2}
    r = c.get("/dashboard/notifications/")
    assert r.status_code == 200
    assert b"First" in r.data and b"Second" in r.data

    r = c.post("/dashboard/notifications/read", data={"csrf_token": CSRF, "ids": [str(n1_id), "junk"], "next": "/dashboard/notifications/?unread=1"})
    assert r.headers["Location"].endswith("/dashboard/notifications/?unread=1")
    r = c.get("/dashboard/notifications/?unread=1")
    assert b"Second" in r.data
    assert b"First" not in r.data

    c.post("/dashboard/notifications/read-all", data={"csrf_token": CSRF})
    assert c.get("/dashboard/notifications/count").get_json() == {"unread": 0}


def test_notifications_require_login(client):
    r = client.get("/dashboard/notifications/count")
    assert r.status_code == 302
