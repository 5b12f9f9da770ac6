import struct
from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.classifieds import auth, create_app
from app.classifieds.db import session_scope
from app.classifieds.models import Base, User
from app.classifieds.modules.ads.models import Ad
from app.classifieds.modules.cities.models import City
from app.classifieds.modules.cities.service import ensure_default_cities
from app.classifieds.modules.marketplace.models import AdMarketplace
from scripts.init_db import ensure_roles

PASSWORD = "password1"
CSRF = "test-csrf"


def png_bytes(width: int = 2, height: int = 3) -> bytes:
    return b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + struct.pack(">II", width, height) + b"\x08\x02\x00\x00\x00" + b"\x00" * 8


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "MAX_AD_IMAGES"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    auth._login_attempts.clear()

    with session_scope(app) as s:
        roles = ensure_roles(s)
        ensure_default_cities(s)
        milano = s.query(City).filter(City.slug == "milano").one()

        def _user(email, name, role, city_id):
            u = User(
                email=email,
                password_hash=generate_password_hash(PASSWORD),
                name=name,
                city_id=city_id,
                is_active=True,
            )
            u.roles.append(roles[role])
            s.add(u)
            return u

        _user("owner@example.com", "Owner", "user", milano.id)
        _user("other@example.com", "Other", "user", milano.id)
        _user("nocity@example.com", "No City", "user", None)
        _user("mod@example.com", "Moderator", "moderator", None)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def csrf():
    return CSRF


@pytest.fixture()
def login(client):
    def _login(email: str = "owner@example.com", password: str = PASSWORD):
        r = client.post("/auth/login", data={"email": email, "password": password})
        assert r.status_code == 302
        with client.session_transaction() as sess:
            sess["csrf_token"] = CSRF
        return client

    return _login


@pytest.fixture()
def user_id(app):
    def _user_id(email: str) -> int:
        with session_scope(app) as s:
            return s.query(User).filter(User.email == email).one().id

    return _user_id


@pytest.fixture()
def make_ad(app, user_id):
    """Insert a marketplace ad directly; returns its id."""

    def _make_ad(
        *,
        email: str = "owner@example.com",
        status: str = "PENDING",
        title: str = "Desk lamp",
        price: float = 15,
        expiration_date: datetime | None = None,
        created_at: datetime | None = None,
    ) -> int:
        uid = user_id(email)
        now = created_at or datetime.utcnow()
        with session_scope(app) as s:
            city = s.query(City).filter(City.slug == "milano").one()
            ad = Ad(
                user_id=uid,
                city_id=city.id,
                category="MARKETPLACE",
                status=status,
                expiration_date=expiration_date or now + timedelta(days=30),
                created_at=now,
                updated_at=now,
            )
            ad.marketplace = AdMarketplace(title=title, description="Works fine", price=price, condition="USED")
            s.add(ad)
            s.flush()
            return ad.id

    return _make_ad
