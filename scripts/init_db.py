import os
import sys
from contextlib import contextmanager
from pathlib import Path

from werkzeug.security import generate_password_hash
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.classifieds.models import Permission, Role, User
from app.classifieds.modules.cities.service import ensure_default_cities

PERMISSIONS = (
    ("ads.view_own", "Ads: view own"),
    ("ads.create", "Ads: create"),
    ("ads.edit_own", "Ads: edit own"),
    ("ads.delete_own", "Ads: delete own"),
    ("notifications.view", "Notifications: view"),
    ("moderation.view", "Moderation: view panel"),
    ("moderation.act", "Moderation: approve/reject ads"),
    ("admin.view", "Admin: view shell"),
)

USER_PERMISSIONS = ("ads.view_own", "ads.create", "ads.edit_own", "ads.delete_own", "notifications.view")
MODERATOR_PERMISSIONS = USER_PERMISSIONS + ("moderation.view", "moderation.act")

# role key -> (display name, permission keys)
ROLES = {
    "user": ("User", USER_PERMISSIONS),
    "moderator": ("Moderator", MODERATOR_PERMISSIONS),
    "admin": ("Administrator", tuple(key for key, _ in PERMISSIONS)),
}


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def ensure_roles(s: Session) -> dict[str, Role]:
    """Create missing permissions and roles and attach any missing grants. Never removes grants."""
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    roles: dict[str, Role] = {}
    for key, (name, perm_keys) in ROLES.items():
        role = s.query(Role).filter(Role.key == key).one_or_none()
        if not role:
            role = Role(key=key, name=name)
            s.add(role)
        for pk in perm_keys:
            if perms[pk] not in role.permissions:
                role.permissions.append(perms[pk])
        roles[key] = role
    s.flush()
    return roles


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user/default cities in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///classifieds.db").strip()

    # Direct engine/session so release can run this without building the Flask app.
    with _session_scope(db_url) as s:
        roles = ensure_roles(s)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                name="Administrator",
                is_active=True,
            )
            s.add(user)
        if roles["admin"] not in user.roles:
            user.roles.append(roles["admin"])

        created = ensure_default_cities(s)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")
    print(f"Cities added: {created}")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
