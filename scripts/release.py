"""
Release phase: bring the schema to head, then seed reference data.

Runs before every deploy (scripts/start.py calls it). Both steps are safe to
repeat: Alembic skips applied revisions and the seed never overwrites an
existing admin password.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

PRODUCTION_ENVS = ("prod", "production")


def release_database_url() -> str:
    """DATABASE_URL for the release; production must point at Postgres."""
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is not set; refusing to fall back to a local database during release.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in PRODUCTION_ENVS and db_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL points at sqlite while ENV is production; use Postgres.")
    return db_url


def upgrade_schema(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def run_release() -> None:
    db_url = release_database_url()
    print(f"[release] ENV={os.environ.get('ENV') or '(unset)'}", flush=True)

    print("[release] alembic upgrade head", flush=True)
    upgrade_schema(db_url)

    print("[release] seeding roles, admin and cities", flush=True)
    from scripts import init_db

    init_db.seed_only(database_url=db_url)
    print("[release] done", flush=True)


def main() -> None:
    run_release()


if __name__ == "__main__":
    main()
