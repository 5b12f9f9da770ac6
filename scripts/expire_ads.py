"""
Expire ONLINE ads whose expiration date has passed.

Meant to run once per invocation from a cron / scheduled job:
  python scripts/expire_ads.py
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def run_expiry(app=None) -> int:
    from app.classifieds import create_app
    from app.classifieds.db import session_scope
    from app.classifieds.modules.ads.service import expire_due_ads

    app = app or create_app()
    with session_scope(app) as s:
        expired = expire_due_ads(s)
    logging.getLogger(__name__).info("expire_ads run complete: expired=%s", expired)
    return expired


def main() -> None:
    expired = run_expiry()
    print(f"Expired {expired} ad(s).", flush=True)


if __name__ == "__main__":
    main()
