#!/usr/bin/env python3
"""
Production startup script.

1. Release phase: migrations and seed (scripts/release.py)
2. exec gunicorn on $PORT (default 8080) with $WEB_CONCURRENCY workers

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def parse_port(raw: str | None) -> int:
    port = (raw or "").strip() or "8080"
    value = int(port)
    if value < 1 or value > 65535:
        raise ValueError("Port out of range")
    return value


def gunicorn_argv(port: int, workers: int = 2) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", "60",
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def parse_workers(raw: str | None, default: int = 2) -> int:
    try:
        return max(1, int(raw or default))
    except ValueError:
        return default


def main() -> None:
    raw_port = os.environ.get("PORT")
    try:
        port = parse_port(raw_port)
    except ValueError:
        sys.exit(f"[start] PORT={raw_port!r} is not a port number (1-65535).")
    workers = parse_workers(os.environ.get("WEB_CONCURRENCY"))

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        sys.exit(f"[start] release failed: {e}")

    print(f"[start] gunicorn on 0.0.0.0:{port} with {workers} worker(s)", flush=True)
    # gunicorn replaces this process so it receives container signals directly
    os.execvp("gunicorn", gunicorn_argv(port, workers))


if __name__ == "__main__":
    main()
