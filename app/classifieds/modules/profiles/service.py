from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from app.classifieds.audit import record_event
from app.classifieds.modules.cities.service import get_active_city

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.classifieds.models import User

_HANDLE_RE = re.compile(r"^[a-z0-9_.]{3,30}$")
_TELEGRAM_RE = re.compile(r"^@?[A-Za-z0-9_]{5,32}$")


def validate_profile_payload(s: "Session", payload: dict, user: "User") -> list[str]:
    from app.classifieds.models import User

    errors = []
    name = (payload.get("name") or "").strip()
    if not name:
        errors.append("Name is required.")
    elif len(name) > 128:
        errors.append("Name is too long.")

    handle = (payload.get("handle") or "").strip().lower()
    if handle:
        if not _HANDLE_RE.match(handle):
            errors.append("Handle must be 3-30 characters: lowercase letters, digits, '_' or '.'.")
        else:
            taken = s.query(User).filter(User.handle == handle).filter(User.id != user.id).first()
            if taken:
                errors.append("This handle is already taken.")

    telegram = (payload.get("telegram_handle") or "").strip()
    if telegram and not _TELEGRAM_RE.match(telegram):
        errors.append("Enter a valid Telegram username.")
    return errors


def update_profile(s: "Session", user: "User", payload: dict) -> dict:
    """Apply name/handle/telegram changes; returns the changes dict recorded in the audit trail."""
    changes = {}
    new_name = (payload.get("name") or "").strip()
    if new_name != (user.name or ""):
        changes["name"] = {"old": user.name, "new": new_name}
        user.name = new_name

    new_handle = (payload.get("handle") or "").strip().lower() or None
    if new_handle != user.handle:
        changes["handle"] = {"old": user.handle, "new": new_handle}
        user.handle = new_handle

    new_tg = (payload.get("telegram_handle") or "").strip().lstrip("@") or None
    if new_tg != user.telegram_handle:
        changes["telegram_handle"] = {"old": user.telegram_handle, "new": new_tg}
        user.telegram_handle = new_tg

    if changes:
        user.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="profile.edit",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"changes": changes},
        )
    return changes


def next_city_change_at(user: "User", cooldown_days: int) -> datetime | None:
    if user.city_id is None or user.city_last_changed_at is None:
        return None
    return user.city_last_changed_at + timedelta(days=cooldown_days)


def change_city(s: "Session", user: "User", city_id: int | None, *, cooldown_days: int, now: datetime | None = None) -> list[str]:
    """
    Set the user's city. The first assignment is free; later changes respect the cooldown.
    Returns a list of errors (empty on success).
    """
    now = now or datetime.utcnow()
    city = get_active_city(s, city_id)
    if city is None:
        return ["Select a valid city."]
    if city.id == user.city_id:
        return []
    allowed_at = next_city_change_at(user, cooldown_days)
    if allowed_at is not None and now < allowed_at:
        return [f"You can change your city again on {allowed_at.strftime('%Y-%m-%d')}."]

    old_city_id = user.city_id
    user.city_id = city.id
    user.city_last_changed_at = now
    user.updated_at = now
    record_event(
        s,
        actor=user,
        action="profile.city_change",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"old_city_id": old_city_id, "new_city_id": city.id, "city": city.name},
    )
    return []
