from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.classifieds.audit import record_event
from app.classifieds.constants import NOTIFICATION_SEVERITIES, NOTIFICATION_TYPES

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.classifieds.models import User
    from app.classifieds.modules.notifications.models import Notification

PAGE_SIZE = 20


def create_notification(
    s: "Session",
    *,
    user_id: int,
    title: str,
    body: str | None = None,
    severity: str = "INFO",
    type: str = "AD_EVENT",
    ad_id: int | None = None,
    deep_link: str | None = None,
    data: dict[str, Any] | None = None,
) -> "Notification":
    from app.classifieds.modules.notifications.models import Notification

    if severity not in NOTIFICATION_SEVERITIES:
        raise ValueError(f"Invalid severity: {severity}")
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Invalid notification type: {type}")
    if deep_link is None and ad_id is not None:
        deep_link = f"/dashboard/ads/{ad_id}"
    n = Notification(
        user_id=user_id,
        type=type,
        severity=severity,
        title=title.strip()[:140],
        body=(body or "").strip()[:1000] or None,
        ad_id=ad_id,
        deep_link=deep_link,
        data=data,
        created_at=datetime.utcnow(),
    )
    s.add(n)
    return n


def list_notifications(
    s: "Session", user: "User", *, unread_only: bool = False, page: int = 1, per_page: int = PAGE_SIZE
) -> tuple[list["Notification"], int]:
    from app.classifieds.modules.notifications.models import Notification

    q = s.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        q = q.filter(Notification.read_at.is_(None))
    total = q.count()
    page = max(1, page)
    items = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return items, total


def unread_count(s: "Session", user: "User") -> int:
    from app.classifieds.modules.notifications.models import Notification

    return (
        s.query(Notification)
        .filter(Notification.user_id == user.id)
        .filter(Notification.read_at.is_(None))
        .count()
    )


def mark_read(s: "Session", user: "User", ids: list[int]) -> int:
    """Mark the user's own notifications read; ids belonging to others are ignored."""
    from app.classifieds.modules.notifications.models import Notification

    if not ids:
        return 0
    now = datetime.utcnow()
    rows = (
        s.query(Notification)
        .filter(Notification.user_id == user.id)
        .filter(Notification.id.in_(ids))
        .filter(Notification.read_at.is_(None))
        .all()
    )
    for n in rows:
        n.read_at = now
    s.flush()
    return len(rows)


def mark_all_read(s: "Session", user: "User") -> int:
    from app.classifieds.modules.notifications.models import Notification

    now = datetime.utcnow()
    rows = (
        s.query(Notification)
        .filter(Notification.user_id == user.id)
        .filter(Notification.read_at.is_(None))
        .all()
    )
    for n in rows:
        n.read_at = now
    s.flush()
    record_event(
        s,
        actor=user,
        action="notifications.mark_all_read",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"count": len(rows)},
    )
    return len(rows)
