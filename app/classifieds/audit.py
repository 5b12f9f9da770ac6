import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.classifieds.models import AuditEvent, User


def actor_role_for(user: User | None) -> str:
    """Highest role label for the audit trail (ADMIN > MODERATOR > VERIFIED_USER > USER)."""
    if user is None:
        return "SYSTEM"
    keys = {r.key for r in user.roles}
    if "admin" in keys:
        return "ADMIN"
    if "moderator" in keys:
        return "MODERATOR"
    if user.verified:
        return "VERIFIED_USER"
    return "USER"


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    outcome: str = "SUCCESS",
    error_code: str | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper.
    Request id, client IP and user agent are filled in when called inside a request.
    """
    rid = request_id
    ip = None
    user_agent = None
    if has_request_context():
        rid = rid or getattr(g, "request_id", None)
        ip = request.headers.get("X-Forwarded-For", request.remote_addr or "").split(",")[0].strip() or None
        user_agent = (request.user_agent.string or "")[:512] or None
    ev = AuditEvent(
        request_id=rid,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        actor_role=actor_role_for(actor),
        action=action,
        outcome=outcome,
        error_code=error_code,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        ip=ip,
        user_agent=user_agent,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
    )
    s.add(ev)
    return ev


def record_failure(
    s: Session,
    *,
    actor: User | None,
    action: str,
    error_code: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEvent:
    return record_event(
        s,
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata,
        outcome="FAILURE",
        error_code=error_code,
    )
