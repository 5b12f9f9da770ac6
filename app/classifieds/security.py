import hmac
import secrets

from flask import Request, session

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"


def ensure_csrf_token() -> str:
    """Return the session's CSRF token, minting one on first use."""
    if not session.get(CSRF_SESSION_KEY):
        session[CSRF_SESSION_KEY] = secrets.token_urlsafe(32)
    return session[CSRF_SESSION_KEY]


def submitted_csrf_token(req: Request) -> str | None:
    token = req.headers.get(CSRF_HEADER) or req.form.get(CSRF_SESSION_KEY)
    if token:
        return token
    if req.is_json:
        body = req.get_json(silent=True)
        if isinstance(body, dict):
            return body.get(CSRF_SESSION_KEY)
    return None


def validate_csrf(req: Request) -> bool:
    submitted = submitted_csrf_token(req)
    expected = session.get(CSRF_SESSION_KEY)
    if not submitted or not expected:
        return False
    return hmac.compare_digest(str(submitted), str(expected))


def is_safe_next(nxt: str | None) -> bool:
    """Only local paths are accepted as post-login redirects."""
    return bool(nxt) and nxt.startswith("/") and not nxt.startswith("//")
