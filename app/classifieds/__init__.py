import logging
import os
from datetime import timedelta

from flask import Flask, flash, g, redirect, render_template, request, session, url_for
from dotenv import load_dotenv

from app.classifieds.config import load_config
from app.classifieds.db import init_db, teardown_db_session
from app.classifieds import models  # noqa: F401  (core models first: module models import Base from it)
from app.classifieds.routes import bp as routes_bp
from app.classifieds.auth import bp as auth_bp, load_current_user
from app.classifieds.modules.ads.routes import bp as ads_bp
from app.classifieds.modules.profiles.routes import bp as profiles_bp
from app.classifieds.modules.housing.routes import bp as housing_bp
from app.classifieds.modules.transportation.routes import bp as transportation_bp
from app.classifieds.modules.marketplace.routes import bp as marketplace_bp
from app.classifieds.modules.local_services.routes import bp as services_bp
from app.classifieds.modules.notifications.routes import bp as notifications_bp
from app.classifieds.modules.moderation.admin import bp as moderation_bp
from app.classifieds.modules.geo.routes import bp as geo_bp

logger = logging.getLogger(__name__)

# (blueprint, url_prefix)
BLUEPRINTS = (
    (routes_bp, None),
    (auth_bp, "/auth"),
    (ads_bp, "/dashboard"),
    (profiles_bp, "/dashboard"),
    (housing_bp, "/dashboard/housing"),
    (transportation_bp, "/dashboard/transportation"),
    (marketplace_bp, "/dashboard/marketplace"),
    (services_bp, "/dashboard/services"),
    (notifications_bp, "/dashboard/notifications"),
    (moderation_bp, "/panel"),
    (geo_bp, "/api/geo"),
)

REQUIRED_S3_SETTINGS = ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")


def check_production_settings(config) -> None:
    """Refuse to boot a production app on sqlite or with the placeholder secret."""
    env = (config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    db_url = str(config.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if db_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if str(config.get("SECRET_KEY") or "") in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")


def check_object_storage(app: Flask) -> None:
    """Log, without failing startup, when the S3 backend is misconfigured or unreachable."""
    if app.config.get("STORAGE_BACKEND") != "s3":
        return
    missing = [key for key in REQUIRED_S3_SETTINGS if not app.config.get(key)]
    if missing:
        app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing))
        return
    from app.classifieds.storage import S3Storage, storage_from_config

    try:
        storage = storage_from_config(app.config)
        if isinstance(storage, S3Storage):
            storage._client().head_bucket(Bucket=storage.bucket)
            app.logger.info("S3 bucket '%s' reachable", storage.bucket)
    except Exception as e:
        app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)


def _dispose_engine_after_fork(app: Flask) -> None:
    # gunicorn --preload forks workers after the engine exists; pooled sockets must not be shared.
    if not hasattr(os, "register_at_fork"):
        return

    def _after_fork_child():
        engine = app.extensions.get("sqlalchemy_engine")
        if engine is not None:
            engine.dispose()

    os.register_at_fork(after_in_child=_after_fork_child)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    level = getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(level)

    # CSRF protection (minimal)
    from app.classifieds.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_user() -> dict:
        from app.classifieds.rbac import user_has_permission

        user = getattr(g, "current_user", None)

        def has_perm(key: str) -> bool:
            return user_has_permission(user, key)

        unread = 0
        if user is not None:
            from app.classifieds.db import db_session
            from app.classifieds.modules.notifications.service import unread_count

            try:
                unread = unread_count(db_session(), user)
            except Exception:
                app.logger.exception("Unread notification count failed (request_id=%s)", getattr(g, "request_id", None))
        return {"has_perm": has_perm, "current_user": user, "unread_notifications": unread}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.template_filter("money")
    def _money_filter(value) -> str:
        if value is None or value == "":
            return "-"
        try:
            amount = float(value)
        except (TypeError, ValueError):
            return str(value)
        if amount == int(amount):
            return f"€{int(amount):,}"
        return f"€{amount:,.2f}"

    @app.template_filter("humanize")
    def _humanize_filter(value) -> str:
        from app.classifieds.constants import humanize

        return humanize(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login, register and logout carry no session state worth forging.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    check_production_settings(app.config)
    init_db(app)
    _dispose_engine_after_fork(app)
    check_object_storage(app)

    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return render_template("errors/404.html"), 404

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        limit_mb = int(app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        flash(f"File too large. Maximum upload size is {limit_mb}MB.", "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return redirect(url_for("ads.my_ads")), 302

    logger.info("create_app() complete: env=%s storage=%s", app.config.get("ENV"), app.config.get("STORAGE_BACKEND"))

    return app
