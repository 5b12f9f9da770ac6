import os
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    max_ad_images: int
    max_image_bytes: int
    city_change_cooldown_days: int

    nominatim_base_url: str
    nominatim_user_agent: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///classifieds.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "eu-south-1"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        max_ad_images=_getenv_int("MAX_AD_IMAGES", 8),
        max_image_bytes=_getenv_int("MAX_IMAGE_BYTES", 10 * 1024 * 1024),
        city_change_cooldown_days=_getenv_int("CITY_CHANGE_COOLDOWN_DAYS", 30),
        nominatim_base_url=_getenv("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org"),
        nominatim_user_agent=_getenv("NOMINATIM_USER_AGENT", "classifieds-app/1.0"),
    )


def load_config() -> dict:
    """Flask config mapping: every Settings field upper-cased, plus cookie and body-size defaults."""
    s = load_settings()
    config = {name.upper(): value for name, value in asdict(s).items()}
    config.update(
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=s.env in ("prod", "production"),
        # whole request body; the per-image limit is MAX_IMAGE_BYTES
        MAX_CONTENT_LENGTH=25 * 1024 * 1024,
    )
    return config
