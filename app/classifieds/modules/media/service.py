from __future__ import annotations

import hashlib
import logging
import struct
import uuid
from dataclasses import asdict, dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

from werkzeug.utils import secure_filename

from app.classifieds.constants import ALLOWED_IMAGE_MIME_TYPES, IMAGE_EXTENSIONS

if TYPE_CHECKING:
    from app.classifieds.storage import Storage

logger = logging.getLogger(__name__)


class ImageValidationError(ValueError):
    pass


@dataclass(frozen=True)
class UploadedImage:
    storage_key: str
    mime_type: str
    bytes: int
    sha256: str
    alt: str | None = None
    width: int | None = None
    height: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadedImage":
        return cls(
            storage_key=data["storage_key"],
            mime_type=data.get("mime_type") or "application/octet-stream",
            bytes=int(data.get("bytes") or 0),
            sha256=data.get("sha256") or "",
            alt=data.get("alt"),
            width=data.get("width"),
            height=data.get("height"),
        )


def sniff_image_mime(data: bytes) -> str | None:
    """Detect the image type from magic bytes; None when it is not an accepted image."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return None


def image_dimensions(data: bytes, mime_type: str) -> tuple[int | None, int | None]:
    """Best-effort width/height from the header for PNG and GIF; (None, None) otherwise."""
    try:
        if mime_type == "image/png" and len(data) >= 24:
            w, h = struct.unpack(">II", data[16:24])
            return int(w), int(h)
        if mime_type == "image/gif" and len(data) >= 10:
            w, h = struct.unpack("<HH", data[6:10])
            return int(w), int(h)
    except struct.error:
        pass
    return None, None


def validate_image(data: bytes, filename: str, *, max_bytes: int) -> str:
    """Returns the sniffed mime type or raises ImageValidationError."""
    if not data:
        raise ImageValidationError(f"{filename or 'File'} is empty.")
    if len(data) > max_bytes:
        raise ImageValidationError(
            f"{filename or 'File'} is too large. Maximum size is {max_bytes // (1024 * 1024)}MB."
        )
    mime = sniff_image_mime(data)
    if mime is None or mime not in ALLOWED_IMAGE_MIME_TYPES:
        raise ImageValidationError(f"{filename or 'File'} is not a supported image (JPEG, PNG, WEBP, GIF).")
    return mime


def build_image_storage_key(user_id: int, category: str, mime_type: str, upload_date: date | None = None) -> str:
    """ads/<category>/<user_id>/<yyyy-mm-dd>/<uuid>.<ext>"""
    if upload_date is None:
        upload_date = date.today()
    ext = IMAGE_EXTENSIONS.get(mime_type, "bin")
    return f"ads/{category.lower()}/{user_id}/{upload_date.isoformat()}/{uuid.uuid4().hex}.{ext}"


def file_digest_and_bytes(file_bytes: bytes) -> tuple[str, int]:
    """Compute SHA256 digest and size."""
    h = hashlib.sha256()
    h.update(file_bytes)
    return (h.hexdigest(), len(file_bytes))


def upload_ad_image(
    storage: "Storage",
    *,
    user_id: int,
    category: str,
    file_bytes: bytes,
    filename: str,
    max_bytes: int,
) -> UploadedImage:
    mime = validate_image(file_bytes, filename, max_bytes=max_bytes)
    sha256, size = file_digest_and_bytes(file_bytes)
    key = build_image_storage_key(user_id, category, mime)
    storage.put_bytes(key, file_bytes, content_type=mime)
    width, height = image_dimensions(file_bytes, mime)
    alt = (secure_filename(filename or "").rsplit(".", 1)[0] or None)
    logger.info("Stored ad image key=%s user_id=%s bytes=%s", key, user_id, size)
    return UploadedImage(
        storage_key=key,
        mime_type=mime,
        bytes=size,
        sha256=sha256,
        alt=alt,
        width=width,
        height=height,
    )


def discard_images(storage: "Storage", keys: list[str]) -> int:
    """Best-effort cleanup of orphaned uploads; failures are logged, never raised."""
    if not keys:
        return 0
    try:
        return storage.delete_many(keys)
    except Exception as e:
        logger.warning("Failed to delete %d stored image(s): %s", len(keys), e)
        return 0
