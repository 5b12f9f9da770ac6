from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.classifieds.audit import record_event
from app.classifieds.modules.ads.service import AdNotFoundError, get_ad_for_owner, require_profile_city
from app.classifieds.modules.housing.schema import MAX_IMAGES
from app.classifieds.modules.housing.service import (
    create_housing_ad,
    housing_ad_to_values,
    images_for_ad,
    update_housing_ad,
    validate_submission,
)
from app.classifieds.modules.housing.wizard import HousingWizard
from app.classifieds.modules.media.service import UploadedImage

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.classifieds.models import User
    from app.classifieds.modules.ads.models import Ad
    from app.classifieds.modules.housing.models import HousingDraft

logger = logging.getLogger(__name__)


class DraftNotFoundError(AdNotFoundError):
    default_message = "This draft no longer exists."


def start_create_draft(s: "Session", user: "User", *, max_images: int = MAX_IMAGES) -> "HousingDraft":
    from app.classifieds.modules.housing.models import HousingDraft

    require_profile_city(user)
    wizard = HousingWizard.for_create(max_images=max_images)
    now = datetime.utcnow()
    draft = HousingDraft(
        user_id=user.id,
        ad_id=None,
        mode="create",
        current_step=wizard.current_step,
        state_json=wizard.to_dict(),
        images_json=[],
        created_at=now,
        updated_at=now,
    )
    s.add(draft)
    s.flush()
    return draft


def start_edit_draft(
    s: "Session", user: "User", ad_id: int, *, initial_step: int = 1, max_images: int = MAX_IMAGES
) -> "HousingDraft":
    from app.classifieds.modules.housing.models import HousingDraft

    ad = get_ad_for_owner(s, ad_id, user, category="HOUSING")
    wizard = HousingWizard.for_edit(housing_ad_to_values(ad), initial_step=initial_step, max_images=max_images)
    now = datetime.utcnow()
    draft = HousingDraft(
        user_id=user.id,
        ad_id=ad.id,
        mode="edit",
        current_step=wizard.current_step,
        state_json=wizard.to_dict(),
        images_json=[img.to_dict() for img in images_for_ad(ad)],
        created_at=now,
        updated_at=now,
    )
    s.add(draft)
    s.flush()
    return draft


def get_draft(s: "Session", draft_id: int, user: "User") -> "HousingDraft":
    from app.classifieds.modules.housing.models import HousingDraft

    draft = s.get(HousingDraft, draft_id)
    if not draft or draft.user_id != user.id:
        raise DraftNotFoundError()
    return draft


def load_wizard(draft: "HousingDraft") -> HousingWizard:
    return HousingWizard.from_dict(draft.state_json or {})


def store_wizard(draft: "HousingDraft", wizard: HousingWizard) -> None:
    # Reassign (not mutate) so SQLAlchemy sees the JSON column change.
    draft.state_json = wizard.to_dict()
    draft.current_step = wizard.current_step
    draft.updated_at = datetime.utcnow()


def draft_images(draft: "HousingDraft") -> list[UploadedImage]:
    return [UploadedImage.from_dict(d) for d in (draft.images_json or [])]


def _attached_keys(s: "Session", draft: "HousingDraft") -> set[str]:
    """Keys already used by the ad being edited; those stay in storage until the edit is saved."""
    if not draft.ad_id:
        return set()
    from app.classifieds.modules.ads.models import Ad

    ad = s.get(Ad, draft.ad_id)
    return {m.storage_key for m in ad.media} if ad else set()


# ---------- Photos step ----------
def add_image(draft: "HousingDraft", wizard: HousingWizard, image: UploadedImage) -> None:
    images = list(draft.images_json or [])
    images.append(image.to_dict())
    draft.images_json = images
    keys = list(wizard.values.get("images") or [])
    keys.append(image.storage_key)
    changes: dict[str, Any] = {"images": keys}
    if not wizard.values.get("cover_image_storage_key"):
        changes["cover_image_storage_key"] = image.storage_key
    wizard.update(changes)


def remove_image(s: "Session", draft: "HousingDraft", wizard: HousingWizard, storage_key: str) -> list[str] | None:
    """
    Take the image off the draft. Returns None when the draft has no such image, otherwise
    the keys to delete from storage once the draft is committed (empty while the ad being
    edited still uses the image).
    """
    keys = list(wizard.values.get("images") or [])
    if storage_key not in keys:
        return None
    keys.remove(storage_key)
    changes: dict[str, Any] = {"images": keys}
    if wizard.values.get("cover_image_storage_key") == storage_key:
        changes["cover_image_storage_key"] = keys[0] if keys else None
    wizard.update(changes)
    if storage_key in _attached_keys(s, draft):
        return []
    draft.images_json = [d for d in (draft.images_json or []) if d.get("storage_key") != storage_key]
    return [storage_key]


def set_cover(wizard: HousingWizard, storage_key: str) -> bool:
    if storage_key not in (wizard.values.get("images") or []):
        return False
    wizard.update({"cover_image_storage_key": storage_key})
    return True


def move_image(wizard: HousingWizard, storage_key: str, offset: int) -> bool:
    keys = list(wizard.values.get("images") or [])
    if storage_key not in keys:
        return False
    i = keys.index(storage_key)
    j = max(0, min(len(keys) - 1, i + offset))
    if i == j:
        return False
    keys.insert(j, keys.pop(i))
    wizard.update({"images": keys})
    return True


# ---------- Finish ----------
def submit_draft(
    s: "Session", draft: "HousingDraft", wizard: HousingWizard, user: "User"
) -> tuple["Ad | None", dict[str, str], list[str]]:
    """
    Create (create mode) or update (edit mode) the ad from the draft.
    Returns (ad, {}, orphaned_keys) on success or (None, errors, []) when validation fails.
    Orphaned keys are uploads the saved ad no longer uses; delete them after the commit.
    """
    images = draft_images(draft)
    errors = validate_submission(wizard.values, images, max_images=wizard.max_images)
    if errors:
        return None, errors, []

    if draft.mode == "edit" and draft.ad_id:
        ad, dropped = update_housing_ad(s, user, draft.ad_id, wizard.values, images)
    else:
        ad, dropped = create_housing_ad(s, user, wizard.values, images), []

    used = {m.storage_key for m in ad.media}
    unused = [img.storage_key for img in images if img.storage_key not in used]
    s.delete(draft)
    s.flush()
    return ad, {}, sorted(set(dropped) | set(unused))


def cancel_draft(s: "Session", draft: "HousingDraft", user: "User") -> list[str]:
    """Drop the draft. Returns the uploads that never made it into an ad, to delete after the commit."""
    attached = _attached_keys(s, draft)
    orphans = [img.storage_key for img in draft_images(draft) if img.storage_key not in attached]
    s.delete(draft)
    s.flush()
    record_event(
        s,
        actor=user,
        action="housing.draft_cancel",
        entity_type="HousingDraft",
        entity_id=str(draft.id),
        metadata={"mode": draft.mode, "ad_id": draft.ad_id, "orphaned_images": len(orphans)},
    )
    return orphans
