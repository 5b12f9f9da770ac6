"""
Central constants for the classifieds application.
"""
from __future__ import annotations

# Ads
AD_CATEGORIES = ("HOUSING", "TRANSPORTATION", "MARKETPLACE", "CURRENCY", "SERVICES")
# Categories that can be created through the dashboard (currency exchange is listing-only)
CREATABLE_CATEGORIES = ("HOUSING", "TRANSPORTATION", "MARKETPLACE", "SERVICES")
AD_STATUSES = ("PENDING", "ONLINE", "REJECTED", "EXPIRED")

CATEGORY_LABELS = {
    "HOUSING": "Housing",
    "TRANSPORTATION": "Transportation",
    "MARKETPLACE": "Marketplace",
    "CURRENCY": "Currency exchange",
    "SERVICES": "Services",
}

STATUS_LABELS = {
    "PENDING": "Pending review",
    "ONLINE": "Online",
    "REJECTED": "Rejected",
    "EXPIRED": "Expired",
}

# Entity names used in the audit trail
AUDIT_ENTITY_BY_CATEGORY = {
    "HOUSING": "AD_HOUSING",
    "TRANSPORTATION": "AD_TRANSPORTATION",
    "MARKETPLACE": "AD_MARKETPLACE",
    "CURRENCY": "AD_CURRENCY",
    "SERVICES": "AD_SERVICE",
}

AUDIT_OUTCOMES = ("SUCCESS", "FAILURE")
ACTOR_ROLES = ("SYSTEM", "USER", "VERIFIED_USER", "MODERATOR", "ADMIN")

# Media
MEDIA_KINDS = ("IMAGE",)
MEDIA_ROLES = ("GALLERY", "POSTER")
ALLOWED_IMAGE_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"})
IMAGE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}

# Housing
HOUSING_RENTAL_KINDS = ("TEMPORARY", "PERMANENT")
HOUSING_UNIT_TYPES = ("WHOLE_APARTMENT", "SINGLE_ROOM", "DOUBLE_ROOM", "TRIPLE_ROOM")
HOUSING_PROPERTY_TYPES = ("STUDIO", "BILOCALE", "TRILOCALE", "QUADRILOCALE", "OTHER")
HOUSING_CONTRACT_TYPES = ("NONE", "SHORT_TERM", "LONG_TERM")
HOUSING_PRICE_TYPES = ("MONTHLY", "DAILY")
BILLS_POLICIES = ("INCLUDED", "EXCLUDED", "PARTIAL")
HEATING_TYPES = ("CENTRAL", "INDEPENDENT", "NONE", "UNKNOWN")
HOUSEHOLD_GENDERS = ("MIXED", "FEMALE_ONLY", "MALE_ONLY", "UNKNOWN")
GENDER_PREFERENCES = ("ANY", "FEMALE_ONLY", "MALE_ONLY")

# Transportation
TRANSPORT_DIRECTIONS = ("ITALY_TO_IRAN", "IRAN_TO_ITALY")
COUNTRIES = ("ITALY", "IRAN")
TRANSPORT_PRICE_MODES = ("NEGOTIABLE", "PER_KG", "FIXED_TOTAL")

# Marketplace
MARKETPLACE_CONDITIONS = ("NEW", "LIKE_NEW", "USED", "HANDMADE")

# Services
SERVICE_CATEGORIES = (
    "COOKING",
    "REPAIRS",
    "CLEANING",
    "TUTORING",
    "TRANSLATION",
    "BEAUTY",
    "IT_HELP",
    "MOVING",
    "DELIVERY",
    "OTHER",
)
SERVICE_RATE_BASES = ("HOURLY", "FIXED", "PER_TASK")
WEEKDAYS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")

# Moderation
MODERATION_ACTIONS = ("APPROVE", "REJECT", "EXPIRE", "RESTORE")
MODERATION_REASON_LABELS = {
    "OFF_TOPIC": "Off Topic",
    "WRONG_CATEGORY": "Wrong Category",
    "INCOMPLETE_DETAILS": "Incomplete Details",
    "SPAM": "Spam",
    "SCAM_FRAUD": "Scam/Fraud",
    "PROHIBITED_ITEM": "Prohibited Item",
    "DUPLICATE": "Duplicate Ad",
    "EXPIRED": "Expired Content",
    "OTHER": "Other",
}
MODERATION_REASON_CODES = tuple(MODERATION_REASON_LABELS)

# Notifications
NOTIFICATION_TYPES = ("AD_EVENT", "SYSTEM")
NOTIFICATION_SEVERITIES = ("INFO", "SUCCESS", "WARNING", "ERROR")


def humanize(value: str | None) -> str:
    """SINGLE_ROOM -> Single room."""
    if not value:
        return ""
    return value.replace("_", " ").capitalize()
