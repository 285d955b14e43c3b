"""
Subscription tiers and per-tier usage limits

A limit of -1 means unlimited and 0 means the feature is not available on
the tier.
"""
from datetime import datetime, timezone
from typing import Dict, Optional

from utils.debug import Loggers

FREE = "free"
GOLD = "gold"
PLATINUM = "platinum"
ADMIN = "admin"

TIERS = (FREE, GOLD, PLATINUM, ADMIN)

UNLIMITED = -1

USAGE_LIMITS: Dict[str, Dict[str, int]] = {
    FREE: {
        "inventory_items": 50,
        "upc_scans_per_month": 10,
        "monthly_receipt_scans": 2,
        "personal_recipes": 5,
        "saved_recipes": 10,
        "public_recipes": 0,
        "recipe_collections": 2,
    },
    GOLD: {
        "inventory_items": 250,
        "upc_scans_per_month": UNLIMITED,
        "monthly_receipt_scans": 20,
        "personal_recipes": 100,
        "saved_recipes": 200,
        "public_recipes": 25,
        "recipe_collections": 10,
    },
    PLATINUM: {
        "inventory_items": UNLIMITED,
        "upc_scans_per_month": UNLIMITED,
        "monthly_receipt_scans": UNLIMITED,
        "personal_recipes": UNLIMITED,
        "saved_recipes": UNLIMITED,
        "public_recipes": UNLIMITED,
        "recipe_collections": UNLIMITED,
    },
    ADMIN: {
        "inventory_items": UNLIMITED,
        "upc_scans_per_month": UNLIMITED,
        "monthly_receipt_scans": UNLIMITED,
        "personal_recipes": UNLIMITED,
        "saved_recipes": UNLIMITED,
        "public_recipes": UNLIMITED,
        "recipe_collections": UNLIMITED,
    },
}

# Feature name -> limit key
FEATURE_LIMIT_KEYS = {
    "inventory_item": "inventory_items",
    "upc_scan": "upc_scans_per_month",
    "receipt_scan": "monthly_receipt_scans",
    "personal_recipe": "personal_recipes",
    "saved_recipe": "saved_recipes",
    "public_recipe": "public_recipes",
    "recipe_collection": "recipe_collections",
}

ACTIVE_STATUSES = ("trial", "active")


def get_effective_tier(user: dict) -> str:
    """Tier whose limits apply to the user right now."""
    tier = user.get("subscription_tier") or FREE
    if user.get("is_admin") or tier == ADMIN:
        return ADMIN
    if user.get("subscription_status") in ACTIVE_STATUSES and tier in TIERS:
        return tier
    return FREE


def check_and_expire_trial(user: dict, now: Optional[datetime] = None) -> bool:
    """Downgrade a lapsed trial in place. Returns True when the record changed."""
    if user.get("subscription_status") != "trial":
        return False

    ends_at = user.get("trial_ends_at")
    if ends_at is None:
        return False
    if isinstance(ends_at, str):
        ends_at = datetime.fromisoformat(ends_at.replace("Z", "+00:00"))
    if ends_at.tzinfo is None:
        ends_at = ends_at.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    if ends_at > now:
        return False

    user["subscription_status"] = "expired"
    user["subscription_tier"] = FREE
    Loggers.usage.info("Trial expired", user_id=user.get("id"))
    return True


def get_usage_limit(tier: str, feature: str) -> Optional[int]:
    """Numeric limit for a feature, or None when the tier has no limit on it."""
    limit_key = FEATURE_LIMIT_KEYS.get(feature)
    if limit_key is None:
        return None
    limit = USAGE_LIMITS.get(tier, USAGE_LIMITS[FREE]).get(limit_key)
    if limit is None or limit == UNLIMITED:
        return None
    return limit


def check_usage_limit(tier: str, feature: str, current_usage: int) -> bool:
    if tier == ADMIN:
        return True
    limit = get_usage_limit(tier, feature)
    if limit is None:
        return True
    if limit == 0:
        return False
    return current_usage < limit


def get_remaining_usage(tier: str, feature: str, current_usage: int) -> Optional[int]:
    """Remaining uses this period; None means unlimited."""
    if tier == ADMIN:
        return None
    limit = get_usage_limit(tier, feature)
    if limit is None:
        return None
    return max(0, limit - current_usage)


def limits_for_tier(tier: str) -> Dict[str, Optional[int]]:
    return {feature: get_usage_limit(tier, feature) for feature in FEATURE_LIMIT_KEYS}
