"""
Usage Tracker - Per-user monthly and lifetime usage counters

Counters live in the user record's `usage_tracking` document. Monthly
counters are reset lazily: the first access in a new calendar month zeroes
them and advances the (current_month, current_year) stamp. Lifetime
("total_") counters are never reset.

All functions mutate the record in place and perform no I/O; callers persist
`user["usage_tracking"]` when something changed.

Known race: two concurrent requests that both see a stale stamp both reset,
and the last write of the document wins. Counters are informational, so this
is accepted.
"""
from datetime import datetime, timezone
from typing import Dict, Optional

from utils.debug import Loggers

MONTHLY_PREFIX = "monthly_"

MONTHLY_COUNTERS = (
    "monthly_receipt_scans",
    "monthly_upc_scans",
)

CUMULATIVE_COUNTERS = (
    "total_inventory_items",
    "total_saved_recipes",
    "total_personal_recipes",
    "total_public_recipes",
    "total_recipe_collections",
    "total_receipt_scans",
    "total_upc_scans",
)

# Monthly counters that also feed a lifetime total
LIFETIME_TWINS = {
    "monthly_receipt_scans": "total_receipt_scans",
    "monthly_upc_scans": "total_upc_scans",
}

# Feature name -> counter it increments
FEATURE_COUNTERS = {
    "upc_scan": "monthly_upc_scans",
    "receipt_scan": "monthly_receipt_scans",
    "inventory_item": "total_inventory_items",
    "personal_recipe": "total_personal_recipes",
    "saved_recipe": "total_saved_recipes",
    "public_recipe": "total_public_recipes",
    "recipe_collection": "total_recipe_collections",
}


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def is_monthly_counter(name: str) -> bool:
    return name.startswith(MONTHLY_PREFIX)


def check_and_reset_monthly_usage(user: dict, now: Optional[datetime] = None) -> bool:
    """
    Reset monthly counters when the stored stamp is not the current month.

    A missing tracking block counts as a mismatch. Returns True when the
    record was mutated.
    """
    now = _now(now)
    tracking = user.get("usage_tracking")

    if (
        isinstance(tracking, dict)
        and tracking.get("current_month") == now.month
        and tracking.get("current_year") == now.year
    ):
        return False

    if not isinstance(tracking, dict):
        tracking = {}

    previous = (tracking.get("current_month"), tracking.get("current_year"))

    for name in set(MONTHLY_COUNTERS) | {k for k in tracking if is_monthly_counter(k)}:
        tracking[name] = 0
    for name in CUMULATIVE_COUNTERS:
        tracking.setdefault(name, 0)

    tracking["current_month"] = now.month
    tracking["current_year"] = now.year
    tracking["last_updated"] = now.isoformat()
    user["usage_tracking"] = tracking

    Loggers.usage.info(
        "Monthly usage reset",
        user_id=user.get("id"),
        previous_month=previous[0],
        previous_year=previous[1],
        month=now.month,
        year=now.year,
    )
    return True


def record_usage(user: dict, counter: str, amount: int = 1, now: Optional[datetime] = None) -> int:
    """
    Add `amount` to a counter and return its new value.

    The monthly reset check runs first so an increment never lands on last
    month's count. Monthly scan counters also bump their lifetime total.
    """
    if counter not in MONTHLY_COUNTERS and counter not in CUMULATIVE_COUNTERS:
        raise ValueError(f"Unknown usage counter: {counter}")
    if amount < 1:
        raise ValueError("Usage can only be recorded in positive amounts")

    now = _now(now)
    check_and_reset_monthly_usage(user, now)
    tracking = user["usage_tracking"]

    tracking[counter] = (tracking.get(counter) or 0) + amount
    twin = LIFETIME_TWINS.get(counter)
    if twin:
        tracking[twin] = (tracking.get(twin) or 0) + amount
    tracking["last_updated"] = now.isoformat()

    Loggers.usage.debug("Usage recorded", user_id=user.get("id"), counter=counter, value=tracking[counter])
    return tracking[counter]


def record_feature_usage(user: dict, feature: str, amount: int = 1, now: Optional[datetime] = None) -> int:
    """record_usage keyed by feature name (see FEATURE_COUNTERS)."""
    counter = FEATURE_COUNTERS.get(feature)
    if counter is None:
        raise ValueError(f"Unknown usage feature: {feature}")
    return record_usage(user, counter, amount, now)


def current_count(user: dict, feature: str) -> int:
    """Current value of the counter behind `feature`; 0 when never recorded."""
    counter = FEATURE_COUNTERS.get(feature)
    if counter is None:
        raise ValueError(f"Unknown usage feature: {feature}")
    tracking = user.get("usage_tracking") or {}
    return tracking.get(counter) or 0


def usage_snapshot(user: dict) -> Dict[str, Optional[int]]:
    tracking = user.get("usage_tracking") or {}
    snapshot = {name: tracking.get(name) or 0 for name in MONTHLY_COUNTERS + CUMULATIVE_COUNTERS}
    snapshot["current_month"] = tracking.get("current_month")
    snapshot["current_year"] = tracking.get("current_year")
    return snapshot


def new_usage_tracking(now: Optional[datetime] = None) -> dict:
    """Tracking document for a freshly created user."""
    now = _now(now)
    tracking = {name: 0 for name in MONTHLY_COUNTERS + CUMULATIVE_COUNTERS}
    tracking["current_month"] = now.month
    tracking["current_year"] = now.year
    tracking["last_updated"] = now.isoformat()
    return tracking
