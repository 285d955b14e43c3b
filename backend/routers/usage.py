"""
Usage Router - Per-user usage counters and tier limits
"""
from fastapi import APIRouter, Depends
from typing import Optional

from models import FeatureUsage, TrackUsageRequest, TrackUsageResponse, UsageResponse
from dependencies import get_current_user, persist_usage
from services.subscription import (
    check_usage_limit, get_effective_tier, get_remaining_usage,
    get_usage_limit, limits_for_tier,
)
from services.usage_tracker import (
    FEATURE_COUNTERS, current_count, record_feature_usage, usage_snapshot,
)
from utils.debug import Loggers
from utils.errors import NotFoundError, UsageLimitExceededError

router = APIRouter(prefix="/usage", tags=["Usage"])


def require_known_feature(feature: str):
    if feature not in FEATURE_COUNTERS:
        raise NotFoundError("Usage feature", feature)


def feature_usage(user: dict, feature: str) -> FeatureUsage:
    tier = get_effective_tier(user)
    current = current_count(user, feature)
    return FeatureUsage(
        feature=feature,
        current=current,
        limit=get_usage_limit(tier, feature),
        remaining=get_remaining_usage(tier, feature, current),
        has_capacity=check_usage_limit(tier, feature, current),
    )


def enforce_usage_limit(user: dict, feature: str, amount: int = 1):
    """Raise UsageLimitExceededError unless `amount` more uses fit the tier."""
    tier = get_effective_tier(user)
    current = current_count(user, feature)
    # The last of the requested uses must still be under the limit
    if not check_usage_limit(tier, feature, current + amount - 1):
        Loggers.usage.info("Usage limit reached", user_id=user["id"], feature=feature, tier=tier, current=current)
        raise UsageLimitExceededError(feature, current, get_usage_limit(tier, feature), tier)


async def track_feature_usage(user: dict, feature: str, amount: int = 1) -> FeatureUsage:
    """Check the limit, increment the counter and persist the tracking document."""
    enforce_usage_limit(user, feature, amount)
    record_feature_usage(user, feature, amount)
    await persist_usage(user)
    return feature_usage(user, feature)


@router.get("", response_model=UsageResponse)
async def get_usage(user: dict = Depends(get_current_user)):
    tier = get_effective_tier(user)
    return UsageResponse(
        tier=tier,
        was_reset=user.get("usage_was_reset", False),
        usage=usage_snapshot(user),
        limits=limits_for_tier(tier),
    )


@router.get("/{feature}", response_model=FeatureUsage)
async def get_feature_usage(feature: str, user: dict = Depends(get_current_user)):
    require_known_feature(feature)
    return feature_usage(user, feature)


@router.post("/{feature}", response_model=TrackUsageResponse)
async def track_usage(
    feature: str,
    body: Optional[TrackUsageRequest] = None,
    user: dict = Depends(get_current_user)
):
    require_known_feature(feature)
    amount = body.count if body else 1
    usage = await track_feature_usage(user, feature, amount)
    return TrackUsageResponse(feature=feature, usage=usage)
