from enum import Enum
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Dict, List, Optional, Union
from datetime import datetime


# Session Models
class SessionSource(str, Enum):
    """Which credential path produced a resolved session"""
    PRIMARY_SESSION = "primary-session"
    MOBILE_HEADER = "mobile-header"
    HEADER_FALLBACK = "header-fallback"


class SessionUser(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    is_admin: bool = False
    roles: List[str] = []

    @classmethod
    def from_payload(cls, data: dict) -> Optional["SessionUser"]:
        """Build an identity from a loosely-typed dict; None when id or email is missing."""
        user_id = data.get("id") or data.get("_id")
        email = data.get("email")
        if not user_id or not email or not isinstance(email, str):
            return None
        roles = data.get("roles") or []
        if not isinstance(roles, list):
            roles = []
        return cls(
            id=str(user_id),
            email=email,
            name=data.get("name"),
            # Only a real JSON true grants admin; "false" or 1 do not
            is_admin=data.get("is_admin", data.get("isAdmin")) is True,
            roles=[str(r) for r in roles],
        )


class ResolvedSession(BaseModel):
    user: SessionUser
    source: SessionSource


# Auth Models
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    name: str


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UsageCounters(BaseModel):
    monthly_receipt_scans: int = 0
    monthly_upc_scans: int = 0
    total_inventory_items: int = 0
    total_saved_recipes: int = 0
    total_personal_recipes: int = 0
    total_public_recipes: int = 0
    total_recipe_collections: int = 0
    total_receipt_scans: int = 0
    total_upc_scans: int = 0
    current_month: Optional[int] = None
    current_year: Optional[int] = None


class SessionUserResponse(BaseModel):
    """User block of the session object returned by sign-in"""
    id: str
    email: str
    name: str
    email_verified: bool = False
    is_admin: bool = False
    roles: List[str] = []
    subscription_tier: str = "free"
    subscription_status: str = "free"
    effective_tier: str = "free"
    created_at: Optional[str] = None
    usage: UsageCounters

    @field_validator('created_at', mode='before')
    @classmethod
    def convert_datetime_to_string(cls, v):
        if isinstance(v, datetime):
            return v.isoformat()
        return v


class SessionResponse(BaseModel):
    user: SessionUserResponse
    expires: str


class MobileSignInResponse(BaseModel):
    success: bool = True
    session: SessionResponse
    token: str
    message: str = "Mobile authentication successful"


class CurrentSessionResponse(BaseModel):
    user: SessionUser
    source: SessionSource


# Usage Models
class FeatureUsage(BaseModel):
    feature: str
    current: int
    limit: Optional[int] = None  # None means unlimited
    remaining: Optional[int] = None
    has_capacity: bool


class UsageResponse(BaseModel):
    tier: str
    was_reset: bool = False
    usage: UsageCounters
    limits: Dict[str, Optional[int]]


class TrackUsageRequest(BaseModel):
    count: int = Field(default=1, ge=1, le=100)


class TrackUsageResponse(BaseModel):
    success: bool = True
    feature: str
    usage: FeatureUsage


# UPC Models
class UPCProduct(BaseModel):
    upc: str
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    nutrition: Dict[str, Union[float, str, None]] = {}
    source_url: Optional[str] = None


class UPCLookupResponse(BaseModel):
    success: bool = True
    product: UPCProduct
    usage: FeatureUsage
