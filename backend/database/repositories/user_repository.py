"""
User Repository - Handles all user-related database operations
"""
from typing import Optional
from .base_repository import BaseRepository


class UserRepository(BaseRepository):
    """Repository for user operations"""

    JSON_FIELDS = ["roles", "usage_tracking"]

    def __init__(self):
        super().__init__("users")

    async def find_by_id(self, user_id: str, exclude_password: bool = True) -> Optional[dict]:
        """Find user by ID"""
        exclude = ["password"] if exclude_password else None
        return await self.find_one(
            {"id": user_id},
            exclude_fields=exclude,
            json_fields=self.JSON_FIELDS
        )

    async def find_by_email(self, email: str, include_password: bool = False) -> Optional[dict]:
        """Find user by email"""
        exclude = None if include_password else ["password"]
        return await self.find_one(
            {"email": email},
            exclude_fields=exclude,
            json_fields=self.JSON_FIELDS
        )

    async def create(self, user_data: dict) -> dict:
        """Create a new user"""
        return await self.insert(user_data, json_fields=self.JSON_FIELDS)

    async def update_user(self, user_id: str, data: dict) -> int:
        """Update user data"""
        return await self.update(
            {"id": user_id},
            data,
            json_fields=self.JSON_FIELDS
        )

    async def save_usage_tracking(self, user_id: str, usage_tracking: dict) -> int:
        """
        Overwrite the user's usage tracking document.

        Single-row write; concurrent writers are last-write-wins.
        """
        return await self.update(
            {"id": user_id},
            {"usage_tracking": usage_tracking},
            json_fields=["usage_tracking"]
        )


# Singleton instance
user_repository = UserRepository()
