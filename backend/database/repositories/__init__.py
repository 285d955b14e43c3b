# Repository layer for PostgreSQL database operations
from .base_repository import BaseRepository
from .user_repository import UserRepository, user_repository

__all__ = [
    'BaseRepository',
    'UserRepository',
    'user_repository',
]
