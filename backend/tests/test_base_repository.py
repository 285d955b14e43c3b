"""
Unit Tests for BaseRepository and UserRepository
Tests JSON serialization, datetime handling, and query building against a mocked pool
"""
import pytest
import json
import sys
import os
from datetime import datetime, timezone, timedelta
from unittest.mock import AsyncMock, MagicMock

# Add backend to sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from database.repositories.base_repository import BaseRepository
from database.repositories.user_repository import UserRepository


def make_pool(conn):
    """Mock asyncpg pool whose acquire() yields `conn`"""
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)
    pool = MagicMock()
    pool.acquire.return_value = acquire
    return pool


def repo_with_conn(repo, conn):
    repo._get_db = AsyncMock(return_value=make_pool(conn))
    return repo


class TestJSONSerialization:
    """Test JSON field serialization and deserialization"""

    def test_serialize_json_fields(self):
        repo = BaseRepository("test")

        data = {
            "roles": ["household-admin"],
            "usage_tracking": {"monthly_upc_scans": 3, "current_month": 6}
        }

        result = repo._serialize_json_fields(data, ["roles", "usage_tracking"])

        assert isinstance(result["roles"], str)
        assert json.loads(result["usage_tracking"])["monthly_upc_scans"] == 3

    def test_serialize_json_fields_already_string(self):
        """Already-serialized JSON is left as-is"""
        repo = BaseRepository("test")

        result = repo._serialize_json_fields({"roles": '["a"]'}, ["roles"])
        assert result["roles"] == '["a"]'

    def test_serialize_does_not_mutate_input(self):
        repo = BaseRepository("test")
        data = {"roles": ["a"]}

        repo._serialize_json_fields(data, ["roles"])
        assert data["roles"] == ["a"]

    def test_deserialize_json_fields(self):
        repo = BaseRepository("test")

        data = {
            "roles": '["vegetarian-chef"]',
            "usage_tracking": '{"total_inventory_items": 42}'
        }

        result = repo._deserialize_json_fields(data, ["roles", "usage_tracking"])

        assert result["roles"] == ["vegetarian-chef"]
        assert result["usage_tracking"]["total_inventory_items"] == 42

    def test_deserialize_json_fields_invalid(self):
        """Invalid JSON is left as-is"""
        repo = BaseRepository("test")

        result = repo._deserialize_json_fields({"roles": "not valid json"}, ["roles"])
        assert result["roles"] == "not valid json"

    def test_deserialize_json_fields_none(self):
        repo = BaseRepository("test")

        assert repo._deserialize_json_fields(None, ["roles"]) is None


class TestDatetimeConversion:
    """TIMESTAMP columns take naive UTC datetimes"""

    def test_aware_datetime_converted_to_naive_utc(self):
        repo = BaseRepository("test")
        aware = datetime(2024, 6, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        result = repo._to_naive_utc({"created_at": aware})

        assert result["created_at"] == datetime(2024, 6, 1, 12, 0)
        assert result["created_at"].tzinfo is None

    def test_naive_datetime_and_other_values_untouched(self):
        repo = BaseRepository("test")
        naive = datetime(2024, 6, 1, 12, 0)

        result = repo._to_naive_utc({"created_at": naive, "name": "Bear"})

        assert result["created_at"] == naive
        assert result["name"] == "Bear"


class TestWhereClause:
    def test_placeholders_start_at_offset(self):
        repo = BaseRepository("users")

        sql, values = repo._where({"id": "1", "email": "a@x.com"}, start=3)

        assert sql == '"id" = $3 AND "email" = $4'
        assert values == ["1", "a@x.com"]


class TestQueries:
    """CRUD operations against a mocked connection"""

    @pytest.mark.asyncio
    async def test_find_one_returns_deserialized_row_without_excluded_fields(self):
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value={
            "id": "1",
            "email": "bear@example.com",
            "password": "hash",
            "roles": '["cook"]',
            "usage_tracking": '{"monthly_upc_scans": 2}',
        })
        repo = repo_with_conn(UserRepository(), conn)

        user = await repo.find_by_email("bear@example.com")

        assert "password" not in user
        assert user["roles"] == ["cook"]
        assert user["usage_tracking"] == {"monthly_upc_scans": 2}
        query, value = conn.fetchrow.call_args[0]
        assert 'WHERE "email" = $1' in query
        assert value == "bear@example.com"

    @pytest.mark.asyncio
    async def test_find_one_keeps_password_when_requested(self):
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value={"id": "1", "email": "bear@example.com", "password": "hash"})
        repo = repo_with_conn(UserRepository(), conn)

        user = await repo.find_by_email("bear@example.com", include_password=True)

        assert user["password"] == "hash"

    @pytest.mark.asyncio
    async def test_find_one_missing_row(self):
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value=None)
        repo = repo_with_conn(UserRepository(), conn)

        assert await repo.find_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_save_usage_tracking_serializes_and_returns_rowcount(self):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="UPDATE 1")
        repo = repo_with_conn(UserRepository(), conn)

        rowcount = await repo.save_usage_tracking("u1", {"monthly_upc_scans": 0, "current_month": 6})

        assert rowcount == 1
        query, tracking_json, user_id = conn.execute.call_args[0]
        assert query == 'UPDATE users SET "usage_tracking" = $1 WHERE "id" = $2'
        assert json.loads(tracking_json)["current_month"] == 6
        assert user_id == "u1"

    @pytest.mark.asyncio
    async def test_insert_converts_datetimes_and_json(self):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="INSERT 0 1")
        repo = repo_with_conn(UserRepository(), conn)
        created = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

        result = await repo.create({"id": "u1", "roles": ["cook"], "created_at": created})

        assert result["id"] == "u1"
        args = conn.execute.call_args[0]
        assert args[0] == 'INSERT INTO users ("id", "roles", "created_at") VALUES ($1, $2, $3)'
        assert args[2] == '["cook"]'
        assert args[3] == datetime(2024, 6, 1, 12, 0)

    @pytest.mark.asyncio
    async def test_query_errors_propagate(self):
        conn = MagicMock()
        conn.fetchrow = AsyncMock(side_effect=RuntimeError("connection lost"))
        repo = repo_with_conn(UserRepository(), conn)

        with pytest.raises(RuntimeError):
            await repo.find_by_id("u1")


if __name__ == "__main__":
    # Run tests with: python -m pytest backend/tests/test_base_repository.py -v
    pytest.main([__file__, "-v"])
