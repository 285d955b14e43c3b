"""
Base Repository with common database operations
"""
import json
import asyncpg
import time
import logging
from datetime import datetime, timezone
from typing import Optional, List, Any, Dict
from ..connection import get_db, dict_from_row
from utils.debug import log_db_query

logger = logging.getLogger(__name__)


class BaseRepository:
    """Base class for repositories: parameterized single-table CRUD"""

    def __init__(self, table_name: str):
        self.table_name = table_name

    def _quote_identifier(self, identifier: str) -> str:
        """Quote a column identifier for PostgreSQL"""
        return f'"{identifier}"'

    async def _get_db(self) -> asyncpg.Pool:
        return await get_db()

    def _serialize_json_fields(self, data: dict, json_fields: List[str]) -> dict:
        """Serialize JSON fields to strings"""
        result = data.copy()
        for field in json_fields:
            if field in result and result[field] is not None:
                if not isinstance(result[field], str):
                    result[field] = json.dumps(result[field], default=str)
        return result

    def _deserialize_json_fields(self, data: dict, json_fields: List[str]) -> dict:
        """Deserialize JSON strings to objects; unparseable values are left as-is"""
        if data is None:
            return None
        result = data.copy()
        for field in json_fields:
            if field in result and isinstance(result[field], str):
                try:
                    result[field] = json.loads(result[field])
                except json.JSONDecodeError:
                    logger.warning(f"Could not decode JSON column {self.table_name}.{field}")
        return result

    def _to_naive_utc(self, data: dict) -> dict:
        """TIMESTAMP columns (without time zone) take naive UTC datetimes."""
        result = data.copy()
        for key, value in result.items():
            if isinstance(value, datetime) and value.tzinfo is not None:
                result[key] = value.astimezone(timezone.utc).replace(tzinfo=None)
        return result

    def _where(self, conditions: Dict[str, Any], start: int = 1) -> tuple[str, list]:
        clauses = []
        values = []
        for i, (key, value) in enumerate(conditions.items(), start):
            clauses.append(f"{self._quote_identifier(key)} = ${i}")
            values.append(value)
        return " AND ".join(clauses), values

    async def find_one(
        self,
        conditions: Dict[str, Any],
        exclude_fields: List[str] = None,
        json_fields: List[str] = None
    ) -> Optional[dict]:
        """Find a single record matching conditions"""
        start_time = time.time()
        pool = await self._get_db()

        where_sql, values = self._where(conditions)
        query = f"SELECT * FROM {self.table_name} WHERE {where_sql} LIMIT 1"

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(query, *values)
        except Exception as e:
            log_db_query("SELECT", self.table_name, (time.time() - start_time) * 1000, error=str(e))
            raise

        log_db_query("SELECT", self.table_name, (time.time() - start_time) * 1000,
                     rows_affected=1 if row else 0, query_params=conditions)

        if row is None:
            return None

        result = dict_from_row(row)
        for field in exclude_fields or []:
            result.pop(field, None)
        if json_fields:
            result = self._deserialize_json_fields(result, json_fields)
        return result

    async def insert(self, data: dict, json_fields: List[str] = None) -> dict:
        """Insert a new record"""
        start_time = time.time()
        pool = await self._get_db()

        row_data = self._to_naive_utc(data)
        if json_fields:
            row_data = self._serialize_json_fields(row_data, json_fields)

        columns = ", ".join(self._quote_identifier(k) for k in row_data)
        placeholders = ", ".join(f"${i + 1}" for i in range(len(row_data)))
        query = f"INSERT INTO {self.table_name} ({columns}) VALUES ({placeholders})"

        try:
            async with pool.acquire() as conn:
                await conn.execute(query, *row_data.values())
        except Exception as e:
            log_db_query("INSERT", self.table_name, (time.time() - start_time) * 1000, error=str(e))
            raise

        log_db_query("INSERT", self.table_name, (time.time() - start_time) * 1000,
                     rows_affected=1, query_params={"id": data.get("id")})
        return data

    async def update(
        self,
        conditions: Dict[str, Any],
        data: dict,
        json_fields: List[str] = None
    ) -> int:
        """Update records matching conditions; returns the affected row count"""
        start_time = time.time()
        pool = await self._get_db()

        row_data = self._to_naive_utc(data)
        if json_fields:
            row_data = self._serialize_json_fields(row_data, json_fields)

        set_clauses = []
        values = []
        for i, (key, value) in enumerate(row_data.items(), 1):
            set_clauses.append(f"{self._quote_identifier(key)} = ${i}")
            values.append(value)

        where_sql, where_values = self._where(conditions, start=len(values) + 1)
        query = f"UPDATE {self.table_name} SET {', '.join(set_clauses)} WHERE {where_sql}"

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(query, *values, *where_values)
        except Exception as e:
            log_db_query("UPDATE", self.table_name, (time.time() - start_time) * 1000, error=str(e))
            raise

        # Status string looks like "UPDATE 1"
        rowcount = int(result.split()[-1]) if result else 0
        log_db_query("UPDATE", self.table_name, (time.time() - start_time) * 1000,
                     rows_affected=rowcount, query_params=conditions)
        return rowcount
